"""Uniswap V3 pool discovery and minimum-output pricing.

Pool discovery walks the configured fee tiers through the factory, skips
tiers with no deployed pool, and picks the pool holding the most liquidity.
Recent Swap activity is logged per tier but does not affect the choice.

Minimum output is derived from the pool's sqrtPriceX96:
  raw_price = (sqrtPriceX96 / 2**96) ** 2        # token1 raw per token0 raw
  expected  = amount_in * raw_price   if token_in is token0
            = amount_in / raw_price   otherwise
  minimum   = floor(expected * (1 - slippage))
A failed or non-positive result raises MinimumOutputError; the swap is never
submitted with a zero minimum.
"""

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal, InvalidOperation, localcontext

from web3 import Web3

from rotator.exceptions import (
    InsufficientLiquidityError,
    MinimumOutputError,
    PoolNotFoundError,
)
from rotator.execution.abi import UNISWAP_V3_FACTORY_ABI, UNISWAP_V3_POOL_ABI, ZERO_ADDRESS
from rotator.logging import get_logger
from rotator.models import ExecutionPrice
from rotator.rate_limiter import RateLimiter

logger = get_logger(__name__)

_Q96 = Decimal(2) ** 96

SWAP_LOOKBACK_BLOCKS = 10_000


@dataclass
class PoolInfo:
    """Immutables and current state of a Uniswap V3 pool."""

    address: str
    fee: int
    token0: str
    token1: str
    liquidity: int
    sqrt_price_x96: int


@dataclass
class PoolActivity:
    """Swap events seen in a pool over the lookback window."""

    swap_count: int
    last_swap_block: int | None


@dataclass
class MinimumOutput:
    """Minimum acceptable output and the pricing it was derived from."""

    amount_out_minimum_raw: int
    price: ExecutionPrice


def compute_minimum_output(
    amount_in_raw: int,
    sqrt_price_x96: int,
    token_in_is_token0: bool,
    decimals_in: int,
    decimals_out: int,
    slippage_tolerance: Decimal,
) -> MinimumOutput:
    """Compute the minimum output for an exact-input swap.

    Raises:
        MinimumOutputError: If the price is unusable or the result is not
            strictly positive.
    """
    if sqrt_price_x96 <= 0:
        raise MinimumOutputError(f"Invalid sqrtPriceX96: {sqrt_price_x96}")
    if not Decimal("0") <= slippage_tolerance < Decimal("1"):
        raise MinimumOutputError(f"Invalid slippage tolerance: {slippage_tolerance}")

    try:
        with localcontext() as ctx:
            ctx.prec = 78
            raw_price = (Decimal(sqrt_price_x96) / _Q96) ** 2
            if token_in_is_token0:
                expected = Decimal(amount_in_raw) * raw_price
            else:
                expected = Decimal(amount_in_raw) / raw_price
            minimum = (expected * (Decimal(1) - slippage_tolerance)).to_integral_value(
                rounding=ROUND_DOWN
            )

            decimals0, decimals1 = (
                (decimals_in, decimals_out)
                if token_in_is_token0
                else (decimals_out, decimals_in)
            )
            reference_price = raw_price * Decimal(10) ** (decimals0 - decimals1)
            amount_in_units = Decimal(amount_in_raw) / Decimal(10) ** decimals_in
            expected_units = expected / Decimal(10) ** decimals_out
            computed_price = (
                expected_units / amount_in_units if amount_in_units else Decimal("0")
            )
    except (InvalidOperation, ZeroDivisionError) as e:
        raise MinimumOutputError(f"Minimum output calculation failed: {e}") from e

    if minimum <= 0:
        raise MinimumOutputError(
            f"Minimum output is {minimum} for amount_in={amount_in_raw}"
        )

    return MinimumOutput(
        amount_out_minimum_raw=int(minimum),
        price=ExecutionPrice(
            reference_price=+reference_price,
            computed_price=+computed_price,
            token_in_is_token0=token_in_is_token0,
        ),
    )


class PoolLocator:
    """Finds the most liquid Uniswap V3 pool for a token pair.

    Args:
        w3: Connected Web3 instance.
        factory_address: Uniswap V3 factory.
        fee_tiers: Fee tiers to check, in hundredths of a basis point.
        rate_limiter: Shared gate for outbound calls.
    """

    def __init__(
        self,
        w3: Web3,
        factory_address: str,
        fee_tiers: list[int],
        rate_limiter: RateLimiter,
    ) -> None:
        self._w3 = w3
        self._factory = w3.eth.contract(
            address=Web3.to_checksum_address(factory_address),
            abi=UNISWAP_V3_FACTORY_ABI,
        )
        self._fee_tiers = fee_tiers
        self._rate_limiter = rate_limiter

    async def find_pool(self, token_a: str, token_b: str) -> PoolInfo:
        """Return the deployed pool with the most liquidity across fee tiers.

        Raises:
            PoolNotFoundError: If no tier has a deployed pool.
            InsufficientLiquidityError: If the best pool has zero liquidity.
        """
        a = Web3.to_checksum_address(token_a)
        b = Web3.to_checksum_address(token_b)
        best: PoolInfo | None = None

        for fee in self._fee_tiers:
            try:
                pool_address = await self._rate_limiter.call(
                    self._factory.functions.getPool(a, b, fee).call
                )
                if not pool_address or pool_address == ZERO_ADDRESS:
                    logger.debug("pool_tier_empty", fee=fee)
                    continue
                code = await self._rate_limiter.call(self._w3.eth.get_code, pool_address)
                if not code:
                    logger.debug("pool_tier_no_code", fee=fee, pool=pool_address)
                    continue
                pool = await self.load_pool(pool_address)
            except Exception as e:
                logger.warning("pool_tier_check_failed", fee=fee, error=str(e))
                continue

            activity = await self.recent_activity(pool.address)
            logger.debug(
                "pool_tier_checked",
                fee=fee,
                pool=pool.address,
                liquidity=pool.liquidity,
                recent_swaps=activity.swap_count if activity else None,
                last_swap_block=activity.last_swap_block if activity else None,
            )
            if best is None or pool.liquidity > best.liquidity:
                best = pool

        if best is None:
            raise PoolNotFoundError(f"No pool found for {token_a}/{token_b}")
        if best.liquidity <= 0:
            raise InsufficientLiquidityError(
                f"Best pool {best.address} for {token_a}/{token_b} has no liquidity"
            )

        logger.info(
            "pool_selected",
            pool=best.address,
            fee=best.fee,
            liquidity=best.liquidity,
        )
        return best

    async def recent_activity(
        self, pool_address: str, lookback_blocks: int = SWAP_LOOKBACK_BLOCKS
    ) -> PoolActivity | None:
        """Count Swap events in the last lookback_blocks blocks.

        Informational only; selection is by liquidity. Returns None when the
        node cannot serve the log query (many public RPCs cap the range).
        """
        try:
            pool = self._w3.eth.contract(
                address=Web3.to_checksum_address(pool_address), abi=UNISWAP_V3_POOL_ABI
            )
            latest = await self._rate_limiter.call(lambda: self._w3.eth.block_number)
            events = await self._rate_limiter.call(
                pool.events.Swap.get_logs,
                from_block=max(0, int(latest) - lookback_blocks),
                to_block=int(latest),
            )
        except Exception as e:
            logger.debug("pool_activity_unavailable", pool=pool_address, error=str(e))
            return None

        last_block = max((int(event["blockNumber"]) for event in events), default=None)
        return PoolActivity(swap_count=len(events), last_swap_block=last_block)

    async def load_pool(self, pool_address: str) -> PoolInfo:
        """Read a pool's immutables and current price and liquidity."""
        pool = self._w3.eth.contract(
            address=Web3.to_checksum_address(pool_address), abi=UNISWAP_V3_POOL_ABI
        )
        token0 = await self._rate_limiter.call(pool.functions.token0().call)
        token1 = await self._rate_limiter.call(pool.functions.token1().call)
        fee = await self._rate_limiter.call(pool.functions.fee().call)
        liquidity = await self._rate_limiter.call(pool.functions.liquidity().call)
        slot0 = await self._rate_limiter.call(pool.functions.slot0().call)
        return PoolInfo(
            address=pool_address,
            fee=int(fee),
            token0=token0,
            token1=token1,
            liquidity=int(liquidity),
            sqrt_price_x96=int(slot0[0]),
        )
