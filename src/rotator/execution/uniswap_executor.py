"""Live swap executor for Uniswap V3 (SwapRouter02) via web3.

Each swap:
1. Locate the most liquid pool for the pair.
2. Compute the minimum output from the pool price and slippage tolerance
   (hard failure if it cannot be computed).
3. Approve the router if the current allowance is short.
4. Submit exactInputSingle and wait for the receipt.
5. Measure the realized output as the wallet's token_out balance delta.

Blocking web3 calls run in worker threads behind the shared RateLimiter.
"""

from decimal import Decimal

from eth_account import Account
from web3 import Web3
from web3.exceptions import TimeExhausted

from rotator.config import ChainSettings
from rotator.exceptions import (
    ExecutionError,
    ExecutionRevertedError,
    SwapTimeoutError,
)
from rotator.execution.abi import ERC20_ABI, SWAP_ROUTER02_ABI
from rotator.execution.executor import TradeExecutor
from rotator.execution.pools import PoolLocator, compute_minimum_output
from rotator.logging import get_logger
from rotator.models import (
    RealizedAmounts,
    TokenConfig,
    TradeContext,
    TradeRecord,
    utc_timestamp,
)
from rotator.rate_limiter import RateLimiter
from rotator.wallet.balances import format_units

logger = get_logger(__name__)

_APPROVAL_GAS = 100_000


class UniswapV3Executor(TradeExecutor):
    """Executes full-balance rotations on Uniswap V3.

    Args:
        w3: Connected Web3 instance.
        settings: Router/factory addresses, slippage, gas, and timeouts.
        registry: Token registry (symbol -> TokenConfig).
        private_key: Wallet signing key.
        rate_limiter: Shared gate for outbound calls.
        pool_locator: Optional locator (tests inject a stub).
    """

    def __init__(
        self,
        w3: Web3,
        settings: ChainSettings,
        registry: dict[str, TokenConfig],
        private_key: str,
        rate_limiter: RateLimiter,
        pool_locator: PoolLocator | None = None,
    ) -> None:
        self._w3 = w3
        self._settings = settings
        self._registry = registry
        self._rate_limiter = rate_limiter
        self._account = Account.from_key(private_key)
        self._router = w3.eth.contract(
            address=Web3.to_checksum_address(settings.swap_router_address),
            abi=SWAP_ROUTER02_ABI,
        )
        self._pool_locator = pool_locator or PoolLocator(
            w3, settings.factory_address, settings.fee_tiers, rate_limiter
        )

    @property
    def wallet_address(self) -> str:
        return self._account.address

    async def execute_swap(
        self,
        token_in: str,
        token_out: str,
        amount_in_raw: int,
        context: TradeContext,
        api_price: Decimal,
    ) -> TradeRecord:
        cfg_in = self._token(token_in)
        cfg_out = self._token(token_out)
        if amount_in_raw <= 0:
            raise ExecutionError(f"Nothing to swap: amount_in_raw={amount_in_raw}")

        pool = await self._pool_locator.find_pool(cfg_in.address, cfg_out.address)
        token_in_is_token0 = pool.token0.lower() == cfg_in.address.lower()

        minimum = compute_minimum_output(
            amount_in_raw=amount_in_raw,
            sqrt_price_x96=pool.sqrt_price_x96,
            token_in_is_token0=token_in_is_token0,
            decimals_in=cfg_in.decimals,
            decimals_out=cfg_out.decimals,
            slippage_tolerance=self._settings.slippage_tolerance,
        )
        logger.info(
            "swap_prepared",
            token_in=token_in,
            token_out=token_out,
            amount_in=str(format_units(amount_in_raw, cfg_in.decimals)),
            amount_out_minimum=str(
                format_units(minimum.amount_out_minimum_raw, cfg_out.decimals)
            ),
            pool=pool.address,
            fee=pool.fee,
        )

        balance_before = await self._read_balance(cfg_out)

        await self._ensure_allowance(cfg_in, amount_in_raw)

        params = {
            "tokenIn": Web3.to_checksum_address(cfg_in.address),
            "tokenOut": Web3.to_checksum_address(cfg_out.address),
            "fee": pool.fee,
            "recipient": self._account.address,
            "amountIn": amount_in_raw,
            "amountOutMinimum": minimum.amount_out_minimum_raw,
            "sqrtPriceLimitX96": 0,
        }
        tx_hash = await self._send(
            self._router.functions.exactInputSingle(params), self._settings.gas_limit
        )
        logger.info("swap_submitted", tx_hash=tx_hash, token_in=token_in, token_out=token_out)
        await self._wait(tx_hash, "swap")

        realized = None
        balance_after = await self._read_balance(cfg_out)
        if balance_before is not None and balance_after is not None:
            realized = RealizedAmounts(
                amount_in=format_units(amount_in_raw, cfg_in.decimals),
                amount_out=format_units(balance_after - balance_before, cfg_out.decimals),
            )

        logger.info(
            "swap_confirmed",
            tx_hash=tx_hash,
            amount_out=str(realized.amount_out) if realized else None,
        )

        return TradeRecord(
            timestamp=utc_timestamp(),
            token_in=token_in,
            token_out=token_out,
            amount_in=format_units(amount_in_raw, cfg_in.decimals),
            amount_out_minimum=format_units(
                minimum.amount_out_minimum_raw, cfg_out.decimals
            ),
            pool_address=pool.address,
            fee=pool.fee,
            price_at_execution=minimum.price,
            api_price=api_price,
            context=context,
            actual_amount_out=realized,
            tx_hash=tx_hash,
        )

    def _token(self, symbol: str) -> TokenConfig:
        token = self._registry.get(symbol)
        if token is None:
            raise ExecutionError(f"Token {symbol} is not in the registry")
        return token

    async def _read_balance(self, token: TokenConfig) -> int | None:
        contract = self._w3.eth.contract(
            address=Web3.to_checksum_address(token.address), abi=ERC20_ABI
        )
        try:
            return int(
                await self._rate_limiter.call(
                    contract.functions.balanceOf(self._account.address).call
                )
            )
        except Exception as e:
            logger.warning("balance_unobservable", symbol=token.symbol, error=str(e))
            return None

    async def _ensure_allowance(self, token: TokenConfig, amount_raw: int) -> None:
        contract = self._w3.eth.contract(
            address=Web3.to_checksum_address(token.address), abi=ERC20_ABI
        )
        router = self._router.address
        allowance = await self._rate_limiter.call(
            contract.functions.allowance(self._account.address, router).call
        )
        if int(allowance) >= amount_raw:
            logger.debug("approval_not_needed", symbol=token.symbol, allowance=int(allowance))
            return

        tx_hash = await self._send(contract.functions.approve(router, amount_raw), _APPROVAL_GAS)
        logger.info("approval_submitted", symbol=token.symbol, tx_hash=tx_hash)
        await self._wait(tx_hash, "approval")

    async def _send(self, fn_call, gas: int) -> str:
        """Build, sign, and broadcast a contract call. Returns the tx hash."""

        def _build_and_send() -> str:
            tx = fn_call.build_transaction(
                {
                    "from": self._account.address,
                    "gas": gas,
                    "nonce": self._w3.eth.get_transaction_count(
                        self._account.address, "pending"
                    ),
                }
            )
            signed = self._account.sign_transaction(tx)
            return Web3.to_hex(self._w3.eth.send_raw_transaction(signed.raw_transaction))

        try:
            return await self._rate_limiter.call(_build_and_send)
        except Exception as e:
            raise ExecutionError(f"Transaction submission failed: {e}") from e

    async def _wait(self, tx_hash: str, label: str) -> None:
        try:
            receipt = await self._rate_limiter.call(
                self._w3.eth.wait_for_transaction_receipt,
                tx_hash,
                timeout=self._settings.receipt_timeout_seconds,
            )
        except TimeExhausted as e:
            raise SwapTimeoutError(f"{label} {tx_hash} not confirmed in time") from e

        if receipt["status"] != 1:
            raise ExecutionRevertedError(f"{label} {tx_hash} reverted")
