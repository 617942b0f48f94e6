"""Paper trading wallet with simulated swaps.

PaperWallet is both the BalanceProvider and the TradeExecutor in paper
mode: it keeps virtual raw balances per token and fills swaps at the feed
price ratio minus a simulated pool fee. All fills are instant.
"""

from decimal import ROUND_DOWN, Decimal
from uuid import uuid4

from rotator.exceptions import ExecutionError, PriceUnavailableError
from rotator.execution.executor import TradeExecutor
from rotator.logging import get_logger
from rotator.market_data.price_feed import PriceSignalProvider
from rotator.models import (
    ExecutionPrice,
    RealizedAmounts,
    TokenBalance,
    TokenConfig,
    TradeContext,
    TradeRecord,
    utc_timestamp,
)
from rotator.wallet.balances import BalanceProvider, format_units, parse_units

logger = get_logger(__name__)

_PAPER_POOL = "paper"


class PaperWallet(BalanceProvider, TradeExecutor):
    """Simulated wallet and executor for paper trading.

    Args:
        registry: Token registry (symbol -> TokenConfig).
        price_feed: Source of prices used to simulate fills.
        fee_rate: Simulated pool fee as a fraction (0.003 = 0.3%).
        slippage_tolerance: Used only to report amount_out_minimum.
    """

    def __init__(
        self,
        registry: dict[str, TokenConfig],
        price_feed: PriceSignalProvider,
        fee_rate: Decimal = Decimal("0.003"),
        slippage_tolerance: Decimal = Decimal("0.07"),
    ) -> None:
        self._registry = registry
        self._price_feed = price_feed
        self._fee_rate = fee_rate
        self._slippage_tolerance = slippage_tolerance
        self._raw_balances: dict[str, int] = {symbol: 0 for symbol in registry}

    def set_balance(self, symbol: str, amount: Decimal) -> None:
        """Set a virtual balance in token units."""
        token = self._registry[symbol]
        self._raw_balances[symbol] = parse_units(amount, token.decimals)

    async def get_balances(self, wallet_address: str) -> list[TokenBalance]:
        return [
            TokenBalance(
                symbol=symbol,
                raw_balance=self._raw_balances[symbol],
                formatted_balance=format_units(self._raw_balances[symbol], token.decimals),
                address=token.address,
            )
            for symbol, token in self._registry.items()
        ]

    async def execute_swap(
        self,
        token_in: str,
        token_out: str,
        amount_in_raw: int,
        context: TradeContext,
        api_price: Decimal,
    ) -> TradeRecord:
        cfg_in = self._registry.get(token_in)
        cfg_out = self._registry.get(token_out)
        if cfg_in is None or cfg_out is None:
            raise ExecutionError(f"Unknown pair {token_in}/{token_out}")
        if amount_in_raw <= 0 or amount_in_raw > self._raw_balances[token_in]:
            raise ExecutionError(
                f"Paper balance of {token_in} cannot cover {amount_in_raw}"
            )

        price_in = (await self._price_feed.get_price_snapshot(token_in)).price
        price_out = (await self._price_feed.get_price_snapshot(token_out)).price
        if price_in <= 0 or price_out <= 0:
            raise PriceUnavailableError(
                f"Cannot simulate {token_in}->{token_out} at prices {price_in}/{price_out}"
            )

        amount_in = format_units(amount_in_raw, cfg_in.decimals)
        rate = price_in / price_out
        amount_out = (amount_in * rate * (Decimal("1") - self._fee_rate)).quantize(
            Decimal(1).scaleb(-cfg_out.decimals), rounding=ROUND_DOWN
        )
        amount_out_minimum = (amount_out * (Decimal("1") - self._slippage_tolerance)).quantize(
            Decimal(1).scaleb(-cfg_out.decimals), rounding=ROUND_DOWN
        )

        self._raw_balances[token_in] -= amount_in_raw
        self._raw_balances[token_out] += parse_units(amount_out, cfg_out.decimals)

        tx_hash = f"paper_{uuid4().hex[:12]}"
        logger.info(
            "paper_swap_filled",
            tx_hash=tx_hash,
            token_in=token_in,
            token_out=token_out,
            amount_in=str(amount_in),
            amount_out=str(amount_out),
        )

        return TradeRecord(
            timestamp=utc_timestamp(),
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out_minimum=amount_out_minimum,
            pool_address=_PAPER_POOL,
            fee=int(self._fee_rate * 1_000_000),
            price_at_execution=ExecutionPrice(
                reference_price=rate,
                computed_price=rate * (Decimal("1") - self._fee_rate),
                token_in_is_token0=True,
            ),
            api_price=api_price,
            context=context,
            actual_amount_out=RealizedAmounts(amount_in=amount_in, amount_out=amount_out),
            tx_hash=tx_hash,
        )
