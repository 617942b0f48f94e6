"""Shared data models for the rotation agent.

CRITICAL: All prices, balances, and percentages use Decimal. Never use float
in the decision path. Raw on-chain amounts are int (smallest token unit).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from rotator.exceptions import MissingTimeframeError

_PERCENT_QUANTUM = Decimal("0.01")


class Timeframe(str, Enum):
    """Price-change windows reported by the feed."""

    M5 = "5m"
    H1 = "1h"
    H6 = "6h"
    H24 = "24h"
    D7 = "7d"


class Action(str, Enum):
    """Strategy decision kind."""

    HOLD = "hold"
    ROTATE = "rotate"


@dataclass
class PriceChange:
    """Percentage price change over one timeframe.

    is_positive mirrors the sign of percentage. The only exception is the
    null-data fallback (percentage 0, is_positive True, is_fallback True)
    produced when upstream has no value for the window.
    """

    timeframe: Timeframe
    percentage: Decimal
    is_positive: bool
    is_fallback: bool = False

    def __post_init__(self) -> None:
        if self.is_fallback:
            if self.percentage != 0 or not self.is_positive:
                raise ValueError("fallback PriceChange must be 0% and positive")
        elif self.is_positive != (self.percentage >= 0):
            raise ValueError(
                f"is_positive={self.is_positive} disagrees with {self.percentage}%"
            )

    @classmethod
    def from_variation(
        cls, timeframe: Timeframe, variation: float | str | Decimal | None
    ) -> "PriceChange":
        """Build from a raw upstream variation, rounding to two decimals.

        None becomes the null-data fallback.
        """
        if variation is None:
            return cls(timeframe, Decimal("0"), True, is_fallback=True)
        percentage = Decimal(str(variation)).quantize(_PERCENT_QUANTUM, ROUND_HALF_UP)
        return cls(timeframe, percentage, percentage >= 0)

    @property
    def is_genuine_gain(self) -> bool:
        """True for a real, non-fallback, strictly positive change."""
        return not self.is_fallback and self.percentage > 0


@dataclass
class TokenPriceSnapshot:
    """Point-in-time price and momentum for one token."""

    symbol: str
    name: str
    price: Decimal
    price_changes: list[PriceChange] = field(default_factory=list)

    def __post_init__(self) -> None:
        seen = [c.timeframe for c in self.price_changes]
        if len(seen) != len(set(seen)):
            raise ValueError(f"duplicate timeframe in snapshot for {self.symbol}")

    def change(self, timeframe: Timeframe) -> PriceChange:
        """Return the change for a timeframe.

        Raises:
            MissingTimeframeError: If the snapshot has no entry for it.
        """
        for change in self.price_changes:
            if change.timeframe == timeframe:
                return change
        raise MissingTimeframeError(
            f"{self.symbol} has no {timeframe.value} price change"
        )


@dataclass
class TokenConfig:
    """Token registry entry."""

    symbol: str
    address: str
    decimals: int
    name: str = ""


@dataclass
class TokenBalance:
    """Wallet holding of one token, recomputed every cycle."""

    symbol: str
    raw_balance: int
    formatted_balance: Decimal
    address: str


@dataclass
class ExecutionPrice:
    """Pool-implied pricing at submission time."""

    reference_price: Decimal  # token1 per token0, decimals-adjusted
    computed_price: Decimal  # expected token_out per token_in
    token_in_is_token0: bool


@dataclass
class TokenContext:
    """Momentum of the token being bought or sold.

    highest_price is the trailing high-water mark. It is the one field the
    journal may raise in place after the record is written.
    """

    symbol: str
    price_changes: list[PriceChange] = field(default_factory=list)
    highest_price: Decimal | None = None
    score: Decimal | None = None


@dataclass
class TradeContext:
    """Decision-time signals stored alongside an executed swap."""

    base_price_changes: list[PriceChange]
    token_price_changes: TokenContext
    rationale: str = ""


@dataclass
class RealizedAmounts:
    """Amounts observed on-chain after confirmation."""

    amount_in: Decimal
    amount_out: Decimal


@dataclass
class TradeRecord:
    """One executed swap as persisted in the trade journal."""

    timestamp: str
    token_in: str
    token_out: str
    amount_in: Decimal
    amount_out_minimum: Decimal
    pool_address: str
    fee: int
    price_at_execution: ExecutionPrice
    api_price: Decimal
    context: TradeContext
    actual_amount_out: RealizedAmounts | None = None
    tx_hash: str = ""


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp for trade records."""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class EntryState:
    """Entry price and trailing high recovered from the journal."""

    entry_price: Decimal | None = None
    highest_price: Decimal | None = None

    @property
    def known(self) -> bool:
        return self.entry_price is not None


@dataclass
class Rotation:
    """A full-balance swap instruction."""

    token_in: str
    token_out: str
    amount_raw: int
    amount: Decimal
    api_price: Decimal
    context: TradeContext


@dataclass
class StrategyDecision:
    """Outcome of one strategy evaluation. Never persisted directly."""

    action: Action
    rationale: str
    rotation: Rotation | None = None

    @classmethod
    def hold(cls, rationale: str) -> "StrategyDecision":
        return cls(Action.HOLD, rationale)

    @classmethod
    def rotate(cls, rotation: Rotation, rationale: str) -> "StrategyDecision":
        return cls(Action.ROTATE, rationale, rotation)


@dataclass
class Holding:
    """A non-base token held above dust, with its price and entry state."""

    balance: TokenBalance
    snapshot: TokenPriceSnapshot
    entry: EntryState


@dataclass
class MarketView:
    """Everything a strategy policy sees for one cycle."""

    base_symbol: str
    base: TokenPriceSnapshot
    base_balance: TokenBalance
    holdings: list[Holding] = field(default_factory=list)
    candidates: list[TokenPriceSnapshot] = field(default_factory=list)


@dataclass
class CycleResult:
    """What one engine cycle decided and, if it rotated, what was recorded."""

    decision: StrategyDecision
    record: TradeRecord | None = None

    @property
    def rotated(self) -> bool:
        return self.record is not None
