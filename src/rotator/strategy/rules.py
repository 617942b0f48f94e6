"""Entry predicates, candidate ranking rules, and exit rules.

All thresholds are percentages as Decimal (Decimal("5") is 5%).

Null-data fallbacks (PriceChange.is_fallback) are never read as momentum:
magnitude comparisons skip them, and the all-positive predicate counts them
only when configured to. A missing timeframe is different: it raises
MissingTimeframeError and aborts the cycle.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

from rotator.logging import get_logger
from rotator.models import Holding, Timeframe, TokenPriceSnapshot

logger = get_logger(__name__)

_HUNDRED = Decimal("100")


def pct_change(current: Decimal, reference: Decimal) -> Decimal:
    """Percentage move from reference to current."""
    return (current - reference) / reference * _HUNDRED


# ──────────────────────────────────────────────
# Entry predicates (evaluated on the base asset)
# ──────────────────────────────────────────────


class EntryPredicate(ABC):
    """Decides whether base-asset momentum allows entering a position."""

    name: str = ""

    @abstractmethod
    def evaluate(self, base: TokenPriceSnapshot) -> bool:
        ...


class AllPositivePredicate(EntryPredicate):
    """Every tracked timeframe of the base asset is positive."""

    name = "all_positive"

    def __init__(
        self, timeframes: list[Timeframe], null_counts_as_positive: bool = False
    ) -> None:
        self._timeframes = timeframes
        self._null_counts_as_positive = null_counts_as_positive

    def evaluate(self, base: TokenPriceSnapshot) -> bool:
        for timeframe in self._timeframes:
            change = base.change(timeframe)
            if change.is_fallback:
                if not self._null_counts_as_positive:
                    return False
            elif not change.is_positive:
                return False
        return True


class MomentumPredicate(EntryPredicate):
    """Short and mid timeframes both exceed fixed thresholds."""

    name = "momentum"

    def __init__(self, threshold_1h: Decimal, threshold_5m: Decimal) -> None:
        self._threshold_1h = threshold_1h
        self._threshold_5m = threshold_5m

    def evaluate(self, base: TokenPriceSnapshot) -> bool:
        h1 = base.change(Timeframe.H1)
        m5 = base.change(Timeframe.M5)
        if h1.is_fallback or m5.is_fallback:
            return False
        return h1.percentage > self._threshold_1h and m5.percentage > self._threshold_5m


class AnyAbovePredicate(EntryPredicate):
    """At least one timeframe exceeds a threshold (1h or 6h above 1% by default)."""

    name = "any_above"

    def __init__(self, timeframes: list[Timeframe], threshold: Decimal) -> None:
        self._timeframes = timeframes
        self._threshold = threshold

    def evaluate(self, base: TokenPriceSnapshot) -> bool:
        changes = [base.change(tf) for tf in self._timeframes]
        return any(
            not c.is_fallback and c.is_positive and c.percentage > self._threshold
            for c in changes
        )


# ──────────────────────────────────────────────
# Candidate ranking
# ──────────────────────────────────────────────


@dataclass
class RankedCandidate:
    """A selected candidate and the score that won."""

    snapshot: TokenPriceSnapshot
    score: Decimal


class RankingRule(ABC):
    """Selects one candidate token, or None when none is eligible.

    Equal scores keep the first-seen candidate.
    """

    name: str = ""

    @abstractmethod
    def select(self, candidates: list[TokenPriceSnapshot]) -> RankedCandidate | None:
        ...


class HighestGainRanking(RankingRule):
    """Highest genuine gain over the scored timeframes, below an upper cap.

    Tokens with any scored timeframe above the cap are skipped as already
    extended.
    """

    name = "highest_gain"

    def __init__(self, timeframes: list[Timeframe], cap: Decimal) -> None:
        self._timeframes = timeframes
        self._cap = cap

    def select(self, candidates: list[TokenPriceSnapshot]) -> RankedCandidate | None:
        best: RankedCandidate | None = None
        for snapshot in candidates:
            changes = [snapshot.change(tf) for tf in self._timeframes]
            if any(not c.is_fallback and c.percentage > self._cap for c in changes):
                logger.debug("candidate_over_cap", symbol=snapshot.symbol, cap=str(self._cap))
                continue
            gains = [c.percentage for c in changes if c.is_genuine_gain]
            if not gains:
                continue
            score = max(gains)
            if best is None or score > best.score:
                best = RankedCandidate(snapshot, score)
        return best


class LowestVariationRanking(RankingRule):
    """Least overextended token: lowest min(6h, 24h) change below a cap.

    Tokens with fallback data in a scored timeframe are skipped; a fallback
    0% would otherwise look like the lowest variation.
    """

    name = "lowest_variation"

    def __init__(self, timeframes: list[Timeframe], cap: Decimal) -> None:
        self._timeframes = timeframes
        self._cap = cap

    def select(self, candidates: list[TokenPriceSnapshot]) -> RankedCandidate | None:
        best: RankedCandidate | None = None
        for snapshot in candidates:
            changes = [snapshot.change(tf) for tf in self._timeframes]
            if any(c.is_fallback for c in changes):
                continue
            if any(c.percentage > self._cap for c in changes):
                logger.debug("candidate_over_cap", symbol=snapshot.symbol, cap=str(self._cap))
                continue
            score = min(c.percentage for c in changes)
            if best is None or score < best.score:
                best = RankedCandidate(snapshot, score)
        return best


# ──────────────────────────────────────────────
# Exit rules
# ──────────────────────────────────────────────


class ExitRules:
    """Exit triggers for a held token. Any one firing is enough.

    - market downturn: base 1h below momentum_1h AND base 5m at or below
      momentum_5m
    - trailing stop: drop from the trailing high at or beyond trailing_stop_pct
    - hard stop: drop from entry at or beyond hard_stop_pct

    Both stops need an entry recovered from the journal; without one they
    stay inactive and only the downturn rule applies.
    """

    def __init__(
        self,
        momentum_1h: Decimal,
        momentum_5m: Decimal,
        trailing_stop_pct: Decimal,
        hard_stop_pct: Decimal,
    ) -> None:
        self._momentum_1h = momentum_1h
        self._momentum_5m = momentum_5m
        self._trailing_stop_pct = trailing_stop_pct
        self._hard_stop_pct = hard_stop_pct

    def market_downturn(self, base: TokenPriceSnapshot) -> bool:
        h1 = base.change(Timeframe.H1)
        m5 = base.change(Timeframe.M5)
        if h1.is_fallback or m5.is_fallback:
            return False
        return h1.percentage < self._momentum_1h and m5.percentage <= self._momentum_5m

    def trailing_stop(self, holding: Holding) -> bool:
        highest = holding.entry.highest_price
        if not holding.entry.known or highest is None or highest <= 0:
            return False
        return pct_change(holding.snapshot.price, highest) <= -self._trailing_stop_pct

    def hard_stop(self, holding: Holding) -> bool:
        entry = holding.entry.entry_price
        if entry is None or entry <= 0:
            return False
        return pct_change(holding.snapshot.price, entry) <= -self._hard_stop_pct

    def triggered(self, base: TokenPriceSnapshot, holding: Holding) -> list[str]:
        """Names of the exit rules that fire, in evaluation order."""
        reasons = []
        if self.market_downturn(base):
            reasons.append("market_downturn")
        if self.trailing_stop(holding):
            reasons.append("trailing_stop")
        if self.hard_stop(holding):
            reasons.append("hard_stop")
        return reasons
