"""Strategy policies: the rule set applied to one cycle's MarketView.

A policy only decides. It never fetches data or trades; the engine builds
the MarketView and executes whatever Rotation the policy returns.
"""

from abc import ABC, abstractmethod
from decimal import Decimal

from rotator.config import StrategySettings
from rotator.logging import get_logger
from rotator.models import (
    Holding,
    MarketView,
    Rotation,
    StrategyDecision,
    Timeframe,
    TokenContext,
    TradeContext,
)
from rotator.strategy.rules import (
    AllPositivePredicate,
    AnyAbovePredicate,
    EntryPredicate,
    ExitRules,
    HighestGainRanking,
    LowestVariationRanking,
    MomentumPredicate,
    RankedCandidate,
    RankingRule,
)

logger = get_logger(__name__)


class StrategyPolicy(ABC):
    """Swappable rotation rule set."""

    name: str = ""

    def __init__(self, base_dust_threshold: Decimal) -> None:
        self._base_dust_threshold = base_dust_threshold

    def base_above_dust(self, view: MarketView) -> bool:
        return view.base_balance.formatted_balance > self._base_dust_threshold

    @abstractmethod
    def needs_candidates(self, view: MarketView) -> bool:
        """Whether decide() will read view.candidates this cycle."""

    @abstractmethod
    def decide(self, view: MarketView) -> StrategyDecision:
        ...

    def _enter(self, view: MarketView, chosen: RankedCandidate, rationale: str) -> StrategyDecision:
        """Full base balance into the chosen token, trailing high seeded at its price."""
        snapshot = chosen.snapshot
        context = TradeContext(
            base_price_changes=view.base.price_changes,
            token_price_changes=TokenContext(
                symbol=snapshot.symbol,
                price_changes=snapshot.price_changes,
                highest_price=snapshot.price,
                score=chosen.score,
            ),
            rationale=rationale,
        )
        rotation = Rotation(
            token_in=view.base_symbol,
            token_out=snapshot.symbol,
            amount_raw=view.base_balance.raw_balance,
            amount=view.base_balance.formatted_balance,
            api_price=snapshot.price,
            context=context,
        )
        return StrategyDecision.rotate(rotation, rationale)

    def _exit(self, view: MarketView, holding: Holding, rationale: str) -> StrategyDecision:
        """Full holding balance back into the base asset."""
        context = TradeContext(
            base_price_changes=view.base.price_changes,
            token_price_changes=TokenContext(
                symbol=holding.snapshot.symbol,
                price_changes=holding.snapshot.price_changes,
                highest_price=holding.entry.highest_price,
            ),
            rationale=rationale,
        )
        rotation = Rotation(
            token_in=holding.balance.symbol,
            token_out=view.base_symbol,
            amount_raw=holding.balance.raw_balance,
            amount=holding.balance.formatted_balance,
            api_price=holding.snapshot.price,
            context=context,
        )
        return StrategyDecision.rotate(rotation, rationale)


class TrailingRotationPolicy(StrategyPolicy):
    """Enter on base momentum, exit on downturn or stop.

    With base above dust, the entry predicate gates a rotation into the best
    ranked candidate. With base at dust, each holding is checked against the
    exit rules in registry order and the first one that fires is sold.
    """

    name = "trailing"

    def __init__(
        self,
        base_dust_threshold: Decimal,
        entry_predicate: EntryPredicate,
        ranking: RankingRule,
        exit_rules: ExitRules,
    ) -> None:
        super().__init__(base_dust_threshold)
        self._entry_predicate = entry_predicate
        self._ranking = ranking
        self._exit_rules = exit_rules

    def needs_candidates(self, view: MarketView) -> bool:
        return self.base_above_dust(view)

    def decide(self, view: MarketView) -> StrategyDecision:
        if self.base_above_dust(view):
            return self._evaluate_entry(view)
        if view.holdings:
            return self._evaluate_exit(view)
        return StrategyDecision.hold("no base balance and no holdings above dust")

    def _evaluate_entry(self, view: MarketView) -> StrategyDecision:
        if not self._entry_predicate.evaluate(view.base):
            return StrategyDecision.hold(
                f"{view.base_symbol} momentum fails {self._entry_predicate.name}"
            )

        chosen = self._ranking.select(view.candidates)
        if chosen is None:
            return StrategyDecision.hold(f"no candidate eligible under {self._ranking.name}")

        rationale = (
            f"{view.base_symbol} momentum passes {self._entry_predicate.name}; "
            f"{chosen.snapshot.symbol} ranked first by {self._ranking.name} "
            f"with {chosen.score}%"
        )
        return self._enter(view, chosen, rationale)

    def _evaluate_exit(self, view: MarketView) -> StrategyDecision:
        for holding in view.holdings:
            reasons = self._exit_rules.triggered(view.base, holding)
            if not holding.entry.known:
                logger.warning(
                    "entry_price_unknown",
                    symbol=holding.balance.symbol,
                    active_rules="market_downturn",
                )
            if reasons:
                return self._exit(
                    view,
                    holding,
                    f"exit {holding.balance.symbol}: {', '.join(reasons)}",
                )
        return StrategyDecision.hold("holding; no exit rule triggered")


class LoserRotationPolicy(StrategyPolicy):
    """Sell everything that is not the current winner, then buy the winner.

    The entry predicate is the gate. Gate open: the ranking picks a winner,
    holdings other than the winner are sold into base one per cycle, and
    once none remain the full base balance buys the winner. Gate closed:
    holdings are sold into base one per cycle.
    """

    name = "loser_rotation"

    def __init__(
        self,
        base_dust_threshold: Decimal,
        entry_predicate: EntryPredicate,
        ranking: RankingRule,
    ) -> None:
        super().__init__(base_dust_threshold)
        self._entry_predicate = entry_predicate
        self._ranking = ranking

    def needs_candidates(self, view: MarketView) -> bool:
        return self._entry_predicate.evaluate(view.base)

    def decide(self, view: MarketView) -> StrategyDecision:
        if not self._entry_predicate.evaluate(view.base):
            if view.holdings:
                holding = view.holdings[0]
                return self._exit(
                    view,
                    holding,
                    f"{view.base_symbol} momentum fails {self._entry_predicate.name}; "
                    f"retreat {holding.balance.symbol} to {view.base_symbol}",
                )
            return StrategyDecision.hold(
                f"{view.base_symbol} momentum fails {self._entry_predicate.name}"
            )

        winner = self._ranking.select(view.candidates)
        if winner is None:
            return StrategyDecision.hold(f"no candidate eligible under {self._ranking.name}")

        for holding in view.holdings:
            if holding.balance.symbol != winner.snapshot.symbol:
                return self._exit(
                    view,
                    holding,
                    f"rotate loser {holding.balance.symbol} to {view.base_symbol}; "
                    f"winner is {winner.snapshot.symbol}",
                )

        if self.base_above_dust(view):
            return self._enter(
                view,
                winner,
                f"buy winner {winner.snapshot.symbol} ranked first by "
                f"{self._ranking.name} with {winner.score}%",
            )
        return StrategyDecision.hold(f"already holding winner {winner.snapshot.symbol}")


def _timeframes(values: list[str]) -> list[Timeframe]:
    return [Timeframe(v) for v in values]


def build_entry_predicate(settings: StrategySettings) -> EntryPredicate:
    if settings.entry_predicate == "momentum":
        return MomentumPredicate(settings.momentum_1h_threshold, settings.momentum_5m_threshold)
    if settings.entry_predicate == "any_above":
        return AnyAbovePredicate(
            _timeframes(settings.any_above_timeframes), settings.any_above_threshold
        )
    return AllPositivePredicate(
        _timeframes(settings.entry_timeframes), settings.null_counts_as_positive
    )


def build_ranking(settings: StrategySettings) -> RankingRule:
    if settings.ranking == "lowest_variation":
        return LowestVariationRanking(
            _timeframes(settings.variation_timeframes), settings.variation_cap
        )
    return HighestGainRanking(_timeframes(settings.gain_timeframes), settings.gain_cap)


def build_policy(settings: StrategySettings) -> StrategyPolicy:
    """Instantiate the configured policy with its rules."""
    entry_predicate = build_entry_predicate(settings)
    ranking = build_ranking(settings)
    if settings.policy == "loser_rotation":
        return LoserRotationPolicy(settings.base_dust_threshold, entry_predicate, ranking)
    exit_rules = ExitRules(
        momentum_1h=settings.exit_momentum_1h_threshold,
        momentum_5m=settings.exit_momentum_5m_threshold,
        trailing_stop_pct=settings.trailing_stop_pct,
        hard_stop_pct=settings.hard_stop_pct,
    )
    return TrailingRotationPolicy(
        settings.base_dust_threshold, entry_predicate, ranking, exit_rules
    )
