"""Strategy engine: one decision-and-execution cycle.

The engine gathers the cycle's MarketView from the injected collaborators,
asks the policy for a decision, and executes a rotation if one is returned.
Any signal or execution error propagates to the caller; the journal is
written only after a swap has been confirmed.
"""

from decimal import Decimal

from rotator.config import StrategySettings
from rotator.exceptions import BalanceUnavailableError, JournalCorruptError
from rotator.execution.executor import TradeExecutor
from rotator.journal import TradeJournal
from rotator.logging import get_logger
from rotator.market_data.price_feed import PriceSignalProvider
from rotator.models import (
    Action,
    CycleResult,
    EntryState,
    Holding,
    MarketView,
    TokenBalance,
)
from rotator.strategy.policies import StrategyPolicy
from rotator.wallet.balances import BalanceProvider

logger = get_logger(__name__)


class StrategyEngine:
    """Runs rotation cycles against injected collaborators.

    Args:
        price_feed: Price and momentum source.
        balances: Wallet balance source.
        journal: Trade history (entry price and trailing high).
        executor: Swap executor.
        policy: Decision rule set.
        settings: Strategy settings (base symbol, dust thresholds).
        wallet_address: Wallet whose balances are rotated.
    """

    def __init__(
        self,
        price_feed: PriceSignalProvider,
        balances: BalanceProvider,
        journal: TradeJournal,
        executor: TradeExecutor,
        policy: StrategyPolicy,
        settings: StrategySettings,
        wallet_address: str,
    ) -> None:
        self._price_feed = price_feed
        self._balances = balances
        self._journal = journal
        self._executor = executor
        self._policy = policy
        self._settings = settings
        self._wallet_address = wallet_address

    @property
    def base_symbol(self) -> str:
        return self._settings.base_symbol

    async def run_cycle(self) -> CycleResult:
        """Evaluate the market once and rotate if the policy says so.

        Raises:
            SignalError: Price or balance data needed for the decision is
                unavailable.
            ExecutionError: The swap failed; nothing is journaled.
        """
        view = await self._build_view()
        decision = self._policy.decide(view)

        if decision.action == Action.HOLD:
            logger.info("cycle_hold", policy=self._policy.name, rationale=decision.rationale)
            return CycleResult(decision)

        rotation = decision.rotation
        logger.info(
            "rotation_decided",
            policy=self._policy.name,
            token_in=rotation.token_in,
            token_out=rotation.token_out,
            amount=str(rotation.amount),
            rationale=decision.rationale,
        )

        record = await self._executor.execute_swap(
            rotation.token_in,
            rotation.token_out,
            rotation.amount_raw,
            rotation.context,
            rotation.api_price,
        )
        self._journal.append(record)

        logger.info(
            "rotation_executed",
            token_in=record.token_in,
            token_out=record.token_out,
            tx_hash=record.tx_hash,
        )
        return CycleResult(decision, record)

    async def _build_view(self) -> MarketView:
        base_symbol = self._settings.base_symbol
        base = await self._price_feed.get_price_snapshot(base_symbol)

        balances = await self._balances.get_balances(self._wallet_address)
        base_balance = self._find_balance(balances, base_symbol)

        holdings = []
        for balance in balances:
            if balance.symbol == base_symbol:
                continue
            if balance.formatted_balance <= self._settings.token_dust_threshold:
                continue
            snapshot = await self._price_feed.get_price_snapshot(balance.symbol)
            entry = self._track_entry(balance.symbol, snapshot.price)
            holdings.append(Holding(balance=balance, snapshot=snapshot, entry=entry))

        view = MarketView(
            base_symbol=base_symbol,
            base=base,
            base_balance=base_balance,
            holdings=holdings,
        )

        if self._policy.needs_candidates(view):
            snapshots = await self._price_feed.get_all_price_snapshots()
            view.candidates = [s for s in snapshots if s.symbol != base_symbol]

        logger.debug(
            "market_view_built",
            base_price=str(base.price),
            base_balance=str(base_balance.formatted_balance),
            holdings=[h.balance.symbol for h in holdings],
            candidates=len(view.candidates),
        )
        return view

    def _track_entry(self, symbol: str, observed_price: Decimal) -> EntryState:
        """Recover the entry for a holding and raise its trailing high."""
        entry = self._journal.find_last_rotation_into(symbol)
        if not entry.known:
            return entry

        try:
            self._journal.update_highest_price(symbol, observed_price)
        except JournalCorruptError as e:
            logger.error("highest_price_update_failed", symbol=symbol, error=str(e))

        if entry.highest_price is None or observed_price > entry.highest_price:
            return EntryState(entry_price=entry.entry_price, highest_price=observed_price)
        return entry

    @staticmethod
    def _find_balance(balances: list[TokenBalance], symbol: str) -> TokenBalance:
        for balance in balances:
            if balance.symbol == symbol:
                return balance
        raise BalanceUnavailableError(f"No balance reported for base asset {symbol}")
