"""Shared test fixtures for the rotation agent."""

import pytest

from rotator.config import SchedulerSettings, StrategySettings
from rotator.journal import TradeJournal
from rotator.models import TokenConfig


@pytest.fixture
def strategy_settings() -> StrategySettings:
    """Return StrategySettings with the default trailing policy on WETH."""
    return StrategySettings(
        base_symbol="WETH",
        policy="trailing",
        entry_predicate="all_positive",
        ranking="highest_gain",
    )


@pytest.fixture
def scheduler_settings() -> SchedulerSettings:
    return SchedulerSettings(
        cadence="adaptive",
        interval_seconds=600.0,
        hold_interval_seconds=300.0,
        rotation_interval_seconds=1200.0,
        max_attempts=3,
        retry_delay_seconds=15.0,
    )


@pytest.fixture
def registry() -> dict[str, TokenConfig]:
    """WETH plus two 18-decimal candidates, in evaluation order."""
    return {
        "WETH": TokenConfig(
            symbol="WETH",
            address="0x4200000000000000000000000000000000000006",
            decimals=18,
            name="Wrapped Ether",
        ),
        "X": TokenConfig(
            symbol="X",
            address="0x1111111111111111111111111111111111111111",
            decimals=18,
            name="Token X",
        ),
        "Y": TokenConfig(
            symbol="Y",
            address="0x2222222222222222222222222222222222222222",
            decimals=18,
            name="Token Y",
        ),
    }


@pytest.fixture
def journal(tmp_path) -> TradeJournal:
    return TradeJournal(tmp_path / "trades.json", base_symbol="WETH")
