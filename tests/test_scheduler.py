"""Tests for Scheduler -- bounded retry, cadence selection, and graceful stop."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from rotator.config import SchedulerSettings
from rotator.exceptions import SwapTimeoutError, UpstreamError
from rotator.models import CycleResult, StrategyDecision, TradeRecord
from rotator.scheduler import Scheduler
from rotator.strategy.engine import StrategyEngine


def _hold() -> CycleResult:
    return CycleResult(StrategyDecision.hold("quiet"))


def _rotated() -> CycleResult:
    return CycleResult(StrategyDecision.hold("n/a"), record=MagicMock(spec=TradeRecord))


@pytest.fixture
def engine() -> AsyncMock:
    return AsyncMock(spec=StrategyEngine)


class TestRetry:
    """Failing cycles are retried with a fixed delay up to max_attempts."""

    @pytest.mark.asyncio
    async def test_price_failure_retries_then_defers(self, engine, scheduler_settings) -> None:
        engine.run_cycle.side_effect = UpstreamError("DEXTools returned HTTP 503")
        scheduler = Scheduler(engine, scheduler_settings)

        with patch("rotator.scheduler.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            result = await scheduler.run_cycle_with_retry()

        assert result is None
        assert engine.run_cycle.await_count == 3
        assert mock_sleep.await_count == 2
        for call in mock_sleep.await_args_list:
            assert call.args == (15.0,)
        assert scheduler.next_interval(result) == 300.0

    @pytest.mark.asyncio
    async def test_recovers_on_later_attempt(self, engine, scheduler_settings) -> None:
        engine.run_cycle.side_effect = [SwapTimeoutError("slow"), _hold()]
        scheduler = Scheduler(engine, scheduler_settings)

        with patch("rotator.scheduler.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            result = await scheduler.run_cycle_with_retry()

        assert result is not None
        assert result.rotated is False
        assert engine.run_cycle.await_count == 2
        mock_sleep.assert_awaited_once_with(15.0)
        assert scheduler.cycles_run == 1

    @pytest.mark.asyncio
    async def test_unexpected_errors_are_retried_too(self, engine, scheduler_settings) -> None:
        engine.run_cycle.side_effect = [KeyError("boom"), _hold()]
        scheduler = Scheduler(engine, scheduler_settings)

        with patch("rotator.scheduler.asyncio.sleep", new_callable=AsyncMock):
            result = await scheduler.run_cycle_with_retry()

        assert result is not None

    @pytest.mark.asyncio
    async def test_single_attempt_never_sleeps(self, engine) -> None:
        engine.run_cycle.side_effect = UpstreamError("down")
        scheduler = Scheduler(engine, SchedulerSettings(max_attempts=1))

        with patch("rotator.scheduler.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            assert await scheduler.run_cycle_with_retry() is None

        mock_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stop_between_attempts_skips_retry(self, engine, scheduler_settings) -> None:
        scheduler = Scheduler(engine, scheduler_settings)

        async def _fail_and_stop() -> CycleResult:
            await scheduler.stop()
            raise UpstreamError("down")

        engine.run_cycle.side_effect = _fail_and_stop

        with patch("rotator.scheduler.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            assert await scheduler.run_cycle_with_retry() is None

        assert engine.run_cycle.await_count == 1
        mock_sleep.assert_not_awaited()


class TestCadence:
    def test_adaptive_intervals(self, engine, scheduler_settings) -> None:
        scheduler = Scheduler(engine, scheduler_settings)
        assert scheduler.next_interval(_hold()) == 300.0
        assert scheduler.next_interval(_rotated()) == 1200.0
        assert scheduler.next_interval(None) == 300.0

    def test_fixed_interval(self, engine) -> None:
        scheduler = Scheduler(engine, SchedulerSettings(cadence="fixed", interval_seconds=600))
        assert scheduler.next_interval(_hold()) == 600.0
        assert scheduler.next_interval(_rotated()) == 600.0
        assert scheduler.next_interval(None) == 600.0


class TestLoop:
    @pytest.mark.asyncio
    async def test_runs_immediately_and_stops_after_cycle(self, engine, scheduler_settings) -> None:
        scheduler = Scheduler(engine, scheduler_settings)

        async def _cycle_then_stop() -> CycleResult:
            await scheduler.stop()
            return _hold()

        engine.run_cycle.side_effect = _cycle_then_stop

        await asyncio.wait_for(scheduler.start(), timeout=5)

        assert engine.run_cycle.await_count == 1
        assert scheduler.cycles_run == 1
        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_stop_cuts_idle_wait_short(self, engine, scheduler_settings) -> None:
        engine.run_cycle.return_value = _hold()
        scheduler = Scheduler(engine, scheduler_settings)

        task = asyncio.create_task(scheduler.start())
        while engine.run_cycle.await_count == 0:
            await asyncio.sleep(0.01)
        await scheduler.stop()
        await asyncio.wait_for(task, timeout=5)

        assert engine.run_cycle.await_count == 1

    @pytest.mark.asyncio
    async def test_cycles_do_not_overlap(self, engine, scheduler_settings) -> None:
        active = 0
        peak = 0

        async def _slow_cycle() -> CycleResult:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return _hold()

        engine.run_cycle.side_effect = _slow_cycle
        scheduler = Scheduler(engine, scheduler_settings)

        await asyncio.gather(*(scheduler.run_cycle_with_retry() for _ in range(3)))

        assert peak == 1
        assert engine.run_cycle.await_count == 3
