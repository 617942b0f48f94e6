"""Cycle scheduler with bounded retry and adaptive cadence.

Runs a strategy cycle immediately on start, then waits an interval chosen
from the outcome of the previous cycle:

- fixed: always interval_seconds
- adaptive: rotation_interval_seconds after an executed rotation,
  hold_interval_seconds after a HOLD or a cycle that failed every attempt

A failing cycle is retried up to max_attempts times with a fixed
retry_delay_seconds between attempts. When the attempts are exhausted the
failure is logged and the loop moves on to the next scheduled cycle; the
scheduler itself never stops on a cycle error.
"""

import asyncio
from uuid import uuid4

from rotator.config import SchedulerSettings
from rotator.exceptions import RotatorError
from rotator.logging import cycle_context, get_logger
from rotator.models import CycleResult
from rotator.strategy.engine import StrategyEngine

logger = get_logger(__name__)


class Scheduler:
    """Drives StrategyEngine cycles until stopped.

    Args:
        engine: The strategy engine to run.
        settings: Cadence and retry configuration.
    """

    def __init__(self, engine: StrategyEngine, settings: SchedulerSettings) -> None:
        self._engine = engine
        self._settings = settings
        self._running = False
        self._stop_event = asyncio.Event()
        self._cycle_lock = asyncio.Lock()
        self._cycles_run = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def cycles_run(self) -> int:
        return self._cycles_run

    async def start(self) -> None:
        """Run cycles until stop() is called."""
        logger.info(
            "scheduler_starting",
            cadence=self._settings.cadence,
            max_attempts=self._settings.max_attempts,
        )
        self._running = True
        try:
            await self._run_loop()
        finally:
            self._running = False
            logger.info("scheduler_stopped", cycles_run=self._cycles_run)

    async def stop(self) -> None:
        """Stop after the running cycle; an idle wait is cut short."""
        logger.info("scheduler_stopping_gracefully")
        self._stop_event.set()

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            result = await self.run_cycle_with_retry()
            interval = self.next_interval(result)
            logger.info(
                "next_cycle_scheduled",
                in_seconds=interval,
                after="rotation" if result and result.rotated else "hold_or_failure",
            )
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    async def run_cycle_with_retry(self) -> CycleResult | None:
        """Run one cycle, retrying failures with a fixed delay.

        Returns:
            The cycle result, or None if every attempt failed (or a stop was
            requested between attempts).
        """
        cycle_id = uuid4().hex[:8]
        max_attempts = self._settings.max_attempts

        for attempt in range(1, max_attempts + 1):
            with cycle_context(cycle_id, attempt):
                try:
                    async with self._cycle_lock:
                        result = await self._engine.run_cycle()
                    self._cycles_run += 1
                    return result
                except RotatorError as e:
                    logger.warning(
                        "cycle_failed",
                        error_type=type(e).__name__,
                        error=str(e),
                    )
                except Exception as e:
                    logger.error("cycle_error", error=str(e), exc_info=True)

            if attempt < max_attempts:
                if self._stop_event.is_set():
                    break
                logger.info(
                    "cycle_retry_scheduled",
                    cycle=cycle_id,
                    next_attempt=attempt + 1,
                    delay_seconds=self._settings.retry_delay_seconds,
                )
                await asyncio.sleep(self._settings.retry_delay_seconds)

        logger.error("cycle_retries_exhausted", cycle=cycle_id, attempts=attempt)
        return None

    def next_interval(self, result: CycleResult | None) -> float:
        """Seconds to wait before the next cycle."""
        if self._settings.cadence == "fixed":
            return self._settings.interval_seconds
        if result is not None and result.rotated:
            return self._settings.rotation_interval_seconds
        return self._settings.hold_interval_seconds
