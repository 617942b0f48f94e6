"""Minimum-spacing gate for outbound calls to shared upstream dependencies.

Every price lookup, balance read, and chain call the agent makes goes
through one RateLimiter instance. Calls are released in request order
(asyncio.Lock wakes waiters FIFO) and no two gated calls start closer
together than min_interval seconds. There is no priority or fairness beyond
arrival order.
"""

import asyncio
import inspect
import time
from collections.abc import Callable
from typing import Any

from rotator.logging import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """Serializes call starts with a fixed minimum spacing.

    Args:
        min_interval: Seconds between the start of consecutive gated calls.
    """

    def __init__(self, min_interval: float = 1.0) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self._min_interval = min_interval
        self._lock = asyncio.Lock()
        self._last_start: float | None = None

    @property
    def min_interval(self) -> float:
        return self._min_interval

    async def acquire(self) -> None:
        """Wait until the next call may start, then claim the slot."""
        async with self._lock:
            if self._last_start is not None:
                wait = self._last_start + self._min_interval - time.monotonic()
                if wait > 0:
                    logger.debug("rate_limit_wait", wait_seconds=round(wait, 3))
                    await asyncio.sleep(wait)
            self._last_start = time.monotonic()

    async def call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run fn behind the gate.

        Coroutine functions are awaited. Plain callables (blocking web3
        calls) run in a worker thread so the event loop stays responsive.
        """
        await self.acquire()
        if inspect.iscoroutinefunction(fn):
            return await fn(*args, **kwargs)
        result = await asyncio.to_thread(fn, *args, **kwargs)
        if inspect.isawaitable(result):
            return await result
        return result
