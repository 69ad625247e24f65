"""Serialized, rate-limited dispatch of outbound market-data calls."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RequestQueue:
    """FIFO queue that runs one request at a time with a minimum spacing.

    ``asyncio.Lock`` wakes waiters in arrival order, so holding it for the
    duration of each call gives FIFO dispatch with a single request in flight.
    """

    def __init__(
        self,
        interval_seconds: float,
        *,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self.interval_seconds = max(0.0, interval_seconds)
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._lock: asyncio.Lock | None = None
        self._last_dispatch: float | None = None
        self.dispatched = 0

    def _get_lock(self) -> asyncio.Lock:
        # Created lazily so the queue can be built outside a running loop
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def submit(self, request: Callable[[], Awaitable[T]]) -> T:
        """Run ``request`` once every earlier submission has been dispatched."""

        async with self._get_lock():
            if self._last_dispatch is not None:
                wait = self.interval_seconds - (self._clock() - self._last_dispatch)
                if wait > 0:
                    logger.debug("Throttling market-data request for %.3fs", wait)
                    await self._sleep(wait)
            self._last_dispatch = self._clock()
            self.dispatched += 1
            return await request()


__all__ = ["RequestQueue"]
