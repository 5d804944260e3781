"""Sliding-window admission control for outbound API calls."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable

LOGGER = logging.getLogger(__name__)

MINUTE_MS = 60_000
HOUR_MS = 3_600_000


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class RateLimiter:
    """Admit at most ``max_requests`` calls within any trailing ``window_ms``.

    ``acquire`` suspends the caller until a slot frees up. The lock only
    guards pruning and recording; it is released while the caller sleeps so
    other acquirers can queue behind it.
    """

    def __init__(
        self,
        max_requests: int,
        window_ms: int,
        *,
        clock: Callable[[], float] = _monotonic_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Configure the window; ``clock`` returns milliseconds."""
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        self._max_requests = max_requests
        self._window_ms = window_ms
        self._clock = clock
        self._sleep = sleep
        self._timestamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    @classmethod
    def per_minute(cls, requests: int) -> RateLimiter:
        """Limiter admitting ``requests`` calls per rolling minute."""
        return cls(requests, MINUTE_MS)

    @classmethod
    def per_hour(cls, requests: int) -> RateLimiter:
        """Limiter admitting ``requests`` calls per rolling hour."""
        return cls(requests, HOUR_MS)

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_ms(self) -> int:
        return self._window_ms

    async def acquire(self) -> None:
        """Wait until the window admits another call and record it."""
        while True:
            async with self._lock:
                now = self._clock()
                self._prune(now)
                if len(self._timestamps) < self._max_requests:
                    self._timestamps.append(now)
                    return
                wait_ms = self._timestamps[0] + self._window_ms - now
            if wait_ms > 0:
                LOGGER.debug("Rate limit reached; waiting %.0f ms", wait_ms)
                await self._sleep(wait_ms / 1000)

    async def remaining_requests(self) -> int:
        """Return how many calls the window would admit right now."""
        async with self._lock:
            self._prune(self._clock())
            return max(0, self._max_requests - len(self._timestamps))

    async def reset(self) -> None:
        """Forget every recorded admission."""
        async with self._lock:
            self._timestamps.clear()

    def _prune(self, now: float) -> None:
        cutoff = now - self._window_ms
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()


__all__ = ["HOUR_MS", "MINUTE_MS", "RateLimiter"]
