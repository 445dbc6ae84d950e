"""Adhan Notifier — Async Rate Limiter.

Sliding-window limiter that keeps a broadcast under Telegram's global
send limit (about 30 messages per second per bot) when hundreds of
subscribers share the same prayer minute.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque

from src.utils.logger import get_logger

logger = get_logger(__name__)


class AsyncRateLimiter:
    """At most `max_calls` acquisitions per `period` seconds.

    Attributes:
        max_calls: Maximum number of calls allowed within the window.
        period: Window length in seconds.
    """

    def __init__(self, max_calls: int, period_seconds: float = 1.0) -> None:
        if max_calls < 1:
            raise ValueError(f"max_calls must be at least 1, got {max_calls}")
        self.max_calls = max_calls
        self.period = period_seconds
        self._timestamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _cleanup_expired(self, now: float) -> None:
        cutoff = now - self.period
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    async def acquire(self) -> None:
        """Wait until a slot is free, then take it.

        Waiters are served in arrival order because the lock is held
        while sleeping.
        """
        async with self._lock:
            while True:
                now = time.monotonic()
                self._cleanup_expired(now)
                if len(self._timestamps) < self.max_calls:
                    self._timestamps.append(now)
                    return

                wait_time = self._timestamps[0] + self.period - now
                logger.debug(
                    "Rate limit reached (%d/%d). Waiting %.2f seconds...",
                    len(self._timestamps), self.max_calls, wait_time,
                )
                await asyncio.sleep(max(wait_time, 0.0))

    async def __aenter__(self) -> "AsyncRateLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, *args: object) -> None:
        pass

    def __repr__(self) -> str:
        return f"AsyncRateLimiter(max_calls={self.max_calls}, period={self.period}s)"
