"""Async request rate limiting.

A `RateLimiter` is acquired *before* each request so every task that talks to one
host shares a single budget. The pipeline creates one limiter per host per run
and hands it to the clients that need it.
"""

import asyncio
import random
import time
from collections import deque


class RateLimiter:
    """Asynchronous rate limiter for requests against one host.

    This limiter throttles request *start times* to respect:
    - A minimum interval between requests, plus optional random jitter.
    - A maximum number of requests per rolling 60-second window.

    The limiter is safe to share across tasks in a single event loop.

    Args:
        min_interval_seconds: Minimum spacing between request starts.
        max_per_minute: Maximum request starts allowed in the last 60 seconds
            (0 disables the window check).
        jitter_seconds: Upper bound of a uniform random delay added to the
            minimum interval.
    """

    def __init__(
        self,
        *,
        min_interval_seconds: float = 0.5,
        max_per_minute: int = 60,
        jitter_seconds: float = 0.0,
    ) -> None:
        self._min_interval = float(min_interval_seconds)
        self._max_per_minute = int(max_per_minute)
        self._jitter = float(jitter_seconds)
        self._lock = asyncio.Lock()
        self._last: float | None = None
        self._recent: deque[float] = deque()

    def _prune(self, now: float) -> None:
        cutoff = now - 60.0
        while self._recent and self._recent[0] <= cutoff:
            self._recent.popleft()

    async def acquire(self) -> None:
        """Wait until a new request can be started under the configured limits."""
        async with self._lock:
            now = time.time()
            self._prune(now)

            if self._max_per_minute > 0 and len(self._recent) >= self._max_per_minute:
                sleep_for = max(0.0, (self._recent[0] + 60.0) - now)
                if sleep_for > 0:
                    await asyncio.sleep(sleep_for)
                    now = time.time()
                    self._prune(now)

            if self._last is not None:
                interval = self._min_interval
                if self._jitter > 0:
                    interval += random.uniform(0.0, self._jitter)
                sleep_for = (self._last + interval) - now
                if sleep_for > 0:
                    await asyncio.sleep(sleep_for)
                    now = time.time()

            self._last = now
            self._recent.append(now)
