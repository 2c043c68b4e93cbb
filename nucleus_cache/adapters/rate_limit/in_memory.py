"""In-memory sliding-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
- Same admission rule as the Redis limiter (requests recorded in the last
  ``window_ms``, current one included, must not exceed ``limit``).
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable

from nucleus_cache.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult


class InMemorySlidingWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter keeping a deque of request timestamps per identifier.

    Important:
        This limiter is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits.
    """

    backend = "memory"

    def __init__(
        self,
        *,
        limit: int,
        window_ms: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            limit: Maximum number of requests per window.
            window_ms: Window size in milliseconds.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If limit or window_ms are invalid.
        """
        super().__init__(limit=limit, window_ms=window_ms)
        self._clock = clock
        self._lock = threading.RLock()
        self._requests_by_key: dict[str, deque[int]] = {}

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _purge_locked(self, identifier: str, now_ms: int) -> deque[int]:
        """Drop timestamps at or before the window start; return the live deque."""
        window_start = now_ms - self._window_ms
        timestamps = self._requests_by_key.setdefault(identifier, deque())
        while timestamps and timestamps[0] <= window_start:
            timestamps.popleft()
        return timestamps

    async def check(self, identifier: str) -> RateLimitResult:
        if not identifier:
            raise ValueError("identifier must be a non-empty string")

        now_ms = self._now_ms()
        with self._lock:
            timestamps = self._purge_locked(identifier, now_ms)
            timestamps.append(now_ms)
            count = len(timestamps)

        return self._evaluate(count=count, now_ms=now_ms)

    async def status(self, identifier: str) -> RateLimitResult:
        if not identifier:
            raise ValueError("identifier must be a non-empty string")

        now_ms = self._now_ms()
        with self._lock:
            timestamps = self._purge_locked(identifier, now_ms)
            count = len(timestamps)
            if not timestamps:
                self._requests_by_key.pop(identifier, None)

        return self._evaluate(count=count, now_ms=now_ms)

    async def reset(self, identifier: str) -> None:
        with self._lock:
            self._requests_by_key.pop(identifier, None)
