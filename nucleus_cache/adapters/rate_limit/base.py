"""Rate limiter interfaces.

The API depends on this abstraction (not the concrete implementation) so the
storage backend (shared Redis or per-process memory) can be swapped by
configuration.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check/status operation.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_time_ms: UNIX epoch milliseconds at which the window has fully
            slid past the latest request.
        retry_after_seconds: Suggested wait time in seconds when blocked.
        fail_open: True when the backend failed and the request was admitted
            by default.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_time_ms: int
    retry_after_seconds: int | None = None
    fail_open: bool = False

    @property
    def reset_at(self) -> int:
        """Reset time in UNIX epoch seconds (rounded up)."""
        return -(-self.reset_time_ms // 1000)


class AbstractRateLimiter(ABC):
    """Interface for sliding-window rate limiters."""

    backend: str = "abstract"

    def __init__(self, *, limit: int, window_ms: int) -> None:
        """Validate and store the window parameters.

        Raises:
            ValueError: If limit or window_ms are invalid.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")
        self._limit = limit
        self._window_ms = window_ms

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_ms(self) -> int:
        return self._window_ms

    @abstractmethod
    async def check(self, identifier: str) -> RateLimitResult:
        """Record one request for ``identifier`` and decide admission.

        Args:
            identifier: Unique identifier (e.g., client IP address).

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    async def status(self, identifier: str) -> RateLimitResult:
        """Report the current window for ``identifier`` without recording a request.

        Uses the same ``count <= limit`` rule as ``check``, so a window holding
        exactly ``limit`` requests reports ``allowed`` with ``remaining == 0``
        while the next ``check`` is rejected.
        """
        raise NotImplementedError

    @abstractmethod
    async def reset(self, identifier: str) -> None:
        """Forget all recorded requests for ``identifier``."""
        raise NotImplementedError

    def _evaluate(self, *, count: int, now_ms: int) -> RateLimitResult:
        """Build the result for ``count`` requests in the window ending at ``now_ms``.

        ``count`` includes the request being checked, so ``count <= limit``
        admits exactly ``limit`` requests per window.
        """
        allowed = count <= self._limit
        reset_time_ms = now_ms + self._window_ms
        return RateLimitResult(
            allowed=allowed,
            limit=self._limit,
            remaining=max(0, self._limit - count),
            reset_time_ms=reset_time_ms,
            retry_after_seconds=None if allowed else max(1, -(-self._window_ms // 1000)),
        )

    def _fail_open(self, *, now_ms: int, remaining: int) -> RateLimitResult:
        return RateLimitResult(
            allowed=True,
            limit=self._limit,
            remaining=remaining,
            reset_time_ms=now_ms + self._window_ms,
            fail_open=True,
        )
