"""Redis sliding-window rate limiter.

Each identifier owns a sorted set ``<prefix>:<identifier>`` whose members are
request tokens scored by their timestamp in milliseconds. A check runs one
MULTI/EXEC transaction:

    ZREMRANGEBYSCORE key 0 <now - window>   # drop requests outside the window
    ZADD key <now> <token>                  # record this request
    ZCARD key                               # count requests in the window
    PEXPIRE key <window>                    # let idle windows disappear

Notes:
- Fail open: if the store is unreachable or the transaction fails, the request
  is admitted and the fault is logged. Rate limiting must never cause an outage.
- Tokens carry a random suffix so two requests in the same millisecond are
  both counted.
- Rejected requests are recorded too; a client that keeps hammering stays
  blocked until it slows down.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import time
from typing import Any, Callable

from nucleus_cache.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from nucleus_cache.adapters.store.connection import RedisConnectionManager
from nucleus_cache.adapters.store.result import StoreFault, StoreResult, run_store_command

logger = logging.getLogger(__name__)


def hash_identifier(identifier: str) -> str:
    """Hash an identifier for logging without exposing client addresses."""
    return hashlib.sha256(identifier.encode()).hexdigest()[:16]


class RedisSlidingWindowRateLimiter(AbstractRateLimiter):
    """Sliding-window limiter shared by every process using the same store."""

    backend = "redis"

    def __init__(
        self,
        manager: RedisConnectionManager,
        *,
        limit: int,
        window_ms: int,
        key_prefix: str = "rate_limit",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            manager: Connection manager owning the Redis client.
            limit: Maximum number of requests per window.
            window_ms: Window size in milliseconds.
            key_prefix: Prefix of the per-identifier sorted set keys.
            clock: Time source returning UNIX time in seconds.

        Raises:
            ValueError: If limit, window_ms or key_prefix are invalid.
        """
        super().__init__(limit=limit, window_ms=window_ms)
        if not key_prefix:
            raise ValueError("key_prefix must be a non-empty string")
        self._manager = manager
        self._key_prefix = key_prefix
        self._clock = clock

    def key_for(self, identifier: str) -> str:
        """Return the store key holding ``identifier``'s window."""
        if not identifier:
            raise ValueError("identifier must be a non-empty string")
        return f"{self._key_prefix}:{identifier}"

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def _transaction(
        self,
        operation: str,
        queue: Callable[[Any], None],
    ) -> StoreResult[list[Any]]:
        """Run the commands queued by ``queue`` in one MULTI/EXEC round trip."""
        if not await self._manager.ensure_connected():
            return StoreResult.failure(StoreFault.unavailable(operation))

        async def _execute() -> list[Any]:
            async with self._manager.client.pipeline(transaction=True) as pipe:
                queue(pipe)
                return await pipe.execute()

        return await run_store_command(
            operation,
            _execute,
            on_connection_fault=self._manager.report_failure,
        )

    async def check(self, identifier: str) -> RateLimitResult:
        key = self.key_for(identifier)
        now_ms = self._now_ms()
        window_start = now_ms - self._window_ms
        token = f"{now_ms}-{secrets.token_hex(4)}"

        def _queue(pipe: Any) -> None:
            pipe.zremrangebyscore(key, 0, window_start)
            pipe.zadd(key, {token: now_ms})
            pipe.zcard(key)
            pipe.pexpire(key, self._window_ms)

        result = await self._transaction("rate_limit.check", _queue)
        count = self._count_from(result, index=2)
        if count is None:
            self._log_fail_open("check", identifier, result.fault)
            return self._fail_open(now_ms=now_ms, remaining=self._limit - 1)

        return self._evaluate(count=count, now_ms=now_ms)

    async def status(self, identifier: str) -> RateLimitResult:
        key = self.key_for(identifier)
        now_ms = self._now_ms()
        window_start = now_ms - self._window_ms

        def _queue(pipe: Any) -> None:
            pipe.zremrangebyscore(key, 0, window_start)
            pipe.zcard(key)

        result = await self._transaction("rate_limit.status", _queue)
        count = self._count_from(result, index=1)
        if count is None:
            self._log_fail_open("status", identifier, result.fault)
            return self._fail_open(now_ms=now_ms, remaining=self._limit)

        return self._evaluate(count=count, now_ms=now_ms)

    async def reset(self, identifier: str) -> None:
        key = self.key_for(identifier)
        if not await self._manager.ensure_connected():
            logger.warning(
                "rate_limit.reset_failed",
                extra={"key_hash": hash_identifier(identifier), "reason": "unavailable"},
            )
            return

        result = await run_store_command(
            "rate_limit.reset",
            lambda: self._manager.client.delete(key),
            on_connection_fault=self._manager.report_failure,
        )
        if result.ok:
            logger.info("rate_limit.reset", extra={"key_hash": hash_identifier(identifier)})

    @staticmethod
    def _count_from(result: StoreResult[list[Any]], *, index: int) -> int | None:
        """Extract the ZCARD reply, or None when the transaction did not yield one."""
        if not result.ok or not result.value or len(result.value) <= index:
            return None
        reply = result.value[index]
        if isinstance(reply, bool) or not isinstance(reply, int):
            return None
        return reply

    def _log_fail_open(self, operation: str, identifier: str, fault: StoreFault | None) -> None:
        logger.warning(
            "rate_limit.fail_open",
            extra={
                "operation": operation,
                "key_hash": hash_identifier(identifier),
                "error_type": fault.error_type if fault else "unexpected_reply",
                "limit": self._limit,
                "window_ms": self._window_ms,
            },
        )
