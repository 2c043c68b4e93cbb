"""Redis-backed JSON cache.

Values are stored as JSON text. Anything outside the JSON data model is
written as its ``str()`` form, so datetimes, sets and custom objects come
back as strings rather than the original type.

Every operation first asks the connection manager to ensure connectivity.
Store and codec failures are captured as ``StoreResult`` faults and mapped to
the method's fallback value; only ``clear`` raises.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from nucleus_cache.adapters.cache.base import AbstractCache, CacheLookup, normalize_ttl
from nucleus_cache.adapters.store.connection import RedisConnectionManager
from nucleus_cache.adapters.store.result import StoreFault, StoreResult, run_store_command
from nucleus_cache.core.errors import CacheAppError, StoreUnavailableAppError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _short_key(key: str) -> str:
    return key[:64]


class RedisCache(AbstractCache):
    """Typed cache facade over the shared Redis connection."""

    backend = "redis"

    def __init__(self, manager: RedisConnectionManager, *, default_ttl: int | None = None) -> None:
        """Initialize the cache.

        Args:
            manager: Connection manager owning the Redis client.
            default_ttl: Overrides the manager's configured default TTL.

        Raises:
            ValueError: If default_ttl is not strictly positive.
        """
        super().__init__()
        resolved = default_ttl if default_ttl is not None else manager.options.default_ttl
        if resolved < 1:
            raise ValueError("default_ttl must be >= 1")
        self._manager = manager
        self._default_ttl = resolved

    @property
    def default_ttl(self) -> int:
        return self._default_ttl

    async def _run(self, operation: str, command: Callable[[], Awaitable[T]]) -> StoreResult[T]:
        if not await self._manager.ensure_connected():
            return StoreResult.failure(StoreFault.unavailable(operation))
        return await run_store_command(
            operation,
            command,
            on_connection_fault=self._manager.report_failure,
        )

    async def lookup(self, key: str) -> CacheLookup:
        result = await self._run("cache.get", lambda: self._manager.client.get(key))
        raw = result.value_or(None)
        if raw is None:
            logger.debug(
                "cache.miss",
                extra={
                    "cache_key": _short_key(key),
                    "reason": "not_found" if result.ok else "unavailable",
                },
            )
            return CacheLookup.miss()

        try:
            value = json.loads(raw)
        except ValueError:
            logger.warning("cache.corrupt_entry", extra={"cache_key": _short_key(key)})
            return CacheLookup.miss()

        logger.debug("cache.hit", extra={"cache_key": _short_key(key)})
        return CacheLookup(found=True, value=value)

    async def set(self, key: str, value: Any, *, ttl: float | None = None) -> bool:
        expiry = normalize_ttl(ttl, self._default_ttl)
        try:
            payload = json.dumps(value, default=str)
        except (TypeError, ValueError) as exc:
            logger.warning(
                "cache.serialize_failed",
                extra={
                    "cache_key": _short_key(key),
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            return False

        result = await self._run(
            "cache.set",
            lambda: self._manager.client.set(key, payload, ex=expiry),
        )
        if result.ok:
            logger.debug("cache.set", extra={"cache_key": _short_key(key), "ttl_s": expiry})
        return result.ok

    async def delete(self, key: str) -> int:
        result = await self._run("cache.delete", lambda: self._manager.client.delete(key))
        return int(result.value_or(0) or 0)

    async def exists(self, key: str) -> bool:
        result = await self._run("cache.exists", lambda: self._manager.client.exists(key))
        return int(result.value_or(0) or 0) > 0

    async def clear(self) -> None:
        """Flush the whole logical database. Intended for tests and maintenance.

        Raises:
            StoreUnavailableAppError: If the store is not ready.
            CacheAppError: If the flush command fails.
        """
        if not await self._manager.ensure_connected():
            raise StoreUnavailableAppError(
                code="store_not_ready",
                message="Cannot clear the cache while the key-value store is unavailable",
                details={"endpoint": self._manager.endpoint},
            )

        result = await run_store_command(
            "cache.clear",
            lambda: self._manager.client.flushdb(),
            on_connection_fault=self._manager.report_failure,
        )
        if result.fault is not None:
            raise CacheAppError(
                code="cache_clear_failed",
                message="Failed to clear the cache",
                details={
                    "endpoint": self._manager.endpoint,
                    "operation": result.fault.operation,
                    "error_type": result.fault.error_type,
                },
            )
        logger.warning("cache.cleared", extra={"endpoint": self._manager.endpoint})

    async def ensure_ready(self) -> bool:
        return await self._manager.ensure_connected()

    def health(self) -> dict[str, Any]:
        return {
            "backend": self.backend,
            "endpoint": self._manager.endpoint,
            "state": self._manager.state.value,
            "ready": self._manager.is_ready(),
            "open": self._manager.is_open(),
        }
