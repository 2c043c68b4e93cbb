"""In-memory TTL cache with LRU eviction.

Per-process only: running multiple workers gives each its own cache. Used
for local development and tests when no shared store is available; behaves
like ``RedisCache`` (JSON encoding, TTL policy, fallbacks) otherwise.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

from nucleus_cache.adapters.cache.base import AbstractCache, CacheLookup, normalize_ttl

logger = logging.getLogger(__name__)


@dataclass
class CacheItem:
    """Container for an encoded value with expiration metadata."""

    payload: str
    expires_at: float | None


class InMemoryCache(AbstractCache):
    """Thread-safe, in-memory TTL cache with LRU eviction.

    Attributes:
        default_ttl: TTL applied to writes without an explicit one.
        max_entries: Maximum number of cached items (None for unlimited).
    """

    backend = "memory"

    def __init__(
        self,
        *,
        default_ttl: int = 3600,
        max_entries: int | None = 1024,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the cache.

        Raises:
            ValueError: If default_ttl or max_entries are invalid.
        """
        super().__init__()
        if default_ttl < 1:
            raise ValueError("default_ttl must be >= 1")
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")

        self._default_ttl = default_ttl
        self._max_entries = max_entries
        self._clock = clock
        self._store: OrderedDict[str, CacheItem] = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"InMemoryCache(default_ttl={self._default_ttl}, max_entries={self._max_entries}, "
            f"size={len(self._store)}, hits={self._hits}, misses={self._misses}, "
            f"evictions={self._evictions})"
        )

    async def lookup(self, key: str) -> CacheLookup:
        with self._lock:
            item = self._store.get(key)
            if item is None:
                self._misses += 1
                logger.debug("cache.miss", extra={"cache_key": key[:64], "reason": "not_found"})
                return CacheLookup.miss()

            if self._is_expired(item):
                self._evict_single(key)
                self._misses += 1
                logger.debug("cache.miss", extra={"cache_key": key[:64], "reason": "expired"})
                return CacheLookup.miss()

            self._hits += 1
            self._store.move_to_end(key)
            payload = item.payload

        logger.debug("cache.hit", extra={"cache_key": key[:64]})
        return CacheLookup(found=True, value=json.loads(payload))

    async def set(self, key: str, value: Any, *, ttl: float | None = None) -> bool:
        expiry = normalize_ttl(ttl, self._default_ttl)
        try:
            payload = json.dumps(value, default=str)
        except (TypeError, ValueError) as exc:
            logger.warning(
                "cache.serialize_failed",
                extra={"cache_key": key[:64], "error_type": type(exc).__name__},
            )
            return False

        with self._lock:
            self._evict_expired_locked()
            expires_at = self._clock() + expiry if expiry is not None else None
            self._store[key] = CacheItem(payload=payload, expires_at=expires_at)
            self._store.move_to_end(key)
            self._evict_if_over_capacity_locked()
            size = len(self._store)

        logger.debug("cache.set", extra={"cache_key": key[:64], "size": size, "ttl_s": expiry})
        return True

    async def delete(self, key: str) -> int:
        with self._lock:
            item = self._store.pop(key, None)
            if item is None or self._is_expired(item):
                return 0
            return 1

    async def exists(self, key: str) -> bool:
        with self._lock:
            item = self._store.get(key)
            if item is None:
                return False
            if self._is_expired(item):
                self._evict_single(key)
                return False
            return True

    async def clear(self) -> None:
        """Remove all cached entries and reset counters."""
        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def stats(self) -> dict[str, int | None]:
        """Return lightweight cache metrics without exposing values."""
        with self._lock:
            return {
                "default_ttl": self._default_ttl,
                "max_entries": self._max_entries,
                "entries": len(self._store),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def health(self) -> dict[str, Any]:
        return {"backend": self.backend, "state": "connected", "ready": True, "open": True}

    def _evict_single(self, key: str) -> None:
        if key in self._store:
            self._store.pop(key, None)
            self._evictions += 1

    def _evict_expired_locked(self) -> None:
        now = self._clock()
        expired_keys = [
            k for k, item in self._store.items() if item.expires_at is not None and item.expires_at <= now
        ]
        for key in expired_keys:
            self._evict_single(key)

    def _evict_if_over_capacity_locked(self) -> None:
        if self._max_entries is None:
            return

        while len(self._store) > self._max_entries:
            # popitem(last=False) removes the least recently used entry
            self._store.popitem(last=False)
            self._evictions += 1

    def _is_expired(self, item: CacheItem) -> bool:
        return item.expires_at is not None and self._clock() >= item.expires_at
