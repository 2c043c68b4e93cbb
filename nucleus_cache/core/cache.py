"""Cache dependency for FastAPI routes and services.

The backend is chosen by ``CACHE_BACKEND``:
- ``redis``: ``RedisCache`` over the registry's shared connection manager.
- ``memory``: ``InMemoryCache`` (per-process).
"""

from __future__ import annotations

from nucleus_cache.adapters.cache.base import AbstractCache
from nucleus_cache.adapters.cache.in_memory import InMemoryCache
from nucleus_cache.adapters.cache.redis_cache import RedisCache
from nucleus_cache.adapters.store.registry import get_connection_manager
from nucleus_cache.core.config import settings

_cache: AbstractCache | None = None
_cache_config: tuple[object, ...] | None = None


def get_cache() -> AbstractCache:
    """Return a process-wide cache instance.

    The instance is cached in-module so single-flight state and in-memory
    entries survive across requests. If configuration changes (primarily in
    tests), the cache is rebuilt.

    Returns:
        AbstractCache: Configured cache instance.
    """

    global _cache, _cache_config

    options = settings.to_connection_options()
    config = (
        settings.cache.backend,
        settings.cache.memory_max_entries,
        settings.store.default_ttl_seconds,
        options.endpoint,
    )

    if _cache is None or _cache_config != config:
        if settings.cache.backend == "memory":
            _cache = InMemoryCache(
                default_ttl=settings.store.default_ttl_seconds,
                max_entries=settings.cache.memory_max_entries,
            )
        else:
            _cache = RedisCache(
                get_connection_manager(options),
                default_ttl=settings.store.default_ttl_seconds,
            )
        _cache_config = config

    return _cache
