"""Cache adapters.

``RedisCache`` shares entries across processes through the key-value store;
``InMemoryCache`` keeps them per process. Both implement ``AbstractCache``.
"""

from nucleus_cache.adapters.cache.base import AbstractCache, CacheLookup, normalize_ttl
from nucleus_cache.adapters.cache.in_memory import InMemoryCache
from nucleus_cache.adapters.cache.redis_cache import RedisCache

__all__ = [
    "AbstractCache",
    "CacheLookup",
    "InMemoryCache",
    "RedisCache",
    "normalize_ttl",
]
