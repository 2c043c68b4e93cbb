"""Rate limiting adapters.

This package provides a small abstraction layer so the API can rate-limit
through the shared Redis store in production and fall back to an in-memory
limiter for local development and tests without changing the API layer.
"""

from nucleus_cache.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from nucleus_cache.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter
from nucleus_cache.adapters.rate_limit.redis_sliding_window import (
    RedisSlidingWindowRateLimiter,
)

__all__ = [
    "AbstractRateLimiter",
    "InMemorySlidingWindowRateLimiter",
    "RateLimitResult",
    "RedisSlidingWindowRateLimiter",
]
