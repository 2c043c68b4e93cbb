"""Rate limiting dependency for FastAPI routes.

This module wires the rate limiting adapter into the HTTP layer.

Design goals:
- Minimal coupling: API routes depend on a dependency function only.
- Swap-friendly: the storage backend (Redis or memory) sits behind an
  abstract interface.
- Availability first: a store outage admits requests (the limiter fails open).

Rate limiting strategy:
- Sliding window per client address.
- The client address is the first ``X-Forwarded-For`` entry (set by the
  reverse proxy), else the socket peer, else ``anonymous``.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status

from nucleus_cache.adapters.rate_limit.base import AbstractRateLimiter
from nucleus_cache.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter
from nucleus_cache.adapters.rate_limit.redis_sliding_window import (
    RedisSlidingWindowRateLimiter,
    hash_identifier,
)
from nucleus_cache.adapters.store.registry import get_connection_manager
from nucleus_cache.core.config import settings

logger = logging.getLogger(__name__)

ANONYMOUS_CLIENT = "anonymous"

_limiter: AbstractRateLimiter | None = None
_limiter_config: tuple[object, ...] | None = None


def get_rate_limiter() -> AbstractRateLimiter:
    """Return a process-wide rate limiter instance.

    The instance is cached in-module to preserve state across requests.
    If configuration changes (primarily in tests), the limiter is rebuilt.

    Returns:
        AbstractRateLimiter: Configured limiter instance.
    """

    global _limiter, _limiter_config

    cfg = settings.rate_limit
    options = settings.to_connection_options()
    config = (cfg.backend, cfg.requests, cfg.window_ms, cfg.key_prefix, options.endpoint)

    if _limiter is None or _limiter_config != config:
        if cfg.backend == "memory":
            _limiter = InMemorySlidingWindowRateLimiter(
                limit=cfg.requests,
                window_ms=cfg.window_ms,
            )
        else:
            _limiter = RedisSlidingWindowRateLimiter(
                get_connection_manager(options),
                limit=cfg.requests,
                window_ms=cfg.window_ms,
                key_prefix=cfg.key_prefix,
            )
        _limiter_config = config

    return _limiter


def client_identifier(request: Request) -> str:
    """Resolve the rate limit identifier for the current request.

    Args:
        request: FastAPI request.

    Returns:
        str: Client address as reported by the proxy or the socket.
    """

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    if request.client and request.client.host:
        return request.client.host
    return ANONYMOUS_CLIENT


async def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency enforcing rate limits.

    When enabled, records one request for the caller. If the caller exceeds
    the configured rate, raises HTTP 429.

    Args:
        request: FastAPI request.

    Raises:
        HTTPException: 429 Too Many Requests when rate limit is exceeded.
    """

    cfg = settings.rate_limit
    if not cfg.enabled:
        return

    limiter = get_rate_limiter()
    identifier = client_identifier(request)
    key_hash = hash_identifier(identifier)

    result = await limiter.check(identifier)
    if result.allowed:
        logger.debug(
            "rate_limit.allowed",
            extra={
                "key_hash": key_hash,
                "limit": result.limit,
                "remaining": result.remaining,
                "window_ms": cfg.window_ms,
                "fail_open": result.fail_open,
            },
        )
        return

    retry_after = result.retry_after_seconds or 0
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_hash": key_hash,
            "limit": result.limit,
            "remaining": result.remaining,
            "window_ms": cfg.window_ms,
            "retry_after_s": retry_after,
        },
    )

    headers: dict[str, str] = {}
    if cfg.include_headers:
        headers["Retry-After"] = str(retry_after)
        headers["X-RateLimit-Limit"] = str(result.limit)
        headers["X-RateLimit-Remaining"] = str(result.remaining)
        headers["X-RateLimit-Reset"] = str(result.reset_at)

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Rate limit exceeded",
        headers=headers or None,
    )
