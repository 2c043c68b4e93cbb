"""Tests for the Redis sliding-window rate limiter (fakeredis transport)."""

from __future__ import annotations

import logging
from unittest.mock import Mock

import pytest

from nucleus_cache.adapters.rate_limit.redis_sliding_window import (
    RedisSlidingWindowRateLimiter,
    hash_identifier,
)
from nucleus_cache.adapters.store.connection import RedisConnectionManager

NOW = 1_700_000_000.0


@pytest.fixture
def limiter_clock() -> Mock:
    return Mock(return_value=NOW)


@pytest.fixture
def limiter(manager: RedisConnectionManager, limiter_clock: Mock) -> RedisSlidingWindowRateLimiter:
    return RedisSlidingWindowRateLimiter(manager, limit=5, window_ms=60_000, clock=limiter_clock)


@pytest.mark.asyncio
async def test_admits_limit_requests_then_blocks(limiter: RedisSlidingWindowRateLimiter) -> None:
    results = [await limiter.check("1.2.3.4") for _ in range(6)]

    assert [r.allowed for r in results] == [True] * 5 + [False]
    assert [r.remaining for r in results] == [4, 3, 2, 1, 0, 0]
    assert results[-1].retry_after_seconds == 60
    assert all(r.limit == 5 for r in results)
    assert all(r.reset_time_ms == int(NOW * 1000) + 60_000 for r in results)


@pytest.mark.asyncio
async def test_same_millisecond_requests_are_all_counted(limiter, raw_redis) -> None:
    await limiter.check("client")
    await limiter.check("client")

    assert await raw_redis.zcard("rate_limit:client") == 2


@pytest.mark.asyncio
async def test_window_expires_old_requests(limiter, limiter_clock) -> None:
    for _ in range(6):
        await limiter.check("client")

    limiter_clock.return_value = NOW + 60
    result = await limiter.check("client")

    assert result.allowed is True
    assert result.remaining == 4


@pytest.mark.asyncio
async def test_key_expires_with_window(limiter, raw_redis) -> None:
    await limiter.check("client")

    pttl = await raw_redis.pttl("rate_limit:client")
    assert 0 < pttl <= 60_000


@pytest.mark.asyncio
async def test_custom_key_prefix(manager, limiter_clock, raw_redis) -> None:
    limiter = RedisSlidingWindowRateLimiter(
        manager, limit=1, window_ms=1_000, key_prefix="api", clock=limiter_clock
    )

    await limiter.check("client")

    assert limiter.key_for("client") == "api:client"
    assert await raw_redis.exists("api:client") == 1


@pytest.mark.asyncio
async def test_identifiers_are_isolated(limiter) -> None:
    for _ in range(5):
        await limiter.check("a")

    assert (await limiter.check("a")).allowed is False
    assert (await limiter.check("b")).allowed is True


@pytest.mark.asyncio
async def test_status_does_not_consume(limiter) -> None:
    await limiter.check("client")
    await limiter.check("client")

    first = await limiter.status("client")
    second = await limiter.status("client")

    assert first.remaining == second.remaining == 3
    assert first.allowed is True
    assert first.fail_open is False


@pytest.mark.asyncio
async def test_status_at_exactly_limit(manager, limiter_clock) -> None:
    limiter = RedisSlidingWindowRateLimiter(manager, limit=2, window_ms=60_000, clock=limiter_clock)
    await limiter.check("c")
    await limiter.check("c")

    status = await limiter.status("c")
    following = await limiter.check("c")

    assert status.allowed is True
    assert status.remaining == 0
    assert following.allowed is False


@pytest.mark.asyncio
async def test_status_of_unknown_identifier(limiter) -> None:
    result = await limiter.status("nobody")

    assert result.allowed is True
    assert result.remaining == 5


@pytest.mark.asyncio
async def test_reset_forgets_requests(limiter, raw_redis) -> None:
    for _ in range(6):
        await limiter.check("client")

    await limiter.reset("client")

    assert await raw_redis.exists("rate_limit:client") == 0
    assert (await limiter.check("client")).remaining == 4


@pytest.mark.asyncio
async def test_check_fails_open_when_store_is_down(limiter, fake_server, caplog) -> None:
    fake_server.connected = False

    with caplog.at_level(logging.WARNING):
        result = await limiter.check("client")

    assert result.allowed is True
    assert result.fail_open is True
    assert result.remaining == 4
    assert result.retry_after_seconds is None
    assert any(record.getMessage() == "rate_limit.fail_open" for record in caplog.records)


@pytest.mark.asyncio
async def test_status_fails_open_with_full_allowance(limiter, fake_server) -> None:
    fake_server.connected = False

    result = await limiter.status("client")

    assert result.allowed is True
    assert result.fail_open is True
    assert result.remaining == 5


@pytest.mark.asyncio
async def test_fail_open_after_connection_loss(limiter, manager, fake_server) -> None:
    await limiter.check("client")
    fake_server.connected = False

    result = await limiter.check("client")

    assert result.fail_open is True
    assert manager.is_ready() is False


@pytest.mark.asyncio
async def test_reset_swallows_store_errors(limiter, fake_server) -> None:
    fake_server.connected = False

    await limiter.reset("client")


@pytest.mark.asyncio
async def test_pipeline_error_fails_open(limiter, monkeypatch: pytest.MonkeyPatch) -> None:
    class _Broken:
        def pipeline(self, transaction: bool = True):
            raise TypeError("pipeline unavailable")

    await limiter._manager.connect()
    monkeypatch.setattr(limiter._manager, "_client", _Broken())

    result = await limiter.check("client")

    assert result.fail_open is True


@pytest.mark.asyncio
async def test_empty_identifier_is_rejected(limiter) -> None:
    with pytest.raises(ValueError):
        await limiter.check("")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"limit": 0, "window_ms": 1_000},
        {"limit": 1, "window_ms": 0},
        {"limit": 1, "window_ms": 1_000, "key_prefix": ""},
    ],
)
def test_invalid_constructor_args(manager, kwargs: dict) -> None:
    with pytest.raises(ValueError):
        RedisSlidingWindowRateLimiter(manager, **kwargs)


def test_hash_identifier_hides_address() -> None:
    hashed = hash_identifier("203.0.113.7")

    assert len(hashed) == 16
    assert "203.0.113.7" not in hashed
    assert hashed == hash_identifier("203.0.113.7")
    assert hashed != hash_identifier("203.0.113.8")
