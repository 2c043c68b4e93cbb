"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets the TESTING environment variable to prevent loading the .env file
during tests and points every backend at process memory by default, so no
test needs a running Redis server.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Any  # noqa: E402
from unittest.mock import Mock  # noqa: E402

import fakeredis  # noqa: E402
import fakeredis.aioredis  # noqa: E402
import pytest  # noqa: E402

from nucleus_cache.adapters.store.connection import (  # noqa: E402
    ConnectionOptions,
    RedisConnectionManager,
)


class CountingFactory:
    """Client factory handing out fakeredis clients bound to one server."""

    def __init__(self, server: fakeredis.FakeServer) -> None:
        self.server = server
        self.calls = 0

    def __call__(self, options: ConnectionOptions) -> Any:
        self.calls += 1
        return fakeredis.aioredis.FakeRedis(server=self.server, decode_responses=True)


@pytest.fixture
def fake_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
def client_factory(fake_server: fakeredis.FakeServer) -> CountingFactory:
    return CountingFactory(fake_server)


@pytest.fixture
def clock() -> Mock:
    """Monotonic clock for reconnect cool-downs."""
    return Mock(return_value=100.0)


@pytest.fixture
def manager(client_factory: CountingFactory, clock: Mock) -> RedisConnectionManager:
    options = ConnectionOptions(default_ttl=60, reconnect_cooldown_seconds=5.0)
    return RedisConnectionManager(options, client_factory=client_factory, clock=clock)


@pytest.fixture
def raw_redis(fake_server: fakeredis.FakeServer) -> Any:
    """Direct client on the same fake server, for inspecting stored state."""
    return fakeredis.aioredis.FakeRedis(server=fake_server, decode_responses=True)
