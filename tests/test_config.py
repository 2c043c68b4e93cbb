"""Tests for settings parsing and translation into connection options."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from nucleus_cache.core.config import RateLimitSettings, Settings, StoreSettings


def test_store_settings_read_redis_prefix(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REDIS_HOST", "cache.internal")
    monkeypatch.setenv("REDIS_PORT", "6390")
    monkeypatch.setenv("REDIS_PASSWORD", "s3cret")
    monkeypatch.setenv("REDIS_DEFAULT_TTL_SECONDS", "120")

    store = StoreSettings()

    assert store.host == "cache.internal"
    assert store.port == 6390
    assert store.password is not None
    assert "s3cret" not in repr(store)
    assert store.default_ttl_seconds == 120


def test_to_connection_options_maps_store_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REDIS_CONNECTION_STRING", "redis://:s3cret@cache.internal:6390/2")
    monkeypatch.setenv("REDIS_RECONNECT_COOLDOWN_SECONDS", "1.5")

    options = Settings().to_connection_options()

    assert options.url == "redis://:s3cret@cache.internal:6390/2"
    assert options.endpoint == "redis://cache.internal:6390/2"
    assert options.reconnect_cooldown_seconds == 1.5


def test_rate_limit_defaults() -> None:
    cfg = RateLimitSettings()

    assert cfg.requests == 1000
    assert cfg.window_ms == 60_000
    assert cfg.key_prefix == "rate_limit"


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("REDIS_DEFAULT_TTL_SECONDS", "0"),
        ("REDIS_PORT", "0"),
    ],
)
def test_invalid_store_settings_are_rejected(
    monkeypatch: pytest.MonkeyPatch, name: str, value: str
) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ValidationError):
        StoreSettings()
