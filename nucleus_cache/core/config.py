"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Settings are grouped by concern (store connection, cache, rate limiting,
logging) and composed into a single ``Settings`` object.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from nucleus_cache.adapters.store.connection import ConnectionOptions


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() and not os.getenv("TESTING") else None


# Nested BaseSettings don't inherit env_file, so populate os.environ up front.
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


BackendName = Literal["redis", "memory"]


class StoreSettings(BaseSettings):
    """Connection settings for the shared key-value store (Redis).

    ``connection_string`` takes precedence over host/port/password/db when set.
    """

    connection_string: str | None = Field(
        None,
        description="Redis URL, e.g. redis://:password@localhost:6379/0",
    )
    host: str = Field("localhost", description="Redis host when no URL is given")
    port: int = Field(6379, description="Redis port when no URL is given", ge=1)
    password: SecretStr | None = Field(None, description="Redis password")
    db: int = Field(0, description="Logical Redis database index", ge=0)
    default_ttl_seconds: int = Field(
        3600,
        description="TTL applied by cache writes that do not pass one explicitly",
        ge=1,
    )
    reconnect_cooldown_seconds: float = Field(
        5.0,
        description="Minimum delay after a failed connect before a new attempt",
        ge=0,
    )
    retry_step_ms: int = Field(
        100,
        description="Per-failure increment of the transport retry backoff",
        ge=0,
    )
    retry_cap_ms: int = Field(
        3000,
        description="Upper bound of the transport retry backoff",
        ge=0,
    )
    retry_attempts: int = Field(
        3,
        description="Transport-level retries for connection/timeout errors",
        ge=0,
    )
    socket_timeout_seconds: float = Field(3.0, description="Command socket timeout", gt=0)
    socket_connect_timeout_seconds: float = Field(
        3.0,
        description="Socket connect timeout",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class CacheSettings(BaseSettings):
    """Cache backend selection."""

    backend: BackendName = Field(
        "redis",
        description="Cache backend: redis (shared) or memory (per-process)",
    )
    memory_max_entries: int | None = Field(
        1024,
        description="Capacity of the in-memory backend (LRU eviction beyond it)",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Sliding-window rate limiting configuration."""

    enabled: bool = Field(
        True,
        description="Enable rate limiting of inbound requests per client address",
    )
    backend: BackendName = Field(
        "redis",
        description="Rate limiter backend: redis (shared) or memory (per-process)",
    )
    requests: int = Field(
        1000,
        description="Maximum number of requests allowed per window",
        ge=1,
    )
    window_ms: int = Field(
        60_000,
        description="Sliding window size in milliseconds",
        ge=1,
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )
    key_prefix: str = Field(
        "rate_limit",
        description="Prefix of the per-identifier window keys",
        min_length=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field("json", description="Log line format")
    output: Literal["stdout", "file"] = Field("stdout", description="Log destination")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int | None = Field(
        None,
        description="Rotate the log file after this many bytes (disabled when unset)",
    )
    backup_count: int = Field(5, description="Rotated files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read and echo the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


def _build_store_settings() -> StoreSettings:
    """Build store settings from environment.

    Static type checkers treat fields as constructor arguments, which is not
    how BaseSettings is intended to be used.
    """

    return StoreSettings()  # type: ignore[call-arg]


def _build_cache_settings() -> CacheSettings:
    return CacheSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> RateLimitSettings:
    return RateLimitSettings()  # type: ignore[call-arg]


def _build_log_settings() -> LogSettings:
    return LogSettings()  # type: ignore[call-arg]


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    store: StoreSettings = Field(default_factory=_build_store_settings)
    cache: CacheSettings = Field(default_factory=_build_cache_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )

    def to_connection_options(self) -> "ConnectionOptions":
        """Translate store settings into connection manager options."""

        from nucleus_cache.adapters.store.connection import ConnectionOptions

        store = self.store
        return ConnectionOptions(
            url=store.connection_string,
            host=store.host,
            port=store.port,
            password=store.password.get_secret_value() if store.password else None,
            db=store.db,
            default_ttl=store.default_ttl_seconds,
            reconnect_cooldown_seconds=store.reconnect_cooldown_seconds,
            retry_step_ms=store.retry_step_ms,
            retry_cap_ms=store.retry_cap_ms,
            retry_attempts=store.retry_attempts,
            socket_timeout_seconds=store.socket_timeout_seconds,
            socket_connect_timeout_seconds=store.socket_connect_timeout_seconds,
        )


# Global settings instance - composed from domain-specific settings
settings = Settings()
