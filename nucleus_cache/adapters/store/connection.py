"""Connection lifecycle for the shared Redis store.

``RedisConnectionManager`` owns the one transport client used by every store
adapter in the process. Adapters borrow the client through ``client`` and
never open or close it themselves.

Lifecycle:
    DISCONNECTED -> CONNECTING -> CONNECTED
                         |             |
                         v             v (report_failure)
                       FAILED ------> CONNECTING (after the cool-down)

Notes:
- Concurrent ``connect()`` calls share one in-flight attempt.
- After a failed attempt, new attempts are refused until
  ``reconnect_cooldown_seconds`` have passed, so an unreachable store costs one
  connect timeout per cool-down instead of one per request.
- Transient command failures are retried inside redis-py with a linear,
  capped backoff (see ``LinearCappedBackoff``).
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.backoff import AbstractBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from nucleus_cache.core.errors import StoreUnavailableAppError

logger = logging.getLogger(__name__)

_DEFAULT_PORT = 6379


class ConnectionState(str, enum.Enum):
    """Observable state of a connection manager."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


@dataclass(frozen=True)
class ConnectionOptions:
    """How to reach the store and how to behave when it is unreachable.

    Attributes:
        url: Connection string; takes precedence over host/port/password/db.
        host: Store host.
        port: Store port.
        password: Store password.
        db: Logical database index.
        default_ttl: TTL in seconds used by cache writes without an explicit one.
        reconnect_cooldown_seconds: Delay after a failed attempt before the
            next one is allowed.
        retry_step_ms: Backoff increment per consecutive transport failure.
        retry_cap_ms: Backoff ceiling.
        retry_attempts: Transport retries for connection/timeout errors.
        socket_timeout_seconds: Command socket timeout.
        socket_connect_timeout_seconds: Connect socket timeout.
    """

    url: str | None = None
    host: str = "localhost"
    port: int = _DEFAULT_PORT
    password: str | None = None
    db: int = 0
    default_ttl: int = 3600
    reconnect_cooldown_seconds: float = 5.0
    retry_step_ms: int = 100
    retry_cap_ms: int = 3000
    retry_attempts: int = 3
    socket_timeout_seconds: float = 3.0
    socket_connect_timeout_seconds: float = 3.0

    def __post_init__(self) -> None:
        if self.default_ttl < 1:
            raise ValueError("default_ttl must be >= 1")
        if self.reconnect_cooldown_seconds < 0:
            raise ValueError("reconnect_cooldown_seconds must be >= 0")

    @property
    def endpoint(self) -> str:
        """Endpoint identity without credentials, e.g. ``redis://localhost:6379/0``."""

        if not self.url:
            return f"redis://{self.host}:{self.port}/{self.db}"

        parsed = urlparse(self.url)
        if parsed.scheme == "unix":
            return f"unix://{parsed.path}"

        host = parsed.hostname or "localhost"
        port = parsed.port or _DEFAULT_PORT
        db = parsed.path.lstrip("/") or "0"
        return f"{parsed.scheme}://{host}:{port}/{db}"


class LinearCappedBackoff(AbstractBackoff):
    """Backoff of ``min(failures * step, cap)`` seconds."""

    def __init__(self, step: float, cap: float) -> None:
        self._step = step
        self._cap = cap

    def compute(self, failures: int) -> float:
        return min(failures * self._step, self._cap)


ClientFactory = Callable[[ConnectionOptions], Any]


def create_redis_client(options: ConnectionOptions) -> redis.Redis:
    """Build the asyncio Redis client for ``options``.

    The client connects lazily; the manager verifies it with PING.
    """

    retry = Retry(
        LinearCappedBackoff(options.retry_step_ms / 1000, options.retry_cap_ms / 1000),
        options.retry_attempts,
        supported_errors=(RedisConnectionError, RedisTimeoutError),
    )
    common: dict[str, Any] = {
        "encoding": "utf-8",
        "decode_responses": True,
        "socket_timeout": options.socket_timeout_seconds,
        "socket_connect_timeout": options.socket_connect_timeout_seconds,
        "socket_keepalive": True,
        "health_check_interval": 15,
        "retry": retry,
        "retry_on_error": [RedisConnectionError, RedisTimeoutError],
    }
    if options.url:
        return redis.Redis.from_url(options.url, **common)
    return redis.Redis(
        host=options.host,
        port=options.port,
        password=options.password,
        db=options.db,
        **common,
    )


class RedisConnectionManager:
    """Owner of the shared Redis client for one endpoint.

    Instances are normally obtained from a ``ConnectionRegistry`` so that a
    process holds at most one manager (and one client) per endpoint.
    """

    def __init__(
        self,
        options: ConnectionOptions,
        *,
        client_factory: ClientFactory = create_redis_client,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the manager without connecting.

        Args:
            options: Endpoint and resilience options.
            client_factory: Builds a transport client from options (tests
                inject fakes here).
            clock: Monotonic time source used for the reconnect cool-down.
        """
        self._options = options
        self._client_factory = client_factory
        self._clock = clock
        self._client: Any | None = None
        self._state = ConnectionState.DISCONNECTED
        self._pending: asyncio.Future[bool] | None = None
        self._failed_at: float | None = None
        self._last_error: BaseException | None = None

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"RedisConnectionManager(endpoint={self.endpoint!r}, state={self._state.value})"

    @property
    def options(self) -> ConnectionOptions:
        return self._options

    @property
    def endpoint(self) -> str:
        return self._options.endpoint

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def last_error(self) -> BaseException | None:
        """Error of the most recent failed attempt or reported fault."""
        return self._last_error

    @property
    def client(self) -> Any:
        """Return the live client.

        Raises:
            StoreUnavailableAppError: If no client has been established.
        """
        if self._client is None:
            raise StoreUnavailableAppError(
                code="store_not_connected",
                message="Key-value store client is not connected",
                details={"endpoint": self.endpoint},
            )
        return self._client

    def is_ready(self) -> bool:
        """Return True when commands can be issued."""
        return self._state is ConnectionState.CONNECTED and self._client is not None

    def is_open(self) -> bool:
        """Return True while connecting or connected."""
        return self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED)

    def _cooldown_remaining(self) -> float:
        if self._state is not ConnectionState.FAILED or self._failed_at is None:
            return 0.0
        elapsed = self._clock() - self._failed_at
        return max(0.0, self._options.reconnect_cooldown_seconds - elapsed)

    async def connect(self) -> None:
        """Establish the connection, joining any attempt already in flight.

        Raises:
            StoreUnavailableAppError: If the attempt fails or the cool-down
                after a previous failure has not elapsed.
        """
        if self.is_ready():
            return

        pending = self._pending
        if pending is None:
            cooldown = self._cooldown_remaining()
            if cooldown > 0:
                raise StoreUnavailableAppError(
                    code="store_reconnect_cooldown",
                    message="Key-value store is unavailable; reconnect deferred",
                    details={"endpoint": self.endpoint, "retry_after": round(cooldown, 3)},
                )
            pending = asyncio.ensure_future(self._open())
            self._pending = pending

        # Shielded so one cancelled waiter does not abort the shared attempt.
        connected = await asyncio.shield(pending)
        if not connected:
            error = self._last_error
            raise StoreUnavailableAppError(
                code="store_connect_failed",
                message="Could not connect to the key-value store",
                details={
                    "endpoint": self.endpoint,
                    "error_type": type(error).__name__ if error else "unknown",
                },
            )

    async def _open(self) -> bool:
        """Run one connection attempt. Never raises."""
        self._state = ConnectionState.CONNECTING
        stale, self._client = self._client, None
        try:
            if stale is not None:
                await self._close_client(stale)

            client = self._client_factory(self._options)
            try:
                await client.ping()
            except BaseException:
                await self._close_client(client)
                raise

            self._client = client
            self._state = ConnectionState.CONNECTED
            self._failed_at = None
            self._last_error = None
            logger.info("store.connect.ok", extra={"endpoint": self.endpoint})
            return True
        except Exception as exc:
            self._state = ConnectionState.FAILED
            self._failed_at = self._clock()
            self._last_error = exc
            logger.warning(
                "store.connect.failed",
                extra={
                    "endpoint": self.endpoint,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                    "cooldown_s": self._options.reconnect_cooldown_seconds,
                },
            )
            return False
        finally:
            self._pending = None

    async def ensure_connected(self) -> bool:
        """Connect if needed; return readiness without raising."""
        if self.is_ready():
            return True
        try:
            await self.connect()
        except StoreUnavailableAppError as exc:
            logger.debug(
                "store.ensure_connected.unavailable",
                extra={"endpoint": self.endpoint, "error_code": exc.code},
            )
            return False
        return self.is_ready()

    def report_failure(self, exc: BaseException) -> None:
        """Mark the connection unhealthy after a mid-command transport fault.

        The client is kept until the next attempt replaces it; new attempts
        wait for the cool-down.
        """
        if self._state is ConnectionState.DISCONNECTED:
            return
        self._state = ConnectionState.FAILED
        self._failed_at = self._clock()
        self._last_error = exc
        logger.warning(
            "store.connection.lost",
            extra={
                "endpoint": self.endpoint,
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
            },
        )

    async def disconnect(self) -> None:
        """Close the client. Safe to call repeatedly and concurrently."""
        pending = self._pending
        if pending is not None:
            await asyncio.shield(pending)

        client, self._client = self._client, None
        was_open = self._state is not ConnectionState.DISCONNECTED
        self._state = ConnectionState.DISCONNECTED
        self._failed_at = None
        if client is None:
            return

        await self._close_client(client)
        if was_open:
            logger.info("store.disconnect", extra={"endpoint": self.endpoint})

    async def _close_client(self, client: Any) -> None:
        try:
            await client.aclose()
        except (RedisError, OSError, RuntimeError) as exc:
            logger.debug(
                "store.close.failed",
                extra={"endpoint": self.endpoint, "error_type": type(exc).__name__},
            )
