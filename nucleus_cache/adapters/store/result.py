"""Explicit outcome of a single store round trip.

Store adapters run every command through ``run_store_command`` and receive a
``StoreResult``: either a value or a ``StoreFault`` describing what went
wrong. Public adapter methods then map faults to their documented fallback
values, which keeps the degrade-instead-of-raise policy visible in one place.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

T = TypeVar("T")

logger = logging.getLogger(__name__)

# Faults that mean the transport itself is unhealthy (vs. a bad command/value).
CONNECTION_FAULTS: tuple[type[BaseException], ...] = (
    RedisConnectionError,
    RedisTimeoutError,
    ConnectionError,
    TimeoutError,
)


@dataclass(frozen=True)
class StoreFault:
    """Descriptor of a failed store operation.

    Attributes:
        operation: Logical operation name (e.g. ``cache.get``).
        error_type: Exception class name.
        message: Exception message.
        connection: True when the fault indicates a lost/unreachable store.
    """

    operation: str
    error_type: str
    message: str
    connection: bool = False

    @classmethod
    def from_exception(cls, operation: str, exc: BaseException) -> "StoreFault":
        return cls(
            operation=operation,
            error_type=type(exc).__name__,
            message=str(exc),
            connection=isinstance(exc, CONNECTION_FAULTS),
        )

    @classmethod
    def unavailable(cls, operation: str) -> "StoreFault":
        return cls(
            operation=operation,
            error_type="StoreUnavailable",
            message="store is not connected",
            connection=True,
        )


@dataclass(frozen=True)
class StoreResult(Generic[T]):
    """Either a successful value or a fault, never both."""

    value: T | None = None
    fault: StoreFault | None = None

    @property
    def ok(self) -> bool:
        return self.fault is None

    @classmethod
    def success(cls, value: T) -> "StoreResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, fault: StoreFault) -> "StoreResult[T]":
        return cls(fault=fault)

    def value_or(self, default: T) -> T:
        """Return the value on success, otherwise ``default``."""
        if self.fault is not None:
            return default
        return self.value  # type: ignore[return-value]


async def run_store_command(
    operation: str,
    command: Callable[[], Awaitable[T]],
    *,
    on_connection_fault: Callable[[BaseException], None] | None = None,
) -> StoreResult[T]:
    """Await ``command`` and capture any store or codec error as a fault.

    Args:
        operation: Logical operation name used in the fault and logs.
        command: Zero-argument coroutine factory issuing the store commands.
        on_connection_fault: Called with the exception when the transport
            itself failed, so the connection manager can mark itself unhealthy.

    Returns:
        StoreResult holding the command's value or the captured fault.
    """

    try:
        return StoreResult.success(await command())
    except (RedisError, OSError, ValueError, TypeError) as exc:
        fault = StoreFault.from_exception(operation, exc)
        if fault.connection and on_connection_fault is not None:
            on_connection_fault(exc)
        logger.warning(
            "store.command.failed",
            extra={
                "operation": operation,
                "error_type": fault.error_type,
                "error_msg": fault.message,
                "connection_fault": fault.connection,
            },
        )
        return StoreResult.failure(fault)
