"""Cache interfaces.

Request handlers depend on ``AbstractCache`` so the storage backend (shared
Redis or per-process memory) can be chosen by configuration. The read-through
helpers (``wrap_with_cache`` and the ``cached`` decorator) live here because
they only need ``lookup``/``set`` and behave identically for every backend.
"""

from __future__ import annotations

import asyncio
import inspect
import math
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any


class _ProducerAbandoned(Exception):
    """The caller running a shared producer was cancelled before it finished."""


@dataclass(frozen=True)
class CacheLookup:
    """Result of a cache read with an explicit presence flag.

    Attributes:
        found: Whether an entry existed and could be decoded.
        value: Decoded value (``None`` when not found, or a stored JSON null).
    """

    found: bool
    value: Any = None

    @classmethod
    def miss(cls) -> "CacheLookup":
        return cls(found=False)


def normalize_ttl(ttl: float | None, default_ttl: int) -> int | None:
    """Resolve a caller TTL to whole seconds.

    Args:
        ttl: Requested TTL in seconds; ``None`` selects ``default_ttl``.
        default_ttl: Strictly positive fallback TTL.

    Returns:
        Expiry in whole seconds, or ``None`` for "no expiry" (ttl <= 0).
        Fractional values are rounded up.
    """
    if ttl is None:
        return default_ttl
    if ttl <= 0:
        return None
    return int(math.ceil(ttl))


class AbstractCache(ABC):
    """Interface for JSON value caches with TTL support."""

    backend: str = "abstract"

    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Future[Any]] = {}

    @abstractmethod
    async def lookup(self, key: str) -> CacheLookup:
        """Read ``key`` reporting presence explicitly.

        Missing, undecodable and unreachable entries are all misses.
        """
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: Any, *, ttl: float | None = None) -> bool:
        """Store ``value`` under ``key``.

        Args:
            key: Cache key.
            value: JSON-serializable value.
            ttl: Seconds to live; ``None`` uses the default, ``<= 0`` never expires.

        Returns:
            True if stored, False otherwise. Never raises.
        """
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> int:
        """Remove ``key``; return the number of keys removed (0 on failure)."""
        raise NotImplementedError

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Return True if ``key`` is present (False on failure)."""
        raise NotImplementedError

    @abstractmethod
    async def clear(self) -> None:
        """Remove every entry. Raises when the backend is not usable."""
        raise NotImplementedError

    @abstractmethod
    def health(self) -> dict[str, Any]:
        """Return a JSON-safe description of backend readiness."""
        raise NotImplementedError

    async def ensure_ready(self) -> bool:
        """Make the backend usable if possible; return whether it is. Never raises."""
        return True

    async def get(self, key: str) -> Any | None:
        """Return the cached value or None."""
        return (await self.lookup(key)).value

    async def wrap_with_cache(
        self,
        producer: Callable[[], Any],
        *,
        key: str,
        ttl: float | None = None,
        treat_falsy_as_miss: bool = False,
    ) -> Any:
        """Return the cached value for ``key`` or compute, store and return it.

        Concurrent misses for the same key on this instance share a single
        producer call. Producer exceptions propagate to every waiter and
        nothing is stored. If the caller running the producer is cancelled,
        waiters are not: they look the key up again and one of them takes
        over the producer call.

        Args:
            producer: Zero-argument callable, sync or async.
            key: Cache key.
            ttl: TTL for the stored result (see ``set``).
            treat_falsy_as_miss: Recompute when the cached value is falsy
                (``""``, ``0``, ``False``, empty containers, ``None``).

        Returns:
            Cached or freshly produced value.
        """
        while True:
            cached = await self.lookup(key)
            if cached.found and (cached.value or not treat_falsy_as_miss):
                return cached.value

            inflight = self._inflight.get(key)
            if inflight is None:
                break
            try:
                return await asyncio.shield(inflight)
            except _ProducerAbandoned:
                continue

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            value = producer()
            if inspect.isawaitable(value):
                value = await value
            await self.set(key, value, ttl=ttl)
        except asyncio.CancelledError:
            # Waiters retry instead of inheriting this caller's cancellation.
            future.set_exception(_ProducerAbandoned(key))
            future.exception()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Mark retrieved; waiters (if any) still receive it.
            future.exception()
            raise
        else:
            future.set_result(value)
            return value
        finally:
            self._inflight.pop(key, None)

    def cached(
        self,
        key_builder: Callable[..., str],
        *,
        ttl: float | None = None,
        treat_falsy_as_miss: bool = False,
    ) -> Callable[[Callable[..., Any]], Callable[..., Awaitable[Any]]]:
        """Decorator caching a function's result under ``key_builder(*args, **kwargs)``.

        The wrapped function may be sync or async; the wrapper is always async.
        """

        def decorator(func: Callable[..., Any]) -> Callable[..., Awaitable[Any]]:
            @wraps(func)
            async def wrapper(*args: Any, **kwargs: Any) -> Any:
                return await self.wrap_with_cache(
                    lambda: func(*args, **kwargs),
                    key=key_builder(*args, **kwargs),
                    ttl=ttl,
                    treat_falsy_as_miss=treat_falsy_as_miss,
                )

            return wrapper

        return decorator
