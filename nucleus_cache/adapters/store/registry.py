"""Registry enforcing one connection manager per store endpoint.

Instead of a class-level singleton, callers hold a ``ConnectionRegistry``
(the process default one is reachable through ``get_connection_manager``)
and ask it for the manager of an endpoint. Options passed for an endpoint
that already has a manager are ignored; the first configuration wins.
"""

from __future__ import annotations

import asyncio
import logging
import threading

from nucleus_cache.adapters.store.connection import (
    ClientFactory,
    ConnectionOptions,
    RedisConnectionManager,
    create_redis_client,
)
from nucleus_cache.core.config import settings

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Endpoint-keyed collection of connection managers."""

    def __init__(self, *, client_factory: ClientFactory = create_redis_client) -> None:
        self._client_factory = client_factory
        self._managers: dict[str, RedisConnectionManager] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._managers)

    def get_or_create(self, options: ConnectionOptions) -> RedisConnectionManager:
        """Return the manager for ``options.endpoint``, creating it on first use.

        Args:
            options: Connection options; only used when no manager exists yet.

        Returns:
            The endpoint's connection manager.
        """
        endpoint = options.endpoint
        with self._lock:
            manager = self._managers.get(endpoint)
            if manager is None:
                manager = RedisConnectionManager(options, client_factory=self._client_factory)
                self._managers[endpoint] = manager
                logger.debug("store.registry.created", extra={"endpoint": endpoint})
            elif manager.options != options:
                logger.debug(
                    "store.registry.options_ignored",
                    extra={"endpoint": endpoint},
                )
            return manager

    def get(self, endpoint: str) -> RedisConnectionManager | None:
        with self._lock:
            return self._managers.get(endpoint)

    async def close_all(self) -> None:
        """Disconnect every registered manager.

        Managers stay registered, so holders of a manager can reconnect it later
        without a second manager appearing for the same endpoint.
        """
        with self._lock:
            managers = list(self._managers.values())
        if managers:
            await asyncio.gather(*(manager.disconnect() for manager in managers))


_default_registry = ConnectionRegistry()


def get_registry() -> ConnectionRegistry:
    """Return the process default registry."""
    return _default_registry


def get_connection_manager(options: ConnectionOptions | None = None) -> RedisConnectionManager:
    """Return the default registry's manager for ``options`` or the configured store.

    Args:
        options: Explicit options; defaults to the application settings.
    """
    if options is None:
        options = settings.to_connection_options()
    return _default_registry.get_or_create(options)
