"""Shared key-value store connection management."""

from nucleus_cache.adapters.store.connection import (
    ConnectionOptions,
    ConnectionState,
    RedisConnectionManager,
    create_redis_client,
)
from nucleus_cache.adapters.store.registry import (
    ConnectionRegistry,
    get_connection_manager,
    get_registry,
)
from nucleus_cache.adapters.store.result import StoreFault, StoreResult, run_store_command

__all__ = [
    "ConnectionOptions",
    "ConnectionRegistry",
    "ConnectionState",
    "RedisConnectionManager",
    "StoreFault",
    "StoreResult",
    "create_redis_client",
    "get_connection_manager",
    "get_registry",
    "run_store_command",
]
