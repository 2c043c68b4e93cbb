"""Application factory for the FastAPI app.

Centralizes app construction (metadata, lifespan, middleware, handlers,
routers) to keep construction testable.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI

from nucleus_cache.adapters.store.registry import get_connection_manager, get_registry
from nucleus_cache.api.routes import health_router, rate_limit_router
from nucleus_cache.core.config import settings
from nucleus_cache.core.exception_handlers import setup_exception_handlers
from nucleus_cache.core.logging import configure_logging
from nucleus_cache.core.middleware import request_id_middleware
from nucleus_cache.core.rate_limit import enforce_rate_limit

logger = logging.getLogger(__name__)


def _uses_store() -> bool:
    return settings.cache.backend == "redis" or (
        settings.rate_limit.enabled and settings.rate_limit.backend == "redis"
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Warm the store connection at startup and close it at shutdown.

    A store that is down at startup does not prevent the app from serving;
    requests run in degraded mode until a reconnect succeeds.
    """
    if _uses_store():
        manager = get_connection_manager()
        if not await manager.ensure_connected():
            logger.warning("startup.store_unavailable", extra={"endpoint": manager.endpoint})
    try:
        yield
    finally:
        await get_registry().close_all()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Nucleus Cache",
        description=(
            "Shared Redis cache and sliding-window rate limiting. Every /v1 "
            "route is rate limited per client address; the limiter fails open "
            "when the store is unavailable."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(health_router)
    app.include_router(
        rate_limit_router,
        prefix="/v1",
        dependencies=[Depends(enforce_rate_limit)],
    )

    return app
