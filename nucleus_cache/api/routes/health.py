from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Response, status

from nucleus_cache.adapters.cache.base import AbstractCache
from nucleus_cache.core.cache import get_cache

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check.

    Does not touch the key-value store, so it stays green during store
    outages (the service keeps answering in degraded mode).

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/health/ready")
async def readiness_check(
    response: Response,
    cache: Annotated[AbstractCache, Depends(get_cache)],
) -> dict[str, Any]:
    """Readiness check reporting the key-value store connection.

    Attempts a (cool-down limited) connection when the store is not ready and
    answers 503 with ``status: degraded`` if it still is not.
    """

    ready = await cache.ensure_ready()
    store = cache.health()
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "degraded", "store": store}
    return {"status": "ok", "store": store}
