from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from nucleus_cache.adapters.rate_limit.base import AbstractRateLimiter
from nucleus_cache.core.rate_limit import client_identifier, get_rate_limiter

router = APIRouter(prefix="/rate-limit", tags=["Rate limit"])


class RateLimitStatus(BaseModel):
    """Current sliding-window usage for the calling client."""

    allowed: bool = Field(
        ...,
        description=(
            "Whether the window count is within the limit. A window at exactly "
            "the limit reports allowed with 0 remaining; the next request is rejected"
        ),
    )
    limit: int = Field(..., description="Maximum requests per window")
    remaining: int = Field(..., description="Requests left in the current window")
    reset_time_ms: int = Field(..., description="Epoch milliseconds when the window resets")
    fail_open: bool = Field(
        False,
        description="True when the limiter backend is unavailable and admits by default",
    )


@router.get("", response_model=RateLimitStatus)
async def rate_limit_status(
    request: Request,
    limiter: Annotated[AbstractRateLimiter, Depends(get_rate_limiter)],
) -> RateLimitStatus:
    """Report the caller's window without consuming from it.

    The request that reaches this handler has already passed (and been
    recorded by) the rate limit dependency.
    """

    result = await limiter.status(client_identifier(request))
    return RateLimitStatus(
        allowed=result.allowed,
        limit=result.limit,
        remaining=result.remaining,
        reset_time_ms=result.reset_time_ms,
        fail_open=result.fail_open,
    )
