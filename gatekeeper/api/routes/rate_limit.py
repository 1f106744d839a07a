from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from gatekeeper.core.auth import get_request_context
from gatekeeper.core.identity import RequestContext
from gatekeeper.core.rate_limit import get_rate_limiter
from gatekeeper.schemas.admission import RateLimitStatusResponse
from gatekeeper.services.rate_limiter import STANDARD, RateLimiter

router = APIRouter(tags=["Rate limit"])


@router.get("/rate-limit/status", response_model=RateLimitStatusResponse)
def rate_limit_status(
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
) -> RateLimitStatusResponse:
    """Report the caller's standard-window usage.

    Read only: calling this endpoint never counts against the window.
    """

    status = limiter.get_status(ctx, max_requests=STANDARD.max_requests)
    return RateLimitStatusResponse(
        requests=status.requests,
        remaining=status.remaining,
        reset_at=status.reset_at,
        limit=STANDARD.max_requests,
    )
