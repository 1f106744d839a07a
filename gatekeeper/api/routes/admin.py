"""Administrative invalidation endpoints.

Both operations are state-changing: they pass the strict rate limit, the
admin role check and a single-use CSRF token, in that order.

The strict limit (5 requests) counts against the same per-IP window as the
other presets. A client that already made 5 or more requests through other
routes is refused on its first admin call until that window resets; the
429 then reports the length of the shared window and its remaining time.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from gatekeeper.core.auth import require_admin
from gatekeeper.core.csrf import enforce_single_use_csrf, get_csrf_guard
from gatekeeper.core.identity import AuthenticatedUser
from gatekeeper.core.rate_limit import enforce_rate_limit, get_rate_limiter
from gatekeeper.schemas.admission import AdmissionErrorResponse, ClearedResponse, RateLimitedResponse
from gatekeeper.services.csrf_guard import CsrfGuard
from gatekeeper.services.rate_limiter import STRICT, RateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[
        Depends(enforce_rate_limit(STRICT)),
        Depends(require_admin),
        Depends(enforce_single_use_csrf),
    ],
    responses={403: {"model": AdmissionErrorResponse}, 429: {"model": RateLimitedResponse}},
)


@router.delete("/csrf-tokens", response_model=ClearedResponse)
def clear_csrf_tokens(
    admin: Annotated[AuthenticatedUser, Depends(require_admin)],
    guard: Annotated[CsrfGuard, Depends(get_csrf_guard)],
    identifier: Annotated[
        str | None,
        Query(description="Requester identifier (e.g. user_42); omit to clear every token."),
    ] = None,
) -> ClearedResponse:
    """Invalidate CSRF tokens, globally or for one requester."""

    removed = guard.clear_tokens(identifier)
    logger.info("admin.csrf_tokens_cleared", extra={"admin_id": admin.id, "removed": removed})
    return ClearedResponse(cleared=removed, identifier=identifier)


@router.delete("/rate-limits", response_model=ClearedResponse)
def clear_rate_limits(
    admin: Annotated[AuthenticatedUser, Depends(require_admin)],
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    identifier: Annotated[
        str | None,
        Query(description="Limiter identifier (IP address or user_<id>); omit to reset every window."),
    ] = None,
) -> ClearedResponse:
    """Reset rate limit windows, globally or for one identifier."""

    removed = limiter.clear(identifier)
    logger.info("admin.rate_limits_cleared", extra={"admin_id": admin.id, "removed": removed})
    return ClearedResponse(cleared=removed, identifier=identifier)
