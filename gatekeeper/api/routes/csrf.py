from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from gatekeeper.core.auth import get_request_context
from gatekeeper.core.csrf import enforce_csrf, get_csrf_guard
from gatekeeper.core.identity import RequestContext
from gatekeeper.core.rate_limit import enforce_rate_limit
from gatekeeper.schemas.admission import AdmissionErrorResponse, CsrfTokenResponse, RateLimitedResponse
from gatekeeper.services.csrf_guard import CsrfGuard, extract_token
from gatekeeper.services.rate_limiter import RELAXED, STANDARD

router = APIRouter(tags=["CSRF"])


@router.get(
    "/csrf-token",
    response_model=CsrfTokenResponse,
    dependencies=[Depends(enforce_rate_limit(RELAXED))],
    responses={429: {"model": RateLimitedResponse}},
)
def get_csrf_token(
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    guard: Annotated[CsrfGuard, Depends(get_csrf_guard)],
) -> CsrfTokenResponse:
    """Issue a CSRF token bound to the caller.

    Authenticated callers get a token bound to their user id; anonymous
    callers get one bound to their address and user agent. A token issued
    anonymously stops working once the same client authenticates, so
    clients should fetch a new one after logging in.

    Requests here count against the caller's shared per-IP window, which
    the admin routes also consume under the strict preset.
    """

    token = guard.get_token(ctx)
    return CsrfTokenResponse(csrf_token=token, expires_in=guard.lifetime_seconds)


@router.post(
    "/csrf-token/refresh",
    response_model=CsrfTokenResponse,
    dependencies=[Depends(enforce_rate_limit(STANDARD)), Depends(enforce_csrf)],
    responses={403: {"model": AdmissionErrorResponse}, 429: {"model": RateLimitedResponse}},
)
def refresh_csrf_token(
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    guard: Annotated[CsrfGuard, Depends(get_csrf_guard)],
) -> CsrfTokenResponse:
    """Rotate the caller's CSRF token.

    The token presented with the request (already validated) is invalidated
    and a new one is returned.
    """

    token = guard.refresh_token(ctx, extract_token(ctx))
    return CsrfTokenResponse(csrf_token=token, expires_in=guard.lifetime_seconds)
