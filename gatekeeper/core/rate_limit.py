"""Rate limiting dependencies for FastAPI routes.

This module wires the rate limiter service into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on a dependency factory only.
- Swap-friendly: window storage lives behind the keyed cache interface.
- No module-level state: the limiter is built by the app factory and read
  from ``app.state``.

Rate limiting runs before the CSRF check, so a flood of forged requests is
throttled without touching the token store.
"""

from __future__ import annotations

import logging
from typing import Annotated, Callable

from fastapi import Depends, Request

from gatekeeper.adapters.cache.base import AbstractKeyedCache
from gatekeeper.adapters.rate_limit.cache_window import CacheFixedWindowRateLimiter
from gatekeeper.core.auth import get_request_context
from gatekeeper.core.config import settings
from gatekeeper.core.identity import RequestContext
from gatekeeper.services.rate_limiter import STANDARD, RateLimiter, RateLimitPreset

logger = logging.getLogger(__name__)


def build_rate_limiter(cache: AbstractKeyedCache) -> RateLimiter:
    """Create the rate limiter service on top of a keyed cache."""

    return RateLimiter(CacheFixedWindowRateLimiter(cache))


def get_rate_limiter(request: Request) -> RateLimiter:
    """Return the application's rate limiter."""

    return request.app.state.rate_limiter


def enforce_rate_limit(preset: RateLimitPreset = STANDARD) -> Callable[..., None]:
    """Build a FastAPI dependency enforcing a rate limit preset.

    When enabled, consumes 1 unit from the requester's budget. If the
    requester exceeds the preset, ``RateLimited`` propagates and the
    exception handler answers 429.

    Usage:
        @router.post("/login", dependencies=[Depends(enforce_rate_limit(STRICT))])

    Args:
        preset: Limits to apply.

    Returns:
        Dependency callable.
    """

    # Plain def: FastAPI runs it in the threadpool, so a blocking cache
    # backend (Redis) never stalls the event loop.
    def _enforce(
        ctx: Annotated[RequestContext, Depends(get_request_context)],
        limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    ) -> None:
        if not settings.rate_limit.enabled:
            return
        limiter.check_preset(ctx, preset)

    _enforce.__name__ = f"enforce_{preset.name}_rate_limit"
    return _enforce
