"""Request rate limiting for admission control.

Wraps an ``AbstractRateLimiter`` with requester resolution and the named
presets used by the routes:

=============  ========  =======  ==========================================
preset         requests  window   typical use
=============  ========  =======  ==========================================
strict         5         300 s    login, password reset, admin operations
standard       60        60 s     regular API endpoints
relaxed        120       60 s     read-heavy endpoints
per_user       100       60 s     authenticated traffic (IP when anonymous)
=============  ========  =======  ==========================================

Presets do not get separate windows: every preset keys on the same
identifier, so one IP has one window whose length is fixed by the request
that opened it. A request under a smaller preset is refused once the
shared count reaches that preset's limit, and the 429 reports the shared
window's length alongside its ``retry_after``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from gatekeeper.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult, RateLimitStatus
from gatekeeper.core.errors import RateLimited
from gatekeeper.core.identity import RequestContext, client_ip, user_identifier
from gatekeeper.core.logging import fingerprint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPreset:
    name: str
    max_requests: int
    window_seconds: int


STRICT = RateLimitPreset("strict", 5, 300)
STANDARD = RateLimitPreset("standard", 60, 60)
RELAXED = RateLimitPreset("relaxed", 120, 60)
PER_USER = RateLimitPreset("per_user", 100, 60)

PRESETS: dict[str, RateLimitPreset] = {p.name: p for p in (STRICT, STANDARD, RELAXED, PER_USER)}


class RateLimiter:
    """Admission check counting requests per identifier."""

    def __init__(self, limiter: AbstractRateLimiter) -> None:
        self._limiter = limiter

    def check(
        self,
        ctx: RequestContext,
        max_requests: int = STANDARD.max_requests,
        window_seconds: int = STANDARD.window_seconds,
        identifier: str | None = None,
    ) -> RateLimitResult:
        """Count the request and reject it when the window is exhausted.

        Args:
            ctx: Current request.
            max_requests: Requests allowed per window.
            window_seconds: Window length.
            identifier: Explicit key; defaults to the client IP.

        Returns:
            RateLimitResult for an allowed request.

        Raises:
            RateLimited: The identifier exhausted its window.
            CacheUnavailableError: The cache backend failed (fail closed).
        """

        key = identifier or client_ip(ctx)
        key_type = "custom" if identifier else "ip"

        result = self._limiter.consume(key, max_requests=max_requests, window_seconds=window_seconds)
        log_extra = {
            "key_type": key_type,
            "key_hash": fingerprint(key),
            "limit": result.limit,
            "remaining": result.remaining,
            "window_s": result.window,
        }

        if result.allowed:
            logger.info("rate_limit.allowed", extra=log_extra)
            return result

        retry_after = result.retry_after_seconds if result.retry_after_seconds is not None else 0
        logger.warning("rate_limit.exceeded", extra={**log_extra, "retry_after_s": retry_after})
        raise RateLimited(retry_after=retry_after, limit=max_requests, window=result.window)

    def check_preset(self, ctx: RequestContext, preset: RateLimitPreset, identifier: str | None = None) -> RateLimitResult:
        if preset is PER_USER:
            return self.check_by_user(ctx)
        return self.check(ctx, preset.max_requests, preset.window_seconds, identifier)

    def check_strict(self, ctx: RequestContext, identifier: str | None = None) -> RateLimitResult:
        return self.check(ctx, STRICT.max_requests, STRICT.window_seconds, identifier)

    def check_standard(self, ctx: RequestContext, identifier: str | None = None) -> RateLimitResult:
        return self.check(ctx, STANDARD.max_requests, STANDARD.window_seconds, identifier)

    def check_relaxed(self, ctx: RequestContext, identifier: str | None = None) -> RateLimitResult:
        return self.check(ctx, RELAXED.max_requests, RELAXED.window_seconds, identifier)

    def check_by_user(
        self,
        ctx: RequestContext,
        max_requests: int = PER_USER.max_requests,
        window_seconds: int = PER_USER.window_seconds,
    ) -> RateLimitResult:
        """Limit per authenticated user, falling back to the client IP."""

        if ctx.user is None:
            return self.check(ctx, max_requests, window_seconds)
        return self.check(ctx, max_requests, window_seconds, user_identifier(ctx.user))

    def get_status(
        self,
        ctx: RequestContext,
        identifier: str | None = None,
        max_requests: int = STANDARD.max_requests,
    ) -> RateLimitStatus:
        """Report usage of the current window without counting the call."""

        return self._limiter.status(identifier or client_ip(ctx), max_requests=max_requests)

    def clear(self, identifier: str | None = None) -> int:
        """Drop one identifier's window, or every window when omitted."""

        removed = self._limiter.reset(identifier)
        logger.info(
            "rate_limit.cleared",
            extra={"scope": "all" if identifier is None else "identifier", "removed": removed},
        )
        return removed
