"""CSRF dependencies for FastAPI routes.

The token store is built once by the app factory and shared by every
request; a ``CsrfGuard`` is a thin per-request view over it.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, Request

from gatekeeper.adapters.cache.base import AbstractKeyedCache
from gatekeeper.adapters.csrf import AbstractTokenStore, JsonFileTokenStore, KeyedCacheTokenStore
from gatekeeper.core.auth import get_request_context
from gatekeeper.core.config import CsrfSettings, settings
from gatekeeper.core.errors import ValidationAppError
from gatekeeper.core.identity import RequestContext
from gatekeeper.services.csrf_guard import CsrfGuard

logger = logging.getLogger(__name__)


def build_token_store(
    cache: AbstractKeyedCache,
    csrf_settings: CsrfSettings | None = None,
) -> AbstractTokenStore:
    """Create the configured CSRF token store.

    Raises:
        ValidationAppError: If the storage name is not supported.
    """

    cfg = csrf_settings or settings.csrf
    storage = cfg.storage.lower()

    if storage == "cache":
        return KeyedCacheTokenStore(cache)
    if storage == "file":
        return JsonFileTokenStore(cfg.file_path)

    raise ValidationAppError(
        code="unsupported_csrf_storage",
        message=f"Unsupported CSRF token storage: {cfg.storage}",
        details={"hint": "Set CSRF_STORAGE to 'cache' or 'file'"},
    )


def get_csrf_guard(request: Request) -> CsrfGuard:
    """Build a guard over the application's token store."""

    return CsrfGuard(
        request.app.state.csrf_store,
        token_bytes=settings.csrf.token_bytes,
        lifetime_seconds=settings.csrf.token_lifetime_seconds,
    )


def enforce_csrf(
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    guard: Annotated[CsrfGuard, Depends(get_csrf_guard)],
) -> None:
    """FastAPI dependency requiring a valid (reusable) CSRF token.

    Raises:
        CsrfAppError: Missing or invalid token (answered with 403).
    """

    if not settings.csrf.enabled:
        return
    guard.check(ctx)


def enforce_single_use_csrf(
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    guard: Annotated[CsrfGuard, Depends(get_csrf_guard)],
) -> None:
    """FastAPI dependency requiring a CSRF token and consuming it."""

    if not settings.csrf.enabled:
        return
    guard.check(ctx, single_use=True)
