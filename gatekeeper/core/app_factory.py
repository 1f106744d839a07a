"""Application factory for the FastAPI app.

Centralizes app construction (metadata, admission state, middleware,
handlers, routers) so tests can build isolated apps with their own cache
and clock.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from gatekeeper.adapters.cache.base import AbstractKeyedCache
from gatekeeper.adapters.cache.factory import build_cache
from gatekeeper.adapters.csrf.base import AbstractTokenStore
from gatekeeper.api.routes import admin_router, csrf_router, health_router, rate_limit_router
from gatekeeper.core.config import settings
from gatekeeper.core.csrf import build_token_store
from gatekeeper.core.exception_handlers import setup_exception_handlers
from gatekeeper.core.logging import configure_logging
from gatekeeper.core.middleware import request_id_middleware
from gatekeeper.core.openapi import apply_openapi_customizations
from gatekeeper.core.rate_limit import build_rate_limiter

logger = logging.getLogger(__name__)


def create_app(
    *,
    cache: AbstractKeyedCache | None = None,
    csrf_store: AbstractTokenStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        cache: Keyed cache shared by both guards; built from settings when omitted.
        csrf_store: CSRF token store; built from settings when omitted.

    Returns:
        Configured FastAPI app with admission state, middleware, handlers
        and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Gatekeeper API",
        description=(
            "Request admission control for state-changing endpoints: per-identifier "
            "fixed-window rate limiting followed by requester-bound CSRF tokens. "
            "Guard state lives in a keyed TTL cache (in-memory or Redis)."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        debug=settings.app.debug,
    )

    # Admission state (no module-level singletons)
    app.state.cache = cache if cache is not None else build_cache(settings.cache)
    app.state.rate_limiter = build_rate_limiter(app.state.cache)
    app.state.csrf_store = csrf_store if csrf_store is not None else build_token_store(app.state.cache, settings.csrf)

    logger.info(
        "app.admission_configured",
        extra={
            "cache_backend": type(app.state.cache).__name__,
            "csrf_store": type(app.state.csrf_store).__name__,
            "csrf_enabled": settings.csrf.enabled,
            "rate_limit_enabled": settings.rate_limit.enabled,
        },
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(csrf_router, prefix="/v1")
    app.include_router(rate_limit_router, prefix="/v1")
    app.include_router(admin_router, prefix="/v1")
    app.include_router(health_router)

    # OpenAPI customizations (security schemes, tags, exemptions)
    apply_openapi_customizations(app)

    return app
