from __future__ import annotations

from gatekeeper.api.routes.admin import router as admin_router
from gatekeeper.api.routes.csrf import router as csrf_router
from gatekeeper.api.routes.health import router as health_router
from gatekeeper.api.routes.rate_limit import router as rate_limit_router

__all__ = ["admin_router", "csrf_router", "health_router", "rate_limit_router"]
