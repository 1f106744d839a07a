from __future__ import annotations

from fastapi import APIRouter, Request

from gatekeeper.adapters.cache.base import build_cache_key

router = APIRouter(tags=["Health"])

READINESS_PROBE_KEY = build_cache_key("health", "probe")


@router.get("/health")
def health_check() -> dict:
    """Liveness check used by load balancers and monitors.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/health/ready")
def readiness_check(request: Request) -> dict:
    """Readiness check: the keyed cache behind both guards must answer.

    A cache failure raises ``CacheUnavailableError`` and is answered with 503
    by the exception handlers, the same way guarded routes fail closed.
    """

    request.app.state.cache.get(READINESS_PROBE_KEY)
    return {"status": "ok", "cache": type(request.app.state.cache).__name__}
