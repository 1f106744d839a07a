"""Exception handlers mapping admission outcomes to HTTP responses.

- CsrfAppError → 403 with the flat admission body (code CSRF_TOKEN_INVALID)
- RateLimited → 429 with retry guidance and optional rate limit headers
- BackendUnavailableError → 503, fail closed
- Other AppError subclasses → 400/403 with the ``{"error": {...}}`` envelope
- Unexpected Exception → generic 500 without internals
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from gatekeeper.core.config import settings
from gatekeeper.core.errors import (
    CSRF_CLIENT_CODE,
    AppError,
    AuthenticationAppError,
    BackendUnavailableError,
    CsrfAppError,
    RateLimited,
)
from gatekeeper.core.logging import get_request_id

logger = logging.getLogger(__name__)

BACKEND_UNAVAILABLE_CODE = "ADMISSION_BACKEND_UNAVAILABLE"


async def csrf_error_handler(request: Request, exc: CsrfAppError) -> JSONResponse:
    """Answer rejected anti-forgery checks with a uniform 403.

    The specific rejection reason stays in the logs (``exc.code``); clients
    only get the message text and the shared code.
    """
    logger.info(
        "csrf_error_handled",
        extra={
            "error_code": exc.code,
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )
    return JSONResponse(
        status_code=403,
        content={"error": True, "message": exc.message, "code": CSRF_CLIENT_CODE},
    )


async def rate_limited_handler(request: Request, exc: RateLimited) -> JSONResponse:
    """Answer exhausted rate limit windows with 429 and retry guidance."""

    headers: dict[str, str] = {}
    if settings.rate_limit.include_headers:
        headers["Retry-After"] = str(max(0, exc.retry_after))
        headers["X-RateLimit-Limit"] = str(exc.limit)
        headers["X-RateLimit-Remaining"] = "0"
        headers["X-RateLimit-Window"] = str(exc.window)

    return JSONResponse(
        status_code=429,
        content={
            "error": True,
            "message": exc.message,
            "retry_after": exc.retry_after,
            "limit": exc.limit,
            "window": exc.window,
        },
        headers=headers or None,
    )


async def backend_unavailable_handler(request: Request, exc: BackendUnavailableError) -> JSONResponse:
    """Reject the request when guard state cannot be read or written."""

    logger.error(
        "admission_backend_unavailable",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )
    return JSONResponse(
        status_code=503,
        content={
            "error": True,
            "message": "Service temporarily unavailable. Please try again later.",
            "code": BACKEND_UNAVAILABLE_CODE,
        },
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle remaining application errors with a consistent JSON envelope.

    - AuthenticationAppError → 403 Forbidden
    - anything else → 400 Bad Request

    The body is ``{"error": {code, message, request_id, details?}}``.
    """
    status_code = 400
    if isinstance(exc, AuthenticationAppError):
        status_code = 403

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Answer unexpected errors with a generic 500.

    Logs detailed information for debugging while returning a generic
    message. No stack traces reach the client.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with the FastAPI app.

    Starlette resolves handlers along the exception's MRO, so the specific
    admission handlers win over the generic ``AppError`` one.
    """
    app.exception_handler(CsrfAppError)(csrf_error_handler)
    app.exception_handler(RateLimited)(rate_limited_handler)
    app.exception_handler(BackendUnavailableError)(backend_unavailable_handler)
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
