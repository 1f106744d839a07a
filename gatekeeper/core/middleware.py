"""HTTP middleware for request correlation and access logging.

Every request/response pair carries a request ID (taken from the incoming
header or generated) so guard decisions logged during the request can be
tied back to the response the client saw.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from gatekeeper.core.config import settings
from gatekeeper.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)


async def request_id_middleware(request: Request, call_next) -> Response:
    """Propagate a request ID and log one access event per request.

    If the client provides the configured header (``LOG_REQUEST_ID_HEADER``,
    default ``X-Request-ID``) that value is reused, otherwise a UUID4 is
    generated. The ID is stored in contextvars for the duration of the
    request and echoed in the response headers together with
    ``X-Request-Duration-ms``.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The downstream response with correlation headers added.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "http.request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
    finally:
        clear_request_id()

    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
