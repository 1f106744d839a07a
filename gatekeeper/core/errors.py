"""Error types raised by the guards, adapters and auth layer.

Admission errors come in two families:
- CSRF rejections (``CsrfAppError`` and its subclasses), all surfaced to the
  client as a uniform 403 with code ``CSRF_TOKEN_INVALID``. The subclass and
  its ``code`` stay distinguishable for logs and tests.
- ``RateLimited``, surfaced as 429 with retry guidance.

Backend faults (cache or token storage unavailable) are not domain errors.
They derive from ``BackendUnavailableError`` and are never downgraded into an
allow/deny decision by the guards.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Optional structured context attached to an ``AppError``."""

    code: str
    message: str
    hint: str
    http_status: int
    retry_after: int
    limit: int
    window: int
    backend: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error with a stable code and a client-safe message.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


CSRF_CLIENT_CODE = "CSRF_TOKEN_INVALID"


class CsrfAppError(AppError):
    """Base class for rejected anti-forgery checks."""

    default_code = "csrf_invalid"
    default_message = "Invalid CSRF token"

    def __init__(self, message: str | None = None, details: ErrorDetails | None = None) -> None:
        super().__init__(
            code=self.default_code,
            message=message or self.default_message,
            details=details,
        )


class TokenMissing(CsrfAppError):
    default_code = "csrf_token_missing"
    default_message = "CSRF token is required"


class TokenNotFound(CsrfAppError):
    default_code = "csrf_token_not_found"
    default_message = "Invalid CSRF token"


class TokenExpired(CsrfAppError):
    default_code = "csrf_token_expired"
    default_message = "CSRF token has expired"


class TokenAlreadyUsed(CsrfAppError):
    default_code = "csrf_token_already_used"
    default_message = "CSRF token has already been used"


class IdentifierMismatch(CsrfAppError):
    default_code = "csrf_identifier_mismatch"
    default_message = "CSRF token mismatch"


class RateLimited(AppError):
    """Raised when a requester exhausted its window budget.

    Attributes:
        retry_after: Seconds until the window resets (non-positive means retry now).
        limit: Maximum requests per window.
        window: Window length in seconds.
    """

    def __init__(self, *, retry_after: int, limit: int, window: int) -> None:
        super().__init__(
            code="rate_limited",
            message="Too many requests. Please try again later.",
            details={"retry_after": retry_after, "limit": limit, "window": window},
        )
        self.retry_after = retry_after
        self.limit = limit
        self.window = window


class BackendUnavailableError(AppError):
    """Raised when storage behind an admission guard cannot be reached."""


class CacheUnavailableError(BackendUnavailableError):
    """Raised when the keyed cache backend fails."""

    def __init__(self, message: str = "Cache backend unavailable") -> None:
        super().__init__(
            code="cache_unavailable",
            message=message,
            details={"backend": "cache"},
        )


class TokenStorageError(BackendUnavailableError):
    """Raised when the CSRF token store cannot be written."""

    def __init__(self, message: str = "CSRF token storage unavailable") -> None:
        super().__init__(
            code="token_storage_unavailable",
            message=message,
            details={"backend": "csrf_store"},
        )
