"""Pydantic schemas for CSRF and rate limit endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class CsrfTokenResponse(BaseModel):
    """A freshly issued anti-forgery token."""

    csrf_token: str = Field(
        ..., description="Token to send back in the X-CSRF-Token header (or _csrf_token field)."
    )
    expires_in: int = Field(
        ..., description="Seconds until the token expires."
    )


class RateLimitStatusResponse(BaseModel):
    """Current window usage for the caller."""

    requests: int = Field(..., description="Requests counted in the active window.")
    remaining: int = Field(..., description="Requests left before throttling.")
    reset_at: int | None = Field(
        default=None,
        description="UNIX epoch seconds when the window resets (null when no window is active).",
    )
    limit: int = Field(..., description="Requests allowed per window.")


class ClearedResponse(BaseModel):
    """Result of an administrative invalidation."""

    cleared: int = Field(..., description="Number of entries removed.")
    identifier: str | None = Field(
        default=None,
        description="Identifier the invalidation was scoped to (null for all).",
    )


class AdmissionErrorResponse(BaseModel):
    """Body returned when the CSRF guard rejects a request (403)."""

    error: bool = True
    message: str
    code: str = Field(..., description="Always CSRF_TOKEN_INVALID for CSRF rejections.")


class RateLimitedResponse(BaseModel):
    """Body returned when a rate limit is exceeded (429)."""

    error: bool = True
    message: str
    retry_after: int = Field(..., description="Seconds until the window resets.")
    limit: int
    window: int
