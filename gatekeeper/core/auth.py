"""API key authentication and request context assembly.

Authentication itself is deliberately thin: each configured API key maps to
a user id and role. Requests without a key are anonymous, which is a valid
state for the admission guards (they fall back to IP-based identities).

Design principles:
- Single Responsibility: only resolves who is calling
- Dependency Injection: used via FastAPI Depends() for loose coupling
- Configuration-driven: keys managed via env vars, not hardcoded
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from gatekeeper.core.config import settings
from gatekeeper.core.errors import AuthenticationAppError
from gatekeeper.core.identity import AuthenticatedUser, RequestContext
from gatekeeper.core.logging import fingerprint

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> dict[str, AuthenticatedUser]:
    """Parse comma-separated ``key:user_id[:role]`` entries.

    Args:
        keys_string: Raw configuration value, or None.

    Returns:
        Mapping of API key to the user it authenticates. Malformed entries
        are skipped.

    Examples:
        >>> parse_api_keys("k1:7:admin, k2:8")
        {'k1': AuthenticatedUser(id='7', role='admin'), 'k2': AuthenticatedUser(id='8', role='user')}
        >>> parse_api_keys(None)
        {}
    """
    if not keys_string:
        return {}

    users: dict[str, AuthenticatedUser] = {}
    for entry in keys_string.split(","):
        entry = entry.strip()
        if not entry:
            continue
        parts = [part.strip() for part in entry.split(":")]
        if len(parts) not in (2, 3) or not parts[0] or not parts[1]:
            logger.warning("auth.malformed_key_entry", extra={"parts": len(parts)})
            continue
        role = parts[2] if len(parts) == 3 and parts[2] else "user"
        users[parts[0]] = AuthenticatedUser(id=parts[1], role=role)
    return users


def authenticate_api_key(provided_key: str) -> AuthenticatedUser:
    """Resolve the user behind an API key.

    Pure lookup logic without FastAPI dependencies for easy testing.

    Args:
        provided_key: API key to validate.

    Returns:
        The authenticated user.

    Raises:
        AuthenticationAppError: If the key is unknown.
    """
    users = parse_api_keys(settings.app.api_keys)
    user = users.get(provided_key)
    if user is None:
        logger.warning(
            "auth.invalid_key",
            extra={"api_key_hash": fingerprint(provided_key), "configured_keys": len(users)},
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid API key",
            details={"hint": "Omit X-API-Key for anonymous access or use a configured key"},
        )
    return user


async def resolve_user(
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> AuthenticatedUser | None:
    """FastAPI dependency returning the caller, or None when anonymous.

    Raises:
        HTTPException: 403 Forbidden if a key is supplied but unknown.
    """
    if not x_api_key:
        return None

    try:
        user = authenticate_api_key(x_api_key)
    except AuthenticationAppError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc

    logger.debug("auth.success", extra={"user_id": user.id, "role": user.role})
    return user


async def require_admin(
    user: Annotated[AuthenticatedUser | None, Depends(resolve_user)],
) -> AuthenticatedUser:
    """FastAPI dependency allowing only callers with the admin role.

    Raises:
        HTTPException: 403 Forbidden for anonymous or non-admin callers.
    """
    if user is None or not user.is_admin:
        logger.warning(
            "auth.admin_required",
            extra={"authenticated": user is not None, "role": user.role if user else None},
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required.",
        )
    return user


async def get_request_context(
    request: Request,
    user: Annotated[AuthenticatedUser | None, Depends(resolve_user)],
) -> RequestContext:
    """FastAPI dependency building the per-request guard context.

    FastAPI caches dependency results within a request, so the body is read
    and the context assembled once even when several guards need it.
    """
    return await RequestContext.from_request(request, user)
