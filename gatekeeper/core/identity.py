"""Requester identity shared by the CSRF guard and the rate limiter.

The guards never touch the framework request directly. They receive a
``RequestContext`` snapshot, built once per request, and derive "who is
asking" from it:

- ``requester_identifier`` scopes CSRF tokens: ``user_<id>`` for
  authenticated users, otherwise a hash of socket address + user agent.
  A token issued anonymously stops validating once the same browser
  authenticates.
- ``client_ip`` scopes rate-limit windows, honouring proxy headers in a
  fixed priority order.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from starlette.requests import Request

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"


@dataclass(frozen=True)
class AuthenticatedUser:
    """Minimal identity of an authenticated caller."""

    id: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(frozen=True)
class RequestContext:
    """Immutable view of the parts of a request the guards consume.

    Attributes:
        method: Upper-case HTTP method.
        headers: Header map with lower-case names.
        query: Query parameters (first value per name).
        json_body: Parsed JSON object body, or None.
        remote_addr: Socket peer address, or None when unknown.
        user: Authenticated user, or None for anonymous requests.
    """

    method: str
    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, str] = field(default_factory=dict)
    json_body: Mapping[str, Any] | None = None
    remote_addr: str | None = None
    user: AuthenticatedUser | None = None

    @classmethod
    def build(
        cls,
        method: str = "GET",
        *,
        headers: Mapping[str, str] | None = None,
        query: Mapping[str, str] | None = None,
        json_body: Mapping[str, Any] | None = None,
        remote_addr: str | None = None,
        user: AuthenticatedUser | None = None,
    ) -> "RequestContext":
        """Create a context, normalising method and header names."""

        return cls(
            method=method.upper(),
            headers={k.lower(): v for k, v in (headers or {}).items()},
            query=dict(query or {}),
            json_body=json_body,
            remote_addr=remote_addr,
            user=user,
        )

    @classmethod
    async def from_request(
        cls,
        request: Request,
        user: AuthenticatedUser | None = None,
    ) -> "RequestContext":
        """Snapshot a Starlette request.

        The body is only parsed for JSON content types. Malformed JSON or a
        non-object payload is treated as "no body" rather than an error; the
        route itself reports payload problems.
        """

        json_body: dict[str, Any] | None = None
        content_type = request.headers.get("content-type", "")
        if "json" in content_type.lower():
            try:
                payload = await request.json()
            except ValueError:
                logger.debug("request_context.invalid_json")
                payload = None
            if isinstance(payload, dict):
                json_body = payload

        return cls.build(
            request.method,
            headers=dict(request.headers.items()),
            query=dict(request.query_params.items()),
            json_body=json_body,
            remote_addr=request.client.host if request.client else None,
            user=user,
        )

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    def query_param(self, name: str) -> str | None:
        return self.query.get(name)

    @property
    def user_agent(self) -> str | None:
        return self.header("user-agent")


def anonymous_fingerprint(remote_addr: str | None, user_agent: str | None) -> str:
    """Deterministic hash of client address and user agent."""

    raw = f"{remote_addr or UNKNOWN}{user_agent or UNKNOWN}"
    return hashlib.sha256(raw.encode()).hexdigest()


def user_identifier(user: AuthenticatedUser) -> str:
    return f"user_{user.id}"


def requester_identifier(ctx: RequestContext) -> str:
    """Identifier binding CSRF tokens to a requester."""

    if ctx.user is not None:
        return user_identifier(ctx.user)
    return anonymous_fingerprint(ctx.remote_addr, ctx.user_agent)


def _first_forwarded(value: str) -> str:
    return value.split(",")[0].strip()


# Ordered client-IP strategies: (name, extractor). First non-empty wins.
IpStrategy = tuple[str, Callable[[RequestContext], str | None]]

CLIENT_IP_STRATEGIES: tuple[IpStrategy, ...] = (
    ("cf-connecting-ip", lambda ctx: ctx.header("cf-connecting-ip")),
    ("x-forwarded-for", lambda ctx: _first_forwarded(ctx.header("x-forwarded-for") or "")),
    ("x-real-ip", lambda ctx: ctx.header("x-real-ip")),
    ("remote-addr", lambda ctx: ctx.remote_addr),
)


def client_ip(
    ctx: RequestContext,
    strategies: tuple[IpStrategy, ...] = CLIENT_IP_STRATEGIES,
) -> str:
    """Resolve the client IP used to key rate-limit windows.

    Args:
        ctx: Request snapshot.
        strategies: Ordered extractors; the first non-empty result wins.

    Returns:
        Client IP string, or ``"unknown"`` when nothing is available.
    """

    for _name, extract in strategies:
        value = extract(ctx)
        if value and value.strip():
            return value.strip()
    return UNKNOWN
