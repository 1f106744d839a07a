"""CSRF token lifecycle: issuance, validation, refresh and bulk invalidation.

Token records live in an injected ``AbstractTokenStore`` and are read and
written one at a time, so overlapping requests never overwrite each
other. The guard itself is stateless and cheap; the HTTP layer builds one
per request over the store shared through ``app.state``.

Validation order matters and is fixed:
1. unknown token           -> ``TokenNotFound``
2. expired token           -> ``TokenExpired`` (record removed)
3. consumed single-use     -> ``TokenAlreadyUsed``
4. different requester     -> ``IdentifierMismatch``
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Callable

from gatekeeper.adapters.csrf.base import AbstractTokenStore, CsrfToken
from gatekeeper.core.errors import (
    CsrfAppError,
    IdentifierMismatch,
    TokenAlreadyUsed,
    TokenExpired,
    TokenMissing,
    TokenNotFound,
)
from gatekeeper.core.identity import RequestContext, requester_identifier
from gatekeeper.core.logging import fingerprint

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32
TOKEN_LIFETIME_SECONDS = 7200

STATE_CHANGING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

TOKEN_HEADER = "X-CSRF-Token"
TOKEN_FIELD = "_csrf_token"


def extract_token(ctx: RequestContext) -> str | None:
    """Find the submitted token: header, then JSON body, then query string."""

    header_value = ctx.header(TOKEN_HEADER)
    if header_value:
        return header_value

    if ctx.json_body is not None:
        body_value = ctx.json_body.get(TOKEN_FIELD)
        if isinstance(body_value, str) and body_value:
            return body_value

    query_value = ctx.query_param(TOKEN_FIELD)
    if query_value:
        return query_value

    return None


class CsrfGuard:
    """Issue and validate requester-bound anti-forgery tokens.

    The guard holds no token state of its own: every call reads or writes
    single records through the store, and the store (or the cache under it)
    provides whatever locking it needs.
    """

    def __init__(
        self,
        store: AbstractTokenStore,
        *,
        token_bytes: int = TOKEN_BYTES,
        lifetime_seconds: int = TOKEN_LIFETIME_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the guard.

        Args:
            store: Durable token record storage.
            token_bytes: Random bytes per token (at least 32).
            lifetime_seconds: Token lifetime.
            clock: Time source returning UNIX seconds.

        Raises:
            ValueError: If token_bytes or lifetime_seconds are invalid.
        """
        if token_bytes < TOKEN_BYTES:
            raise ValueError(f"token_bytes must be >= {TOKEN_BYTES}")
        if lifetime_seconds < 1:
            raise ValueError("lifetime_seconds must be >= 1")

        self._store = store
        self._token_bytes = token_bytes
        self._lifetime = lifetime_seconds
        self._clock = clock

    @property
    def lifetime_seconds(self) -> int:
        return self._lifetime

    def __contains__(self, token: object) -> bool:
        return isinstance(token, str) and self._store.get(token) is not None

    def issue_token(self, ctx: RequestContext, identifier: str | None = None) -> str:
        """Create, store and return a new token bound to the requester.

        Args:
            ctx: Current request.
            identifier: Explicit binding; computed from ``ctx`` when omitted.

        Returns:
            The raw token (hex string).
        """

        token = secrets.token_hex(self._token_bytes)
        bound_to = identifier if identifier is not None else requester_identifier(ctx)
        now = int(self._clock())

        self._store.put(
            CsrfToken(
                token=token,
                identifier=bound_to,
                created_at=now,
                expires_at=now + self._lifetime,
                used=False,
            )
        )

        logger.info(
            "csrf.issued",
            extra={
                "identifier_hash": fingerprint(bound_to),
                "authenticated": ctx.user is not None,
                "expires_in_s": self._lifetime,
            },
        )
        return token

    get_token = issue_token

    def validate_token(self, ctx: RequestContext, token: str, single_use: bool = False) -> None:
        """Validate a submitted token for the current requester.

        Args:
            ctx: Current request.
            token: Token submitted by the client.
            single_use: Consume the token on success and reject reuse.

        Raises:
            TokenNotFound: Unknown token.
            TokenExpired: Token past its lifetime (it is removed).
            TokenAlreadyUsed: Single-use token already consumed, including
                by a concurrent request that claimed it first.
            IdentifierMismatch: Token bound to a different requester.
        """

        current = requester_identifier(ctx)

        record = self._store.get(token)
        if record is None:
            raise self._rejected(TokenNotFound(), current)

        if record.is_expired(self._clock()):
            self._store.delete(token)
            raise self._rejected(TokenExpired(), current)

        if single_use and record.used:
            raise self._rejected(TokenAlreadyUsed(), current)

        if not secrets.compare_digest(record.identifier.encode(), current.encode()):
            raise self._rejected(IdentifierMismatch(), current)

        if single_use and not self._store.mark_used(record):
            raise self._rejected(TokenAlreadyUsed(), current)

        logger.debug(
            "csrf.validated",
            extra={"identifier_hash": fingerprint(current), "single_use": single_use},
        )

    def check(self, ctx: RequestContext, single_use: bool = False) -> None:
        """Enforce CSRF protection for a request.

        Safe methods (GET, HEAD, OPTIONS, ...) always pass.

        Raises:
            TokenMissing: State-changing request without a token.
            CsrfAppError: Any rejection from ``validate_token``.
        """

        if ctx.method.upper() not in STATE_CHANGING_METHODS:
            return

        token = extract_token(ctx)
        if not token:
            raise self._rejected(TokenMissing(), requester_identifier(ctx))

        self.validate_token(ctx, token, single_use=single_use)

    def refresh_token(self, ctx: RequestContext, old_token: str | None = None) -> str:
        """Invalidate ``old_token`` (when known) and issue a replacement."""

        if old_token:
            self._store.delete(old_token)
        return self.issue_token(ctx)

    def clear_tokens(self, identifier: str | None = None) -> int:
        """Delete every token, or only those bound to ``identifier``.

        Returns:
            Number of tokens removed.
        """

        if identifier is None:
            removed = self._store.clear()
        else:
            removed = sum(
                self._store.delete(token)
                for token, record in self._store.all().items()
                if record.identifier == identifier
            )

        logger.info(
            "csrf.cleared",
            extra={
                "scope": "all" if identifier is None else "identifier",
                "removed": removed,
            },
        )
        return removed

    def purge_expired(self) -> int:
        """Delete records past their lifetime; returns how many were removed."""

        now = self._clock()
        return sum(
            self._store.delete(token)
            for token, record in self._store.all().items()
            if record.is_expired(now)
        )

    def _rejected(self, error: CsrfAppError, identifier: str) -> CsrfAppError:
        logger.warning(
            "csrf.rejected",
            extra={"reason": error.code, "identifier_hash": fingerprint(identifier)},
        )
        return error
