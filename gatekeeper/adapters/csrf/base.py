"""CSRF token record and storage interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Mapping


@dataclass
class CsrfToken:
    """Anti-forgery token record.

    Attributes:
        token: Random hex string, primary key.
        identifier: Requester the token is bound to.
        created_at: UNIX epoch seconds at issuance.
        expires_at: UNIX epoch seconds after which the token is rejected.
        used: Whether a single-use validation already consumed it.
    """

    token: str
    identifier: str
    created_at: int
    expires_at: int
    used: bool = False

    def is_expired(self, now: float) -> bool:
        return self.expires_at < now

    def to_record(self) -> dict[str, Any]:
        """Serialisable form without the token (it is the map key)."""

        data = asdict(self)
        data.pop("token")
        return data

    @classmethod
    def from_record(cls, token: str, record: Mapping[str, Any]) -> "CsrfToken":
        return cls(
            token=token,
            identifier=str(record["identifier"]),
            created_at=int(record["created_at"]),
            expires_at=int(record["expires_at"]),
            used=bool(record.get("used", False)),
        )


def decode_token_map(raw: Any) -> dict[str, CsrfToken]:
    """Rebuild a token map from its stored form, skipping malformed entries."""

    if not isinstance(raw, Mapping):
        return {}

    tokens: dict[str, CsrfToken] = {}
    for token, record in raw.items():
        if not isinstance(record, Mapping):
            continue
        try:
            tokens[token] = CsrfToken.from_record(token, record)
        except (KeyError, TypeError, ValueError):
            continue
    return tokens


def encode_token_map(tokens: Mapping[str, CsrfToken]) -> dict[str, dict[str, Any]]:
    return {token: record.to_record() for token, record in tokens.items()}


class AbstractTokenStore(ABC):
    """Durable home of CSRF token records.

    Every operation touches a single token, so concurrent requests never
    overwrite each other's records. Backend faults raise a
    ``BackendUnavailableError`` subclass.
    """

    @abstractmethod
    def get(self, token: str) -> CsrfToken | None:
        """Return the record for ``token`` (expired ones included while retained)."""
        raise NotImplementedError

    @abstractmethod
    def put(self, record: CsrfToken) -> None:
        """Store or replace one record."""
        raise NotImplementedError

    @abstractmethod
    def mark_used(self, record: CsrfToken) -> bool:
        """Atomically flag a record as consumed.

        Returns:
            True for the single caller that consumed it, False if it was
            already used.
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, token: str) -> bool:
        """Remove one record; returns whether it existed."""
        raise NotImplementedError

    @abstractmethod
    def all(self) -> dict[str, CsrfToken]:
        """Return every stored record keyed by token."""
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> int:
        """Remove every record; returns how many there were."""
        raise NotImplementedError
