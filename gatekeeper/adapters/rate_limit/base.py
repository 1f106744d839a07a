"""Rate limiter interfaces.

The HTTP layer should depend on this abstraction (not the concrete
implementation) so window storage can change without touching routes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit consume operation.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        window: Length in seconds of the window the request was counted in.
            Presets share one window per identifier, so this can differ
            from the length the caller asked for.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the current window resets.
        retry_after_seconds: Suggested wait time in seconds when blocked.
    """

    allowed: bool
    limit: int
    window: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None


@dataclass(frozen=True)
class RateLimitStatus:
    """Read-only view of an identifier's current window."""

    requests: int
    remaining: int
    reset_at: int | None


@dataclass
class RateWindow:
    """Stored window record.

    Attributes:
        count: Requests observed in the window.
        reset_at: UNIX epoch seconds when the window closes.
        first_request: UNIX epoch seconds of the opening request (diagnostic).
    """

    count: int
    reset_at: int
    first_request: int

    def is_open(self, now: float) -> bool:
        return now < self.reset_at

    def to_record(self) -> dict[str, int]:
        return {"count": self.count, "reset_at": self.reset_at, "first_request": self.first_request}

    @classmethod
    def from_record(cls, record: Any) -> "RateWindow | None":
        """Parse a cached record; malformed data yields None."""

        if not isinstance(record, Mapping):
            return None
        try:
            reset_at = int(record["reset_at"])
            return cls(
                count=int(record["count"]),
                reset_at=reset_at,
                first_request=int(record.get("first_request", reset_at)),
            )
        except (KeyError, TypeError, ValueError):
            return None


class AbstractRateLimiter(ABC):
    """Interface for per-identifier window limiters."""

    @abstractmethod
    def consume(self, identifier: str, *, max_requests: int, window_seconds: int) -> RateLimitResult:
        """Count one request for ``identifier`` and report the decision."""
        raise NotImplementedError

    @abstractmethod
    def status(self, identifier: str, *, max_requests: int) -> RateLimitStatus:
        """Inspect the current window without counting."""
        raise NotImplementedError

    @abstractmethod
    def reset(self, identifier: str | None = None) -> int:
        """Drop one window, or all windows when ``identifier`` is None."""
        raise NotImplementedError
