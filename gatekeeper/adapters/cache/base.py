"""Keyed cache interface.

Guards should depend on this abstraction (not a concrete store) so the
backend can be process-local in development and shared (Redis) in
production.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


def build_cache_key(*parts: str) -> str:
    """Join key parts with ``:``, neutralising separators inside each part.

    Examples:
        >>> build_cache_key("ratelimit", "10.0.0.1")
        'ratelimit:10.0.0.1'
        >>> build_cache_key("ratelimit", "::1")
        'ratelimit:__1'
    """

    return ":".join(part.replace(":", "_") for part in parts)


class AbstractKeyedCache(ABC):
    """Interface for TTL key-value stores.

    Values must be JSON-compatible (dicts, lists, numbers, strings, bools).
    Implementations raise ``CacheUnavailableError`` when the backend cannot
    be reached; a missing or expired key is not an error and reads as None.
    """

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the stored value, or None when absent or expired."""
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a value that expires after ``ttl_seconds`` (must be >= 1)."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key; missing keys are ignored."""
        raise NotImplementedError

    @abstractmethod
    def flush(self, pattern: str) -> int:
        """Delete every key matching a ``*`` wildcard pattern.

        Returns:
            Number of entries removed.
        """
        raise NotImplementedError

    @abstractmethod
    def add(self, key: str, value: Any, ttl_seconds: int) -> bool:
        """Store a value only if ``key`` is absent (or expired).

        The check and the write are one atomic step, so exactly one of
        several concurrent callers wins.

        Returns:
            True when the value was stored, False when the key already existed.
        """
        raise NotImplementedError

    @abstractmethod
    def keys(self, pattern: str) -> list[str]:
        """List live keys matching a ``*`` wildcard pattern."""
        raise NotImplementedError
