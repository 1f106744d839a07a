"""Fixed-window rate limiter stored in a keyed TTL cache.

Notes:
- A window opens on the first request from an identifier and lasts
  ``window_seconds`` from there; it is not aligned to the clock.
- Every increment re-stores the record with the *remaining* window time as
  TTL (floored at 1 second), so the boundary never slides forward.
- Counting is approximate: two concurrent requests can both read N and both
  write N+1. Shared-state correctness would need an atomic
  increment-with-TTL primitive in the cache contract.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from gatekeeper.adapters.cache.base import AbstractKeyedCache, build_cache_key
from gatekeeper.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult, RateLimitStatus, RateWindow

logger = logging.getLogger(__name__)

CACHE_PREFIX = "ratelimit"


class CacheFixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter keeping one window record per identifier in a cache."""

    def __init__(
        self,
        cache: AbstractKeyedCache,
        *,
        prefix: str = CACHE_PREFIX,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            cache: Keyed cache holding window records.
            prefix: Key namespace for window records.
            clock: Time source function returning UNIX time in seconds.
        """
        self._cache = cache
        self._prefix = prefix
        self._clock = clock

    def cache_key(self, identifier: str) -> str:
        return build_cache_key(self._prefix, identifier)

    def _load_window(self, key: str) -> RateWindow | None:
        record = self._cache.get(key)
        if record is None:
            return None
        window = RateWindow.from_record(record)
        if window is None:
            logger.warning("rate_limit.malformed_window", extra={"cache_key": key})
        return window

    def consume(self, identifier: str, *, max_requests: int, window_seconds: int) -> RateLimitResult:
        """Count one request for the identifier.

        Args:
            identifier: Requester key (IP address, ``user_<id>``, ...).
            max_requests: Requests allowed per window.
            window_seconds: Window length.

        Returns:
            RateLimitResult with allowance decision and metadata.

        Raises:
            ValueError: If arguments are invalid.
            CacheUnavailableError: If the cache backend fails.
        """
        if not identifier:
            raise ValueError("identifier must be a non-empty string")
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        key = self.cache_key(identifier)
        now = int(self._clock())
        window = self._load_window(key)

        if window is None or not window.is_open(now):
            window = RateWindow(count=1, reset_at=now + window_seconds, first_request=now)
            self._cache.set(key, window.to_record(), window_seconds)
            return RateLimitResult(
                allowed=True,
                limit=max_requests,
                window=window_seconds,
                remaining=max(0, max_requests - 1),
                reset_at=window.reset_at,
                retry_after_seconds=None,
            )

        # Presets share one window per identifier; report the length of the
        # window actually counted against, which may come from another preset.
        span = window.reset_at - window.first_request
        active_window = span if span > 0 else window_seconds

        if window.count >= max_requests:
            return RateLimitResult(
                allowed=False,
                limit=max_requests,
                window=active_window,
                remaining=0,
                reset_at=window.reset_at,
                retry_after_seconds=window.reset_at - now,
            )

        window.count += 1
        self._cache.set(key, window.to_record(), max(1, window.reset_at - now))
        return RateLimitResult(
            allowed=True,
            limit=max_requests,
            window=active_window,
            remaining=max(0, max_requests - window.count),
            reset_at=window.reset_at,
            retry_after_seconds=None,
        )

    def status(self, identifier: str, *, max_requests: int) -> RateLimitStatus:
        window = self._load_window(self.cache_key(identifier))
        if window is None or not window.is_open(self._clock()):
            return RateLimitStatus(requests=0, remaining=max_requests, reset_at=None)

        return RateLimitStatus(
            requests=window.count,
            remaining=max(0, max_requests - window.count),
            reset_at=window.reset_at,
        )

    def reset(self, identifier: str | None = None) -> int:
        if identifier is None:
            return self._cache.flush(f"{self._prefix}:*")

        key = self.cache_key(identifier)
        existed = self._cache.get(key) is not None
        self._cache.delete(key)
        return int(existed)
