"""In-memory TTL cache.

Per-process only: running multiple workers gives each worker its own
counters and tokens. Use the Redis backend when state must be shared.
"""

from __future__ import annotations

import copy
import fnmatch
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from gatekeeper.adapters.cache.base import AbstractKeyedCache

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Entry:
    value: Any
    expires_at: float


class InMemoryKeyedCache(AbstractKeyedCache):
    """Thread-safe keyed cache with per-entry TTL and LRU eviction.

    Entries expire when the clock reaches ``set time + ttl``. Values are
    deep-copied in and out, so callers may mutate what they read.

    Keys starting with one of ``protected_prefixes`` live in a separate
    table that ``max_entries`` does not cover: they leave only through
    their TTL or an explicit delete/flush, never through LRU pressure from
    other keys.

    Attributes:
        max_entries: Capacity of the unprotected table before
            least-recently-used entries are dropped (None for unlimited).
        protected_prefixes: Key prefixes exempt from LRU eviction.
    """

    def __init__(
        self,
        max_entries: int | None = 100_000,
        *,
        protected_prefixes: Iterable[str] = (),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_entries = max_entries
        self.protected_prefixes = tuple(protected_prefixes)
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._protected: dict[str, _Entry] = {}
        self._lock = threading.RLock()
        self._counters = {"hits": 0, "misses": 0, "evictions": 0}

    def __len__(self) -> int:
        return len(self._entries) + len(self._protected)

    def _table(self, key: str) -> dict[str, _Entry]:
        if self.protected_prefixes and key.startswith(self.protected_prefixes):
            return self._protected
        return self._entries

    def _live(self, key: str) -> _Entry | None:
        table = self._table(key)
        entry = table.get(key)
        if entry is not None and self._clock() >= entry.expires_at:
            self._drop(table, key)
            return None
        return entry

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                self._counters["misses"] += 1
                logger.debug("cache.miss", extra={"cache_key": key})
                return None

            self._counters["hits"] += 1
            if key in self._entries:
                self._entries.move_to_end(key)
            logger.debug("cache.hit", extra={"cache_key": key})
            return copy.deepcopy(entry.value)

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``.

        Raises:
            ValueError: If ttl_seconds is below 1.
        """

        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")

        with self._lock:
            now = self._clock()
            for table in (self._entries, self._protected):
                for stale in [k for k, e in table.items() if e.expires_at <= now]:
                    self._drop(table, stale)

            table = self._table(key)
            table[key] = _Entry(copy.deepcopy(value), now + ttl_seconds)
            if table is self._entries:
                self._entries.move_to_end(key)
                if self.max_entries is not None:
                    while len(self._entries) > self.max_entries:
                        oldest = next(iter(self._entries))
                        self._drop(self._entries, oldest)

        logger.debug("cache.set", extra={"cache_key": key, "ttl_s": ttl_seconds})

    def add(self, key: str, value: Any, ttl_seconds: int) -> bool:
        with self._lock:
            if self._live(key) is not None:
                return False
            self.set(key, value, ttl_seconds)
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._table(key).pop(key, None)

    def keys(self, pattern: str) -> list[str]:
        with self._lock:
            now = self._clock()
            return [
                k
                for table in (self._entries, self._protected)
                for k, e in table.items()
                if e.expires_at > now and fnmatch.fnmatchcase(k, pattern)
            ]

    def flush(self, pattern: str) -> int:
        """Delete entries whose key matches a ``*`` wildcard pattern."""

        removed = 0
        with self._lock:
            for table in (self._entries, self._protected):
                matched = [k for k in table if fnmatch.fnmatchcase(k, pattern)]
                for key in matched:
                    del table[key]
                removed += len(matched)

        logger.debug("cache.flush", extra={"pattern": pattern, "removed": removed})
        return removed

    def clear(self) -> None:
        """Drop every entry and zero the counters."""

        with self._lock:
            self._entries.clear()
            self._protected.clear()
            self._counters = dict.fromkeys(self._counters, 0)

    def stats(self) -> dict[str, int | None]:
        """Counters and size; never exposes keys or values."""

        with self._lock:
            return {
                "max_entries": self.max_entries,
                "entries": len(self._entries) + len(self._protected),
                "protected": len(self._protected),
                **self._counters,
            }

    def _drop(self, table: dict[str, _Entry], key: str) -> None:
        del table[key]
        self._counters["evictions"] += 1
