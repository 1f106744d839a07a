"""Redis-backed keyed cache.

Values are stored as JSON strings with ``SETEX`` so Redis expires them on its
own. All keys are namespaced under a prefix, which also scopes pattern
flushes to this application.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from redis import Redis
from redis.exceptions import RedisError

from gatekeeper.adapters.cache.base import AbstractKeyedCache
from gatekeeper.core.errors import CacheUnavailableError

logger = logging.getLogger(__name__)


class RedisKeyedCache(AbstractKeyedCache):
    """Keyed cache on top of a synchronous Redis client.

    Unlike a pure optimisation cache, failures here are raised as
    ``CacheUnavailableError``: admission guards fail closed when their state
    cannot be read or written.

    Attributes:
        redis: Redis client instance.
        key_prefix: Prefix for all keys.
    """

    def __init__(self, redis: Redis, key_prefix: str = "gatekeeper", *, scan_count: int = 500) -> None:
        self.redis = redis
        self.key_prefix = key_prefix
        self._scan_count = scan_count

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "gatekeeper") -> "RedisKeyedCache":
        return cls(Redis.from_url(url, decode_responses=True), key_prefix=key_prefix)

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}"

    def get(self, key: str) -> Any | None:
        try:
            raw = self.redis.get(self._make_key(key))
        except RedisError as exc:
            logger.error("cache.get_failed", extra={"cache_key": key, "error": str(exc)})
            raise CacheUnavailableError() from exc

        if raw is None:
            return None

        try:
            return json.loads(raw)
        except (TypeError, ValueError) as exc:
            logger.error("cache.decode_failed", extra={"cache_key": key, "error": str(exc)})
            raise CacheUnavailableError("Cache entry could not be decoded") from exc

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")

        serialized = json.dumps(value)
        try:
            self.redis.setex(self._make_key(key), ttl_seconds, serialized)
        except RedisError as exc:
            logger.error("cache.set_failed", extra={"cache_key": key, "error": str(exc)})
            raise CacheUnavailableError() from exc

        logger.debug("cache.set", extra={"cache_key": key, "ttl_s": ttl_seconds})

    def delete(self, key: str) -> None:
        try:
            self.redis.delete(self._make_key(key))
        except RedisError as exc:
            logger.error("cache.delete_failed", extra={"cache_key": key, "error": str(exc)})
            raise CacheUnavailableError() from exc

    def add(self, key: str, value: Any, ttl_seconds: int) -> bool:
        """Store ``value`` with ``SET NX EX``; False when the key already exists."""

        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")

        serialized = json.dumps(value)
        try:
            stored = self.redis.set(self._make_key(key), serialized, ex=ttl_seconds, nx=True)
        except RedisError as exc:
            logger.error("cache.add_failed", extra={"cache_key": key, "error": str(exc)})
            raise CacheUnavailableError() from exc

        return bool(stored)

    def keys(self, pattern: str) -> list[str]:
        """List matching keys (prefix stripped) using SCAN."""

        offset = len(self.key_prefix) + 1
        try:
            return [
                redis_key[offset:]
                for redis_key in self.redis.scan_iter(match=self._make_key(pattern), count=self._scan_count)
            ]
        except RedisError as exc:
            logger.error("cache.keys_failed", extra={"pattern": pattern, "error": str(exc)})
            raise CacheUnavailableError() from exc

    def flush(self, pattern: str) -> int:
        """Delete matching keys using SCAN so large keyspaces don't block Redis."""

        removed = 0
        try:
            batch: list[str] = []
            for redis_key in self.redis.scan_iter(match=self._make_key(pattern), count=self._scan_count):
                batch.append(redis_key)
                if len(batch) >= self._scan_count:
                    removed += self.redis.delete(*batch)
                    batch = []
            if batch:
                removed += self.redis.delete(*batch)
        except RedisError as exc:
            logger.error("cache.flush_failed", extra={"pattern": pattern, "error": str(exc)})
            raise CacheUnavailableError() from exc

        logger.debug("cache.flush", extra={"pattern": pattern, "removed": removed})
        return removed

    def ping(self) -> bool:
        try:
            return bool(self.redis.ping())
        except RedisError:
            return False
