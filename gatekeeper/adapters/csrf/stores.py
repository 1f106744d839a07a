"""Concrete CSRF token stores.

- ``KeyedCacheTokenStore`` keeps one cache entry per token, so a
  Redis-backed cache shares tokens across workers.
- ``JsonFileTokenStore`` keeps the token map in a JSON file on local disk.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Callable, Mapping

from gatekeeper.adapters.cache.base import AbstractKeyedCache, build_cache_key
from gatekeeper.adapters.csrf.base import AbstractTokenStore, CsrfToken, decode_token_map, encode_token_map
from gatekeeper.core.errors import TokenStorageError

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "csrf"
EXPIRED_RETENTION_SECONDS = 300


class KeyedCacheTokenStore(AbstractTokenStore):
    """Token records stored as individual keyed-cache entries.

    Layout:
        ``csrf:token:<token>``  record (identifier, created_at, expires_at)
        ``csrf:used:<token>``   consumption marker, written with ``add``

    Each entry lives until ``expires_at`` plus ``retention_seconds``, so a
    token submitted shortly after expiry is still reported as expired
    rather than unknown. The used marker is claimed with the cache's
    atomic ``add``: of several concurrent single-use validations only one
    wins. Cache faults propagate as ``CacheUnavailableError``.
    """

    def __init__(
        self,
        cache: AbstractKeyedCache,
        *,
        retention_seconds: int = EXPIRED_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if retention_seconds < 0:
            raise ValueError("retention_seconds must be >= 0")
        self._cache = cache
        self._retention = retention_seconds
        self._clock = clock

    @staticmethod
    def record_key(token: str) -> str:
        return build_cache_key(CACHE_NAMESPACE, "token", token)

    @staticmethod
    def used_key(token: str) -> str:
        return build_cache_key(CACHE_NAMESPACE, "used", token)

    def _ttl(self, record: CsrfToken) -> int:
        return max(1, int(record.expires_at - self._clock()) + self._retention)

    def get(self, token: str) -> CsrfToken | None:
        raw = self._cache.get(self.record_key(token))
        if raw is None:
            return None

        try:
            record = CsrfToken.from_record(token, raw)
        except (KeyError, TypeError, ValueError):
            logger.warning("csrf.record_malformed")
            return None

        if not record.used and self._cache.get(self.used_key(token)) is not None:
            record.used = True
        return record

    def put(self, record: CsrfToken) -> None:
        ttl = self._ttl(record)
        self._cache.set(self.record_key(record.token), record.to_record(), ttl)
        if record.used:
            self._cache.set(self.used_key(record.token), True, ttl)

    def mark_used(self, record: CsrfToken) -> bool:
        return self._cache.add(self.used_key(record.token), True, self._ttl(record))

    def delete(self, token: str) -> bool:
        existed = self._cache.get(self.record_key(token)) is not None
        self._cache.delete(self.record_key(token))
        self._cache.delete(self.used_key(token))
        return existed

    def all(self) -> dict[str, CsrfToken]:
        offset = len(self.record_key(""))
        tokens: dict[str, CsrfToken] = {}
        for key in self._cache.keys(self.record_key("*")):
            token = key[offset:]
            record = self.get(token)
            if record is not None:
                tokens[token] = record
        return tokens

    def clear(self) -> int:
        removed = self._cache.flush(self.record_key("*"))
        self._cache.flush(self.used_key("*"))
        return removed


class JsonFileTokenStore(AbstractTokenStore):
    """Token map persisted to a JSON file.

    A missing or corrupt file reads as an empty map: every outstanding token
    is then rejected, which is the safe direction. Writes go through a
    temporary file and ``os.replace`` so readers never see half a file.

    Each mutation is a read-modify-write under the store's lock, which
    serialises requests within one process. The file is not shared safely
    between processes; use the cache store with Redis for that.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()

    def get(self, token: str) -> CsrfToken | None:
        return self._read().get(token)

    def put(self, record: CsrfToken) -> None:
        with self._lock:
            tokens = self._read()
            tokens[record.token] = record
            self._write(tokens)

    def mark_used(self, record: CsrfToken) -> bool:
        with self._lock:
            tokens = self._read()
            current = tokens.get(record.token)
            if current is None or current.used:
                return False
            current.used = True
            self._write(tokens)
            return True

    def delete(self, token: str) -> bool:
        with self._lock:
            tokens = self._read()
            if tokens.pop(token, None) is None:
                return False
            self._write(tokens)
            return True

    def all(self) -> dict[str, CsrfToken]:
        return self._read()

    def clear(self) -> int:
        with self._lock:
            removed = len(self._read())
            self._write({})
            return removed

    def _read(self) -> dict[str, CsrfToken]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            logger.warning("csrf.store_read_failed", extra={"path": str(self.path), "error": str(exc)})
            return {}

        try:
            data = json.loads(raw)
        except ValueError as exc:
            logger.warning("csrf.store_corrupt", extra={"path": str(self.path), "error": str(exc)})
            return {}

        return decode_token_map(data)

    def _write(self, tokens: Mapping[str, CsrfToken]) -> None:
        payload = json.dumps(encode_token_map(tokens))
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".csrf-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            logger.error("csrf.store_write_failed", extra={"path": str(self.path), "error": str(exc)})
            raise TokenStorageError() from exc
