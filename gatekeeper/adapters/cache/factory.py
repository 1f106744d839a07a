"""Factory for creating the configured keyed cache backend."""

from __future__ import annotations

import logging

from gatekeeper.adapters.cache.base import AbstractKeyedCache
from gatekeeper.adapters.cache.in_memory import InMemoryKeyedCache
from gatekeeper.core.config import CacheSettings, settings
from gatekeeper.core.errors import ValidationAppError

logger = logging.getLogger(__name__)


def build_cache(cache_settings: CacheSettings | None = None) -> AbstractKeyedCache:
    """Create a keyed cache based on configuration.

    Args:
        cache_settings: Optional cache settings; defaults to global settings.

    Returns:
        Configured cache backend.

    Raises:
        ValidationAppError: If the backend name is not supported.
    """

    cfg = cache_settings or settings.cache
    backend = cfg.backend.lower()

    if backend == "memory":
        logger.info(
            "cache.backend_selected",
            extra={"backend": backend, "max_entries": cfg.max_entries, "protected_prefixes": cfg.protected_prefixes},
        )
        return InMemoryKeyedCache(max_entries=cfg.max_entries, protected_prefixes=cfg.protected_prefixes)

    if backend == "redis":
        # Imported lazily so the memory backend has no Redis import cost.
        from gatekeeper.adapters.cache.redis_cache import RedisKeyedCache

        logger.info("cache.backend_selected", extra={"backend": backend, "key_prefix": cfg.key_prefix})
        return RedisKeyedCache.from_url(cfg.redis_url, key_prefix=cfg.key_prefix)

    raise ValidationAppError(
        code="unsupported_cache_backend",
        message=f"Unsupported cache backend: {cfg.backend}",
        details={"hint": "Set CACHE_BACKEND to 'memory' or 'redis'"},
    )
