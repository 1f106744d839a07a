"""Keyed cache adapters.

Both admission guards depend on the ``AbstractKeyedCache`` contract only, so
the process-local store can be swapped for Redis without touching them.
"""

from __future__ import annotations

from gatekeeper.adapters.cache.base import AbstractKeyedCache, build_cache_key
from gatekeeper.adapters.cache.factory import build_cache
from gatekeeper.adapters.cache.in_memory import InMemoryKeyedCache

__all__ = ["AbstractKeyedCache", "InMemoryKeyedCache", "build_cache", "build_cache_key"]
