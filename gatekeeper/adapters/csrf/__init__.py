"""CSRF token storage adapters.

The CSRF guard reads and writes one token record at a time through a
store. Stores never decide validity; they only keep records and claim the
single-use marker atomically.
"""

from __future__ import annotations

from gatekeeper.adapters.csrf.base import AbstractTokenStore, CsrfToken
from gatekeeper.adapters.csrf.stores import JsonFileTokenStore, KeyedCacheTokenStore

__all__ = ["AbstractTokenStore", "CsrfToken", "JsonFileTokenStore", "KeyedCacheTokenStore"]
