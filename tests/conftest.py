"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment defaults are set before any gatekeeper import so the global
settings object is built from them.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault(
    "APP_API_KEYS",
    "admin-key-123:1:admin,user-key-456:5:user,user-key-789:7",
)
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("CSRF_STORAGE", "cache")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402

from gatekeeper.adapters.cache.in_memory import InMemoryKeyedCache  # noqa: E402
from gatekeeper.core.identity import AuthenticatedUser, RequestContext  # noqa: E402


class FakeClock:
    """Deterministic clock used to test expiration logic."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> InMemoryKeyedCache:
    return InMemoryKeyedCache(max_entries=None, clock=clock)


def make_ctx(
    method: str = "POST",
    *,
    ip: str = "1.2.3.4",
    ua: str = "test",
    user_id: str | None = None,
    role: str = "user",
    headers: dict[str, str] | None = None,
    query: dict[str, str] | None = None,
    json_body: dict | None = None,
) -> RequestContext:
    """Build a request context for guard unit tests."""

    all_headers = {"User-Agent": ua, **(headers or {})}
    user = AuthenticatedUser(id=user_id, role=role) if user_id is not None else None
    return RequestContext.build(
        method,
        headers=all_headers,
        query=query,
        json_body=json_body,
        remote_addr=ip,
        user=user,
    )
