"""Tests for the rate limiter service and its presets."""

import pytest

from gatekeeper.adapters.rate_limit.cache_window import CacheFixedWindowRateLimiter
from gatekeeper.core.errors import RateLimited
from gatekeeper.services.rate_limiter import PER_USER, PRESETS, RELAXED, STANDARD, STRICT, RateLimiter

from conftest import make_ctx


@pytest.fixture
def limiter(cache, clock) -> RateLimiter:
    return RateLimiter(CacheFixedWindowRateLimiter(cache, clock=clock))


def _exhaust(limiter: RateLimiter, ctx, max_requests: int, window_seconds: int) -> None:
    for _ in range(max_requests):
        limiter.check(ctx, max_requests, window_seconds)


def test_presets_match_documented_limits() -> None:
    assert (STRICT.max_requests, STRICT.window_seconds) == (5, 300)
    assert (STANDARD.max_requests, STANDARD.window_seconds) == (60, 60)
    assert (RELAXED.max_requests, RELAXED.window_seconds) == (120, 60)
    assert (PER_USER.max_requests, PER_USER.window_seconds) == (100, 60)
    assert set(PRESETS) == {"strict", "standard", "relaxed", "per_user"}


def test_fourth_request_in_window_is_rejected(limiter: RateLimiter) -> None:
    ctx = make_ctx(ip="1.2.3.4")

    for expected_remaining in (2, 1, 0):
        assert limiter.check(ctx, 3, 60).remaining == expected_remaining

    with pytest.raises(RateLimited) as exc_info:
        limiter.check(ctx, 3, 60)

    exc = exc_info.value
    assert 0 < exc.retry_after <= 60
    assert exc.limit == 3
    assert exc.window == 60
    assert exc.message == "Too many requests. Please try again later."


def test_window_resets_after_elapsed(limiter: RateLimiter, clock) -> None:
    ctx = make_ctx(ip="1.2.3.4")
    _exhaust(limiter, ctx, 3, 60)

    clock.advance(60)

    assert limiter.check(ctx, 3, 60).allowed is True


def test_retry_after_counts_down(limiter: RateLimiter, clock) -> None:
    ctx = make_ctx(ip="1.2.3.4")
    _exhaust(limiter, ctx, 2, 60)
    clock.advance(25)

    with pytest.raises(RateLimited) as exc_info:
        limiter.check(ctx, 2, 60)

    assert exc_info.value.retry_after == 35


def test_ip_comes_from_proxy_headers(limiter: RateLimiter) -> None:
    proxied = make_ctx(ip="10.0.0.1", headers={"X-Forwarded-For": "198.51.100.1"})
    _exhaust(limiter, proxied, 1, 60)

    with pytest.raises(RateLimited):
        limiter.check(make_ctx(ip="10.0.0.2", headers={"X-Forwarded-For": "198.51.100.1"}), 1, 60)

    assert limiter.check(make_ctx(ip="10.0.0.1"), 1, 60).allowed is True


def test_explicit_identifier(limiter: RateLimiter) -> None:
    limiter.check(make_ctx(ip="1.1.1.1"), 1, 60, identifier="login:alice")

    with pytest.raises(RateLimited):
        limiter.check(make_ctx(ip="2.2.2.2"), 1, 60, identifier="login:alice")


def test_check_strict_blocks_sixth_request(limiter: RateLimiter) -> None:
    ctx = make_ctx()
    for _ in range(5):
        limiter.check_strict(ctx)

    with pytest.raises(RateLimited) as exc_info:
        limiter.check_strict(ctx)

    assert exc_info.value.limit == 5
    assert exc_info.value.window == 300


def test_presets_share_one_window_per_ip(limiter: RateLimiter, clock) -> None:
    ctx = make_ctx(ip="1.2.3.4")
    for _ in range(5):
        limiter.check_relaxed(ctx)
    clock.advance(20)

    with pytest.raises(RateLimited) as exc_info:
        limiter.check_strict(ctx)

    # The relaxed request opened a 60 s window; the 429 describes that window.
    exc = exc_info.value
    assert exc.limit == 5
    assert exc.window == 60
    assert exc.retry_after == 40


def test_check_standard_and_relaxed_use_their_limits(limiter: RateLimiter) -> None:
    assert limiter.check_standard(make_ctx(ip="1.1.1.1")).remaining == 59
    assert limiter.check_relaxed(make_ctx(ip="2.2.2.2")).remaining == 119


def test_check_by_user_keys_on_user(limiter: RateLimiter, cache) -> None:
    limiter.check_by_user(make_ctx(ip="1.1.1.1", user_id="5"), 1, 60)

    # Same user from another address shares the window.
    with pytest.raises(RateLimited):
        limiter.check_by_user(make_ctx(ip="2.2.2.2", user_id="5"), 1, 60)

    assert cache.get("ratelimit:user_5")["count"] == 1
    assert cache.get("ratelimit:1.1.1.1") is None


def test_check_by_user_falls_back_to_ip(limiter: RateLimiter, cache) -> None:
    limiter.check_by_user(make_ctx(ip="1.1.1.1"))

    assert cache.get("ratelimit:1.1.1.1")["count"] == 1


def test_check_preset_routes_per_user(limiter: RateLimiter, cache) -> None:
    result = limiter.check_preset(make_ctx(user_id="9"), PER_USER)

    assert result.limit == 100
    assert cache.get("ratelimit:user_9") is not None


def test_get_status_does_not_count(limiter: RateLimiter) -> None:
    ctx = make_ctx(ip="1.2.3.4")
    limiter.check(ctx, 5, 60)
    limiter.check(ctx, 5, 60)

    first = limiter.get_status(ctx, max_requests=5)
    second = limiter.get_status(ctx, max_requests=5)

    assert first == second
    assert first.requests == 2
    assert first.remaining == 3


def test_clear_single_identifier(limiter: RateLimiter) -> None:
    ctx = make_ctx(ip="1.2.3.4")
    _exhaust(limiter, ctx, 1, 60)

    assert limiter.clear("1.2.3.4") == 1

    assert limiter.check(ctx, 1, 60).allowed is True


def test_clear_all_windows(limiter: RateLimiter) -> None:
    for ip in ("1.1.1.1", "2.2.2.2", "3.3.3.3"):
        limiter.check(make_ctx(ip=ip), 1, 60)

    assert limiter.clear() == 3
    assert limiter.get_status(make_ctx(ip="1.1.1.1")).requests == 0
