"""Unit tests for the keyed cache backends."""

import json
import threading
from unittest.mock import Mock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from gatekeeper.adapters.cache import build_cache, build_cache_key
from gatekeeper.adapters.cache.in_memory import InMemoryKeyedCache
from gatekeeper.adapters.cache.redis_cache import RedisKeyedCache
from gatekeeper.core.config import CacheSettings
from gatekeeper.core.errors import CacheUnavailableError, ValidationAppError


def test_build_cache_key_joins_parts_and_neutralises_separators() -> None:
    assert build_cache_key("ratelimit", "10.0.0.1") == "ratelimit:10.0.0.1"
    assert build_cache_key("ratelimit", "::1") == "ratelimit:__1"
    assert build_cache_key("csrf", "token", "abc") == "csrf:token:abc"


class TestInMemoryKeyedCache:
    def test_set_and_get_updates_hit_miss_counters(self, cache: InMemoryKeyedCache) -> None:
        assert cache.get("missing") is None

        cache.set("key", {"count": 1}, 10)
        assert cache.get("key") == {"count": 1}

        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1

    def test_entry_expires_exactly_at_ttl(self, cache: InMemoryKeyedCache, clock) -> None:
        cache.set("key", {"data": True}, 5)

        clock.advance(4.9)
        assert cache.get("key") == {"data": True}

        clock.advance(0.1)
        assert cache.get("key") is None
        assert cache.stats()["evictions"] == 1

    def test_returned_values_are_copies(self, cache: InMemoryKeyedCache) -> None:
        value = {"tokens": {"a": 1}}
        cache.set("key", value, 10)
        value["tokens"]["b"] = 2

        first = cache.get("key")
        first["tokens"]["c"] = 3

        assert cache.get("key") == {"tokens": {"a": 1}}

    def test_rejects_non_positive_ttl(self, cache: InMemoryKeyedCache) -> None:
        with pytest.raises(ValueError):
            cache.set("key", 1, 0)

    def test_delete_is_idempotent(self, cache: InMemoryKeyedCache) -> None:
        cache.set("key", 1, 10)
        cache.delete("key")
        cache.delete("key")

        assert cache.get("key") is None

    def test_flush_removes_only_matching_keys(self, cache: InMemoryKeyedCache) -> None:
        cache.set("ratelimit:1.2.3.4", {"count": 1}, 60)
        cache.set("ratelimit:user_5", {"count": 2}, 60)
        cache.set("csrf:token:abc", {}, 60)

        removed = cache.flush("ratelimit:*")

        assert removed == 2
        assert cache.get("ratelimit:1.2.3.4") is None
        assert cache.get("csrf:token:abc") == {}

    def test_lru_eviction_removes_least_recently_used(self, clock) -> None:
        cache = InMemoryKeyedCache(max_entries=2, clock=clock)
        cache.set("a", {"v": 1}, 100)
        cache.set("b", {"v": 2}, 100)

        # Access "a" so that "b" becomes least recently used
        assert cache.get("a") == {"v": 1}

        cache.set("c", {"v": 3}, 100)

        assert cache.get("a") == {"v": 1}
        assert cache.get("c") == {"v": 3}
        assert cache.get("b") is None

    def test_add_only_stores_absent_keys(self, cache: InMemoryKeyedCache, clock) -> None:
        assert cache.add("marker", True, 10) is True
        assert cache.add("marker", False, 10) is False
        assert cache.get("marker") is True

        clock.advance(10)
        assert cache.add("marker", "again", 10) is True
        assert cache.get("marker") == "again"

    def test_concurrent_add_has_one_winner(self) -> None:
        cache = InMemoryKeyedCache(max_entries=None)
        barrier = threading.Barrier(10)
        results: list[bool] = []

        def _claim() -> None:
            barrier.wait()
            results.append(cache.add("marker", True, 30))

        threads = [threading.Thread(target=_claim) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1

    def test_keys_lists_live_matches(self, cache: InMemoryKeyedCache, clock) -> None:
        cache.set("csrf:token:a", {}, 10)
        cache.set("csrf:token:b", {}, 5)
        cache.set("ratelimit:1.2.3.4", {}, 10)

        assert sorted(cache.keys("csrf:token:*")) == ["csrf:token:a", "csrf:token:b"]

        clock.advance(5)
        assert cache.keys("csrf:token:*") == ["csrf:token:a"]

    def test_protected_prefixes_are_never_evicted_by_lru(self, clock) -> None:
        cache = InMemoryKeyedCache(max_entries=2, protected_prefixes=("csrf:",), clock=clock)
        cache.set("csrf:token:a", {"v": 0}, 100)

        for i in range(5):
            cache.set(f"ratelimit:10.0.0.{i}", {"count": 1}, 100)

        assert cache.get("csrf:token:a") == {"v": 0}
        assert cache.keys("ratelimit:*") == ["ratelimit:10.0.0.3", "ratelimit:10.0.0.4"]
        assert cache.stats()["protected"] == 1

    def test_protected_entries_still_expire_and_flush(self, clock) -> None:
        cache = InMemoryKeyedCache(max_entries=2, protected_prefixes=("csrf:",), clock=clock)
        cache.set("csrf:token:a", 1, 10)
        cache.set("csrf:token:b", 1, 100)

        clock.advance(10)
        assert cache.get("csrf:token:a") is None
        assert cache.flush("csrf:*") == 1
        assert len(cache) == 0

    def test_clear_resets_state(self, cache: InMemoryKeyedCache) -> None:
        cache.set("a", {"v": 1}, 10)
        cache.get("a")
        cache.get("missing")

        cache.clear()

        stats = cache.stats()
        assert stats["entries"] == 0
        assert stats["hits"] == 0
        assert stats["misses"] == 0
        assert stats["evictions"] == 0

    def test_thread_safety_under_concurrent_sets(self) -> None:
        cache = InMemoryKeyedCache(max_entries=None)
        total_keys = 50

        def _writer(idx: int) -> None:
            cache.set(f"k-{idx}", {"v": idx}, 30)

        threads = [threading.Thread(target=_writer, args=(i,)) for i in range(total_keys)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert cache.stats()["entries"] == total_keys
        assert cache.get("k-0") == {"v": 0}
        assert cache.get("k-49") == {"v": 49}


class TestRedisKeyedCache:
    def test_set_uses_setex_with_prefixed_key_and_json(self) -> None:
        redis = Mock()
        cache = RedisKeyedCache(redis, key_prefix="gk")

        cache.set("ratelimit:1.2.3.4", {"count": 1, "reset_at": 60}, 42)

        redis.setex.assert_called_once_with(
            "gk:ratelimit:1.2.3.4", 42, json.dumps({"count": 1, "reset_at": 60})
        )

    def test_get_decodes_json_and_returns_none_for_missing(self) -> None:
        redis = Mock()
        redis.get.side_effect = ['{"count": 3}', None]
        cache = RedisKeyedCache(redis)

        assert cache.get("a") == {"count": 3}
        assert cache.get("b") is None
        redis.get.assert_any_call("gatekeeper:a")

    def test_backend_errors_are_raised_as_cache_unavailable(self) -> None:
        redis = Mock()
        redis.get.side_effect = RedisConnectionError("down")
        redis.setex.side_effect = RedisConnectionError("down")
        redis.delete.side_effect = RedisConnectionError("down")
        cache = RedisKeyedCache(redis)

        with pytest.raises(CacheUnavailableError):
            cache.get("a")
        with pytest.raises(CacheUnavailableError):
            cache.set("a", 1, 10)
        with pytest.raises(CacheUnavailableError):
            cache.delete("a")

    def test_undecodable_entry_is_a_backend_error(self) -> None:
        redis = Mock()
        redis.get.return_value = "{not json"
        cache = RedisKeyedCache(redis)

        with pytest.raises(CacheUnavailableError):
            cache.get("a")

    def test_flush_deletes_scanned_keys_in_batches(self) -> None:
        redis = Mock()
        redis.scan_iter.return_value = iter(["gk:ratelimit:a", "gk:ratelimit:b", "gk:ratelimit:c"])
        redis.delete.side_effect = lambda *keys: len(keys)
        cache = RedisKeyedCache(redis, key_prefix="gk", scan_count=2)

        removed = cache.flush("ratelimit:*")

        assert removed == 3
        redis.scan_iter.assert_called_once_with(match="gk:ratelimit:*", count=2)
        assert redis.delete.call_count == 2

    def test_add_uses_set_nx_with_expiry(self) -> None:
        redis = Mock()
        redis.set.side_effect = [True, None]
        cache = RedisKeyedCache(redis, key_prefix="gk")

        assert cache.add("csrf:used:abc", True, 60) is True
        assert cache.add("csrf:used:abc", True, 60) is False
        redis.set.assert_called_with("gk:csrf:used:abc", "true", ex=60, nx=True)

    def test_keys_strips_the_prefix(self) -> None:
        redis = Mock()
        redis.scan_iter.return_value = iter(["gk:csrf:token:a", "gk:csrf:token:b"])
        cache = RedisKeyedCache(redis, key_prefix="gk")

        assert cache.keys("csrf:token:*") == ["csrf:token:a", "csrf:token:b"]
        redis.scan_iter.assert_called_once_with(match="gk:csrf:token:*", count=500)

    def test_add_and_keys_errors_are_cache_unavailable(self) -> None:
        redis = Mock()
        redis.set.side_effect = RedisConnectionError("down")
        redis.scan_iter.side_effect = RedisConnectionError("down")
        cache = RedisKeyedCache(redis)

        with pytest.raises(CacheUnavailableError):
            cache.add("a", 1, 10)
        with pytest.raises(CacheUnavailableError):
            cache.keys("*")

    def test_ping_reports_failures_as_false(self) -> None:
        redis = Mock()
        redis.ping.side_effect = RedisConnectionError("down")

        assert RedisKeyedCache(redis).ping() is False


class TestBuildCache:
    def test_memory_backend(self) -> None:
        cache = build_cache(CacheSettings(backend="memory", max_entries=10))
        assert isinstance(cache, InMemoryKeyedCache)
        assert cache.protected_prefixes == ("csrf:",)

    def test_redis_backend_uses_configured_url(self) -> None:
        cache = build_cache(CacheSettings(backend="redis", redis_url="redis://localhost:6379/3", key_prefix="gk"))
        assert isinstance(cache, RedisKeyedCache)
        assert cache.key_prefix == "gk"

    def test_unknown_backend_is_rejected(self) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            build_cache(CacheSettings(backend="memcached"))
        assert exc_info.value.code == "unsupported_cache_backend"
