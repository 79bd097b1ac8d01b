"""Tests for the TTL response cache."""

from __future__ import annotations

import asyncio

import pytest

from swagger_adapter.cache import MISS, CacheSet, ResponseCache
from swagger_adapter.config import Settings


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> ResponseCache:
    return ResponseCache(default_ttl=60, max_size=3, clock=clock)


class TestGenerateKey:
    def test_param_order_does_not_matter(self):
        assert ResponseCache.generate_key("GET", "/x", {"a": 1, "b": 2}) == ResponseCache.generate_key(
            "GET", "/x", {"b": 2, "a": 1}
        )

    def test_includes_method_and_url(self):
        assert ResponseCache.generate_key("GET", "/x") == 'GET:/x:{}'
        assert ResponseCache.generate_key("GET", "/x") != ResponseCache.generate_key("POST", "/x")

    def test_different_params_differ(self):
        assert ResponseCache.generate_key("GET", "/x", {"a": 1}) != ResponseCache.generate_key(
            "GET", "/x", {"a": 2}
        )


class TestGetSet:
    def test_hit_then_expire(self, cache: ResponseCache, clock: FakeClock):
        cache.set("k", {"v": 1}, ttl=10)
        assert cache.get("k") == {"v": 1}

        clock.advance(10.5)
        assert cache.get("k") is MISS

    def test_expired_entry_is_deleted_on_get(self, cache: ResponseCache, clock: FakeClock):
        cache.set("k", 1, ttl=1)
        clock.advance(2)
        assert len(cache) == 1
        cache.get("k")
        assert len(cache) == 0

    def test_default_ttl(self, cache: ResponseCache, clock: FakeClock):
        cache.set("k", "v")
        clock.advance(59)
        assert cache.get("k") == "v"
        clock.advance(2)
        assert cache.get("k") is MISS

    def test_falsy_values_are_hits(self, cache: ResponseCache):
        cache.set("zero", 0)
        cache.set("empty", [])
        assert cache.get("zero") == 0
        assert cache.get("empty") == []

    def test_unknown_key_is_miss(self, cache: ResponseCache):
        assert cache.get("nope") is MISS
        assert not MISS

    def test_disabled_cache_never_stores(self, clock: FakeClock):
        cache = ResponseCache(enabled=False, clock=clock)
        cache.set("k", 1)
        assert cache.get("k") is MISS
        assert len(cache) == 0

    def test_remove_and_clear(self, cache: ResponseCache):
        cache.set("a", 1)
        cache.set("b", 2)
        cache.remove("a")
        assert cache.get("a") is MISS
        cache.clear()
        assert len(cache) == 0


class TestEviction:
    def test_full_cache_evicts_nearest_expiry(self, cache: ResponseCache):
        cache.set("long", 1, ttl=100)
        cache.set("short", 2, ttl=5)
        cache.set("mid", 3, ttl=50)

        cache.set("new", 4)

        assert len(cache) == 3
        assert cache.get("short") is MISS
        assert cache.get("long") == 1
        assert cache.get("new") == 4

    @pytest.mark.parametrize("max_size", [0, -1])
    def test_non_positive_max_size_stores_nothing(self, clock: FakeClock, max_size: int):
        cache = ResponseCache(max_size=max_size, clock=clock)
        cache.set("k", 1)
        assert len(cache) == 0
        assert cache.get("k") is MISS

    def test_overwrite_at_capacity_keeps_others(self, cache: ResponseCache):
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        cache.set("a", 10)
        assert [cache.get(k) for k in ("a", "b", "c")] == [10, 2, 3]


class TestGetOrFetch:
    async def test_miss_calls_producer_once_and_stores(self, cache: ResponseCache):
        calls = []

        async def producer():
            calls.append(1)
            return {"fresh": True}

        assert await cache.get_or_fetch("k", producer) == {"fresh": True}
        assert await cache.get_or_fetch("k", producer) == {"fresh": True}
        assert len(calls) == 1

    async def test_sync_producer(self, cache: ResponseCache):
        assert await cache.get_or_fetch("k", lambda: 42) == 42
        assert cache.get("k") == 42

    async def test_none_is_not_stored(self, cache: ResponseCache):
        calls = []

        def producer():
            calls.append(1)
            return None

        assert await cache.get_or_fetch("k", producer) is None
        assert await cache.get_or_fetch("k", producer) is None
        assert len(calls) == 2

    async def test_producer_error_propagates_and_nothing_is_stored(self, cache: ResponseCache):
        async def producer():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await cache.get_or_fetch("k", producer)
        assert cache.get("k") is MISS

    async def test_custom_ttl(self, cache: ResponseCache, clock: FakeClock):
        await cache.get_or_fetch("k", lambda: "v", ttl=1)
        clock.advance(2)
        assert cache.get("k") is MISS


class TestCleanup:
    def test_cleanup_removes_only_expired(self, cache: ResponseCache, clock: FakeClock):
        cache.set("old", 1, ttl=1)
        cache.set("new", 2, ttl=100)
        clock.advance(5)

        assert cache.cleanup() == 1
        assert len(cache) == 1
        assert cache.get("new") == 2

    def test_stats(self, cache: ResponseCache, clock: FakeClock):
        cache.set("old", 1, ttl=1)
        cache.set("new", 2, ttl=100)
        clock.advance(5)
        assert cache.stats() == {
            "size": 2,
            "activeEntries": 1,
            "expiredEntries": 1,
            "maxSize": 3,
            "enabled": True,
        }

    def test_is_cacheable(self):
        assert ResponseCache.is_cacheable({"a": 1}, 200)
        assert not ResponseCache.is_cacheable({"a": 1}, 201)
        assert not ResponseCache.is_cacheable(None, 200)

    async def test_background_cleanup_runs_until_disposed(self, clock: FakeClock):
        cache = ResponseCache(default_ttl=1, cleanup_interval=0.01, clock=clock)
        cache.set("k", 1)
        clock.advance(5)
        cache.start()
        cache.start()
        await asyncio.sleep(0.05)
        assert len(cache) == 0

        task = cache._cleanup_task
        cache.dispose()
        await asyncio.sleep(0.02)
        assert task is not None and task.cancelled()
        cache.dispose()

    def test_start_without_interval_is_noop(self, cache: ResponseCache):
        cache.start()
        assert cache._cleanup_task is None


class TestCacheSet:
    def test_tiers_are_independent(self):
        caches = CacheSet.from_settings(Settings())
        caches.report.set("k", "report")
        assert caches.lookup.get("k") is MISS
        assert caches.default.get("k") is MISS

    def test_select(self):
        caches = CacheSet.from_settings(Settings())
        assert caches.select("lookup") is caches.lookup
        assert caches.select("report") is caches.report
        assert caches.select("anything") is caches.default

    def test_policies(self):
        caches = CacheSet.from_settings(Settings(cache_default_ttl_seconds=42))
        assert (caches.lookup.default_ttl, caches.lookup.max_size) == (1800, 500)
        assert (caches.report.default_ttl, caches.report.max_size) == (600, 200)
        assert (caches.default.default_ttl, caches.default.max_size) == (42, 1000)

    def test_disabled_by_settings(self):
        caches = CacheSet.from_settings(Settings(cache_enabled=False))
        assert all(not cache.enabled for cache in caches.all())
