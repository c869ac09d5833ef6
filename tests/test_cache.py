"""Tests for the TTL result cache."""

import pytest

from metasearch.search.cache import SearchCache, build_cache_key


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestCacheKey:
    def test_key_is_deterministic_and_normalized(self):
        a = build_cache_key("scrape", "default", "  Python   AsyncIO ", 1, True)
        b = build_cache_key("scrape", "default", "python asyncio", 1, True)
        assert a == b == "scrape:default:python asyncio:1:true"

    def test_key_components_matter(self):
        base = build_cache_key("scrape", "default", "q", 1, True)
        assert base != build_cache_key("browser", "default", "q", 1, True)
        assert base != build_cache_key("scrape", "all", "q", 1, True)
        assert base != build_cache_key("scrape", "default", "q", 2, True)
        assert base != build_cache_key("scrape", "default", "q", 1, False)


class TestSearchCache:
    @pytest.mark.asyncio
    async def test_value_returned_before_ttl(self):
        clock = FakeClock()
        cache = SearchCache(default_ttl=300, clock=clock)
        value = ["result"]
        await cache.set("k", value)

        clock.now += 299.999
        assert await cache.get("k") is value

    @pytest.mark.asyncio
    async def test_value_expires_at_ttl(self):
        clock = FakeClock()
        cache = SearchCache(default_ttl=300, clock=clock)
        await cache.set("k", "v")

        clock.now += 300
        assert await cache.get("k") is None
        stats = await cache.get_stats()
        assert stats["size"] == 0

    @pytest.mark.asyncio
    async def test_custom_ttl(self):
        clock = FakeClock()
        cache = SearchCache(default_ttl=300, clock=clock)
        await cache.set("k", "v", ttl=10)
        clock.now += 11
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_clear_evicts_everything(self):
        cache = SearchCache()
        await cache.set("a", 1)
        await cache.set("b", 2)
        assert await cache.clear() == 2
        assert await cache.get("a") is None
        assert await cache.get("b") is None

    @pytest.mark.asyncio
    async def test_stats_count_hits_and_misses(self):
        cache = SearchCache()
        await cache.set("a", 1)
        await cache.get("a")
        await cache.get("missing")
        stats = await cache.get_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["default_ttl"] == 300

    @pytest.mark.asyncio
    async def test_full_cache_drops_oldest(self):
        clock = FakeClock()
        cache = SearchCache(max_size=5, clock=clock)
        for i in range(5):
            await cache.set(f"k{i}", i)
            clock.now += 1

        await cache.set("new", "x")

        assert await cache.get("k0") is None
        assert await cache.get("new") == "x"
        assert (await cache.get_stats())["size"] == 5
