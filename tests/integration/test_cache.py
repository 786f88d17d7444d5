"""
Integration tests for adsperf/cache.py

Tests the in-process insights cache: TTL expiry, eviction, and stats.
"""
import pytest

from adsperf.cache import CacheStats, InsightsCache
from adsperf.config import CacheConfig


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


class TestCacheStats:
    """Tests for CacheStats class."""

    def test_initial_values(self):
        """Stats start at zero."""
        stats = CacheStats()
        assert stats.hits == 0
        assert stats.misses == 0
        assert stats.sets == 0
        assert stats.evictions == 0
        assert stats.invalidations == 0

    def test_hit_rate_empty(self):
        """Hit rate is 0 when no requests."""
        assert CacheStats().hit_rate == 0.0

    def test_hit_rate_calculation(self):
        """Hit rate calculated correctly."""
        stats = CacheStats(hits=75, misses=25)
        assert stats.hit_rate == 75.0

    def test_to_dict(self):
        """Converts to dictionary correctly."""
        stats = CacheStats(hits=10, misses=5, sets=8, evictions=1, invalidations=2)
        d = stats.to_dict()

        assert d["hits"] == 10
        assert d["evictions"] == 1
        assert d["hit_rate_percent"] == pytest.approx(66.67, rel=0.01)

    def test_reset(self):
        """Reset clears all counters."""
        stats = CacheStats(hits=10, misses=5, evictions=1)
        stats.reset()

        assert stats.hits == 0
        assert stats.misses == 0
        assert stats.evictions == 0


class TestInsightsCacheDisabled:
    """Tests for InsightsCache with a zero TTL."""

    def test_disabled_by_default(self):
        """Zero TTL from config means disabled."""
        cache = InsightsCache(settings=CacheConfig(ttl_seconds=0))
        assert cache.enabled is False

    @pytest.mark.asyncio
    async def test_get_returns_none(self):
        cache = InsightsCache(ttl_seconds=0)
        assert await cache.set("key", [1]) is False
        assert await cache.get("key") is None

    @pytest.mark.asyncio
    async def test_get_or_set_always_calls_factory(self):
        cache = InsightsCache(ttl_seconds=0)
        calls = 0

        async def factory():
            nonlocal calls
            calls += 1
            return [calls]

        assert await cache.get_or_set("key", factory) == [1]
        assert await cache.get_or_set("key", factory) == [2]


class TestInsightsCache:
    """Tests for InsightsCache with a positive TTL."""

    @pytest.mark.asyncio
    async def test_set_and_get(self, fake_clock):
        cache = InsightsCache(ttl_seconds=60, clock=fake_clock)

        await cache.set("key", ["a"])

        assert await cache.get("key") == ["a"]
        assert cache.get_stats()["hits"] == 1

    @pytest.mark.asyncio
    async def test_expires_after_ttl(self, fake_clock):
        cache = InsightsCache(ttl_seconds=60, clock=fake_clock)
        await cache.set("key", ["a"])

        fake_clock.now += 61

        assert await cache.get("key") is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_per_entry_ttl(self, fake_clock):
        cache = InsightsCache(ttl_seconds=60, clock=fake_clock)
        await cache.set("key", ["a"], ttl=5)

        fake_clock.now += 10

        assert await cache.get("key") is None

    @pytest.mark.asyncio
    async def test_evicts_oldest(self, fake_clock):
        """Oldest entry goes when max_entries is exceeded."""
        cache = InsightsCache(ttl_seconds=60, max_entries=2, clock=fake_clock)

        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.set("c", 3)

        assert await cache.get("a") is None
        assert await cache.get("c") == 3
        assert cache.get_stats()["evictions"] == 1

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, fake_clock):
        cache = InsightsCache(ttl_seconds=60, clock=fake_clock)
        await cache.set("a", 1)
        await cache.set("b", 2)

        assert await cache.delete("a") is True
        assert await cache.delete("a") is False
        assert await cache.clear() == 1
        assert cache.get_stats()["invalidations"] == 2

    @pytest.mark.asyncio
    async def test_get_or_set_caches_result(self, fake_clock):
        cache = InsightsCache(ttl_seconds=60, clock=fake_clock)
        calls = 0

        async def factory():
            nonlocal calls
            calls += 1
            return ["records"]

        await cache.get_or_set("key", factory)
        await cache.get_or_set("key", factory)

        assert calls == 1

    @pytest.mark.asyncio
    async def test_factory_error_not_cached(self, fake_clock):
        cache = InsightsCache(ttl_seconds=60, clock=fake_clock)

        async def failing():
            raise RuntimeError("upstream down")

        with pytest.raises(RuntimeError):
            await cache.get_or_set("key", failing)

        assert len(cache) == 0

    def test_reset_stats(self):
        cache = InsightsCache(ttl_seconds=60)
        cache._stats.hits = 3
        cache.reset_stats()
        assert cache.get_stats()["hits"] == 0


class TestBuildKey:
    """Tests for InsightsCache.build_key."""

    def test_joins_parts(self):
        key = InsightsCache.build_key("insights", "act_1", "account", "2024-03-01", None, 1)
        assert key == "insights:act_1:account:2024-03-01:1"

    def test_long_keys_hashed(self):
        key = InsightsCache.build_key("insights", "x" * 300)
        assert key.startswith("insights:")
        assert len(key) == len("insights:") + 12

    def test_deterministic(self):
        assert InsightsCache.build_key("p", "a", "b") == InsightsCache.build_key("p", "a", "b")
