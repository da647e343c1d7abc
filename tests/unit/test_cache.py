"""
Unit Tests - Report Cache
"""
import asyncio
import fnmatch

import pytest

from warehouse_analytics.serving.cache import MemoryCacheBackend, RedisCacheBackend, ReportCache


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the cache backend"""

    def __init__(self):
        self.data = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value):
        self.data[key] = value.encode("utf-8") if isinstance(value, str) else value
        return True

    async def incr(self, key):
        value = int(self.data.get(key, 0)) + 1
        self.data[key] = str(value).encode("utf-8")
        return value

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += self.data.pop(key, None) is not None
        return removed

    async def scan_iter(self, match=None):
        for key in list(self.data):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key.encode("utf-8")


@pytest.fixture(params=["memory", "redis"])
def cache(request) -> ReportCache:
    if request.param == "memory":
        return ReportCache(MemoryCacheBackend())
    return ReportCache(RedisCacheBackend(FakeRedis(), namespace="test"))


class TestReportCache:
    """Tests for ReportCache over both backends"""

    async def test_get_or_compute_computes_once(self, cache):
        calls = []

        async def compute():
            calls.append(1)
            return {"cards": {"totalCbm": 5.0}}

        first = await cache.get_or_compute("inbound|summary", compute)
        second = await cache.get_or_compute("inbound|summary", compute)

        assert first == second == {"cards": {"totalCbm": 5.0}}
        assert len(calls) == 1
        assert await cache.size() == 1

    async def test_clear_all_drops_every_key(self, cache):
        await cache.put("a", {"v": 1})
        await cache.put("b", {"v": 2})

        await cache.clear_all()

        assert await cache.get("a") is None
        assert await cache.get("b") is None
        assert await cache.size() == 0

    async def test_stale_generation_is_discarded(self, cache):
        generation = await cache.generation()
        await cache.clear_all()

        stored = await cache.put("a", {"v": 1}, generation)

        assert stored is False
        assert await cache.get("a") is None

    async def test_result_computed_across_invalidation_is_not_cached(self, cache):
        """A clear that lands mid-computation keeps the old result out of the cache"""

        async def compute():
            await cache.clear_all()
            return {"v": "old"}

        assert await cache.get_or_compute("k", compute) == {"v": "old"}
        assert await cache.get("k") is None

    async def test_concurrent_readers(self, cache):
        async def compute():
            await asyncio.sleep(0)
            return [1, 2, 3]

        results = await asyncio.gather(*(cache.get_or_compute("k", compute) for _ in range(5)))
        assert all(result == [1, 2, 3] for result in results)


class TestRedisBackend:
    """Tests specific to the Redis key layout"""

    async def test_clear_removes_stale_keys(self):
        client = FakeRedis()
        backend = RedisCacheBackend(client, namespace="reports")
        await backend.put("k", "{}", 0)
        assert "reports:0:k" in client.data

        removed = await backend.clear()

        assert removed == 1
        assert await backend.generation() == 1
        assert list(client.data) == ["reports:generation"]
