"""
Report Cache

Memoizes report payloads keyed by their full filter set. There is no TTL
and no per-key invalidation: any ingestion, catalog update or deletion
clears everything.

Clearing is atomic with respect to readers through a generation counter.
clear_all() bumps the generation, readers only see keys of the current
generation, and a value computed before a clear is dropped by put().
Values are stored as JSON, so every hit returns an independent copy.
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog
from redis.asyncio import ConnectionPool, Redis

from warehouse_analytics.config import get_settings

logger = structlog.get_logger(__name__)

# Global Redis connection
_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[Redis] = None


async def init_redis() -> Redis:
    """Initialize Redis connection pool"""
    global _redis_pool, _redis_client

    if _redis_client is not None:
        return _redis_client

    settings = get_settings()
    _redis_pool = ConnectionPool.from_url(
        settings.redis.get_url(),
        max_connections=settings.redis.max_connections,
        socket_timeout=settings.redis.socket_timeout,
        decode_responses=settings.redis.decode_responses,
    )
    _redis_client = Redis(connection_pool=_redis_pool)

    try:
        await _redis_client.ping()
        logger.info("Redis connection established")
    except Exception as e:
        logger.error("Redis connection failed", error=str(e))
        raise

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection pool"""
    global _redis_pool, _redis_client

    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None

    if _redis_pool:
        await _redis_pool.disconnect()
        _redis_pool = None
        logger.info("Redis connection closed")


# =============================================================================
# BACKENDS
# =============================================================================

class MemoryCacheBackend:
    """In-process backend; one asyncio lock guards entries and generation."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._generation = 0
        self._entries: Dict[str, str] = {}

    async def generation(self) -> int:
        async with self._lock:
            return self._generation

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._entries.get(key)

    async def put(self, key: str, payload: str, generation: int) -> bool:
        async with self._lock:
            if generation != self._generation:
                return False
            self._entries[key] = payload
            return True

    async def clear(self) -> int:
        async with self._lock:
            self._generation += 1
            removed = len(self._entries)
            self._entries.clear()
            return removed

    async def size(self) -> int:
        async with self._lock:
            return len(self._entries)


class RedisCacheBackend:
    """
    Redis backend. Keys are "{namespace}:{generation}:{key}"; the current
    generation lives in "{namespace}:generation". Entries of older
    generations are unreachable once the counter moves and are deleted
    by clear().
    """

    def __init__(self, client: Redis, namespace: str = "reports"):
        self.client = client
        self.namespace = namespace
        self.generation_key = f"{namespace}:generation"

    def _key(self, generation: int, key: str) -> str:
        return f"{self.namespace}:{generation}:{key}"

    async def generation(self) -> int:
        value = await self.client.get(self.generation_key)
        return int(value) if value is not None else 0

    async def get(self, key: str) -> Optional[str]:
        value = await self.client.get(self._key(await self.generation(), key))
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    async def put(self, key: str, payload: str, generation: int) -> bool:
        if generation != await self.generation():
            return False
        await self.client.set(self._key(generation, key), payload)
        return True

    async def clear(self) -> int:
        current = await self.client.incr(self.generation_key)
        live_prefix = f"{self.namespace}:{current}:"
        stale = []
        async for raw in self.client.scan_iter(match=f"{self.namespace}:*"):
            key = raw.decode("utf-8") if isinstance(raw, bytes) else raw
            if key != self.generation_key and not key.startswith(live_prefix):
                stale.append(key)
        if stale:
            await self.client.delete(*stale)
        return len(stale)

    async def size(self) -> int:
        count = 0
        async for _ in self.client.scan_iter(match=f"{self.namespace}:{await self.generation()}:*"):
            count += 1
        return count


# =============================================================================
# REPORT CACHE
# =============================================================================

class ReportCache:
    """
    Report payload cache over a backend.

    Example:
        cache = ReportCache(MemoryCacheBackend())
        payload = await cache.get_or_compute(filters.cache_key(), compute)
        await cache.clear_all()
    """

    def __init__(self, backend=None):
        self.backend = backend or MemoryCacheBackend()

    async def generation(self) -> int:
        return await self.backend.generation()

    async def get(self, key: str) -> Optional[Any]:
        payload = await self.backend.get(key)
        if payload is None:
            logger.debug("Report cache miss", key=key)
            return None
        logger.debug("Report cache hit", key=key)
        return json.loads(payload)

    async def put(self, key: str, value: Any, generation: Optional[int] = None) -> bool:
        """
        Store a value computed under `generation` (default: current).

        Returns:
            False when the cache was cleared since that generation and the
            value was discarded
        """
        if generation is None:
            generation = await self.backend.generation()
        stored = await self.backend.put(key, json.dumps(value, default=str), generation)
        if not stored:
            logger.debug("Discarded report computed before invalidation", key=key)
        return stored

    async def clear_all(self) -> None:
        removed = await self.backend.clear()
        logger.info("Report cache invalidated", entries_removed=removed)

    async def get_or_compute(self, key: str, compute: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value or compute, store and return it."""
        generation = await self.backend.generation()
        cached = await self.get(key)
        if cached is not None:
            return cached
        value = await compute()
        await self.put(key, value, generation)
        return value

    async def size(self) -> int:
        return await self.backend.size()


async def build_report_cache(settings=None) -> ReportCache:
    """Report cache for the configured backend (memory or redis)."""
    settings = settings or get_settings()
    if settings.cache.backend == "redis":
        client = await init_redis()
        backend = RedisCacheBackend(client, namespace=settings.cache.namespace)
    else:
        backend = MemoryCacheBackend()
    logger.info("Report cache ready", backend=settings.cache.backend)
    return ReportCache(backend)
