"""
Cache Store - string values with a time-to-live.

Two interchangeable implementations behind one interface:
- MemoryCacheStore: lock-guarded dict with absolute expiry timestamps,
  swept periodically on writes
- RedisCacheStore: redis.asyncio adapter (SETEX/GET/DEL/SCAN/DBSIZE)

Values are opaque serialized strings; the cache service owns encoding.
"""

import fnmatch
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from src.common.config import uses_redis
from src.common.counter_store import SWEEP_INTERVAL_SECONDS
from src.common.errors import BackendUnavailable

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Backend statistics reported by the status query."""

    keys: int = 0
    memory: str = "unknown"
    hits: int = 0
    misses: int = 0
    backend: str = "in-memory"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keys": self.keys,
            "memory": self.memory,
            "hits": self.hits,
            "misses": self.misses,
            "backend": self.backend,
        }


class CacheStore(ABC):
    """Abstract cache store interface."""

    backend_name: str = "unknown"

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Stored value, or None when absent or past its expiry."""
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Overwrite the key wholesale with a fresh expiry."""
        pass

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys, returning how many existed."""
        pass

    @abstractmethod
    async def keys(self, pattern: str) -> List[str]:
        """Live keys matching a glob pattern."""
        pass

    @abstractmethod
    async def stats(self) -> CacheStats:
        pass

    async def close(self) -> None:
        return None


class MemoryCacheStore(CacheStore):
    """In-process cache; expired entries go on read and in a periodic sweep on writes."""

    backend_name = "in-memory"

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval_seconds: float = SWEEP_INTERVAL_SECONDS,
    ):
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (value, expires_at)
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._hits = 0
        self._misses = 0
        self._sweep_interval = sweep_interval_seconds
        self._next_sweep = clock() + sweep_interval_seconds

    def _purge_expired(self) -> None:
        # Caller must hold the lock
        now = self._clock()
        for key in [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]:
            del self._entries[key]

    def _maybe_sweep(self) -> None:
        # Caller must hold the lock
        now = self._clock()
        if now >= self._next_sweep:
            self._next_sweep = now + self._sweep_interval
            self._purge_expired()

    async def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry[1] <= self._clock():
                del self._entries[key]
                entry = None
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            return entry[0]

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._maybe_sweep()
            self._entries[key] = (value, self._clock() + ttl_seconds)

    async def delete(self, *keys: str) -> int:
        with self._lock:
            return sum(1 for key in keys if self._entries.pop(key, None) is not None)

    async def keys(self, pattern: str) -> List[str]:
        with self._lock:
            self._purge_expired()
            return [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]

    async def stats(self) -> CacheStats:
        with self._lock:
            self._purge_expired()
            size = sum(len(k) + len(v) for k, (v, _) in self._entries.items())
            return CacheStats(
                keys=len(self._entries),
                memory=f"{size / 1024:.2f}K",
                hits=self._hits,
                misses=self._misses,
                backend=self.backend_name,
            )

    def flush_all(self) -> None:
        """Drop every entry and reset counters (used by tests)."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0


class RedisCacheStore(CacheStore):
    """Cache store backed by Redis."""

    backend_name = "redis"

    def __init__(self, redis_url: Optional[str] = None, client=None):
        if client is None:
            client = aioredis.from_url(redis_url, encoding="utf-8", decode_responses=True)
        self._redis = client

    def _unavailable(self, operation: str, error: Exception) -> BackendUnavailable:
        logger.warning(f"Redis cache {operation} failed: {error}")
        return BackendUnavailable("redis", operation, str(error))

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._redis.get(key)
        except (RedisError, OSError) as e:
            raise self._unavailable("get", e) from e

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._redis.setex(key, ttl_seconds, value)
        except (RedisError, OSError) as e:
            raise self._unavailable("set", e) from e

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(await self._redis.delete(*keys))
        except (RedisError, OSError) as e:
            raise self._unavailable("delete", e) from e

    async def keys(self, pattern: str) -> List[str]:
        try:
            return [key async for key in self._redis.scan_iter(match=pattern)]
        except (RedisError, OSError) as e:
            raise self._unavailable("scan", e) from e

    async def stats(self) -> CacheStats:
        try:
            stats_info = await self._redis.info("stats")
            memory_info = await self._redis.info("memory")
            keys = await self._redis.dbsize()
        except (RedisError, OSError) as e:
            raise self._unavailable("stats", e) from e
        return CacheStats(
            keys=int(keys),
            memory=str(memory_info.get("used_memory_human", "unknown")),
            hits=int(stats_info.get("keyspace_hits", 0)),
            misses=int(stats_info.get("keyspace_misses", 0)),
            backend=self.backend_name,
        )

    async def close(self) -> None:
        await self._redis.aclose()


def create_cache_store(redis_url: Optional[str]) -> CacheStore:
    """Pick the backend once: Redis for a real URL, in-process otherwise."""
    if uses_redis(redis_url):
        logger.info("Cache store: redis")
        return RedisCacheStore(redis_url)
    logger.info("Cache store: in-memory")
    return MemoryCacheStore()
