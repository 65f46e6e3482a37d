"""
Counter Store - atomic integer counters with per-key expiry.

Backs the admission controller. Two interchangeable implementations:
- MemoryCounterStore: in-process table guarded by a lock, expired keys
  dropped on access and by a periodic sweep on writes
- RedisCounterStore: redis.asyncio adapter (INCR/DECR/GET/DEL/EXPIRE)

Which one is used is decided once at startup by create_counter_store().
Redis failures are raised as BackendUnavailable, never swallowed, so the
admission controller can apply its fail-open policy.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from src.common.config import uses_redis
from src.common.errors import BackendUnavailable

logger = logging.getLogger(__name__)

# Minimum seconds between full sweeps of expired in-process entries
SWEEP_INTERVAL_SECONDS = 60.0


class CounterStore(ABC):
    """Abstract counter store interface."""

    backend_name: str = "unknown"

    @abstractmethod
    async def increment(self, key: str) -> int:
        """Atomically add one and return the new value (missing keys start at 0)."""
        pass

    @abstractmethod
    async def decrement(self, key: str) -> int:
        """Atomically subtract one and return the new value."""
        pass

    @abstractmethod
    async def get(self, key: str) -> Optional[int]:
        """Current value, or None when the key is absent or expired."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass

    @abstractmethod
    async def expire(self, key: str, seconds: int) -> None:
        """(Re)set the key's time-to-live. No-op for absent keys."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None


class MemoryCounterStore(CounterStore):
    """
    In-process counter table.

    Values and deadlines live in one dict guarded by a threading.Lock.
    Expired keys are dropped on access, and writes sweep the whole table at
    most once per sweep interval so keys that are never touched again
    (yesterday's daily counters) do not accumulate.
    """

    backend_name = "in-memory"

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval_seconds: float = SWEEP_INTERVAL_SECONDS,
    ):
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (value, deadline or None)
        self._counters: Dict[str, Tuple[int, Optional[float]]] = {}
        self._sweep_interval = sweep_interval_seconds
        self._next_sweep = clock() + sweep_interval_seconds

    def _live_entry(self, key: str) -> Optional[Tuple[int, Optional[float]]]:
        # Caller must hold the lock
        entry = self._counters.get(key)
        if entry is None:
            return None
        _, deadline = entry
        if deadline is not None and self._clock() >= deadline:
            del self._counters[key]
            return None
        return entry

    def _maybe_sweep(self) -> None:
        # Caller must hold the lock
        now = self._clock()
        if now < self._next_sweep:
            return
        self._next_sweep = now + self._sweep_interval
        expired = [
            key for key, (_, deadline) in self._counters.items()
            if deadline is not None and now >= deadline
        ]
        for key in expired:
            del self._counters[key]
        if expired:
            logger.debug(f"Swept {len(expired)} expired counters")

    def _add(self, key: str, delta: int) -> int:
        with self._lock:
            self._maybe_sweep()
            entry = self._live_entry(key)
            value, deadline = entry if entry else (0, None)
            value += delta
            self._counters[key] = (value, deadline)
            return value

    async def increment(self, key: str) -> int:
        return self._add(key, 1)

    async def decrement(self, key: str) -> int:
        return self._add(key, -1)

    async def get(self, key: str) -> Optional[int]:
        with self._lock:
            entry = self._live_entry(key)
            return entry[0] if entry else None

    async def delete(self, key: str) -> None:
        with self._lock:
            self._counters.pop(key, None)

    async def expire(self, key: str, seconds: int) -> None:
        with self._lock:
            self._maybe_sweep()
            entry = self._live_entry(key)
            if entry is not None:
                self._counters[key] = (entry[0], self._clock() + seconds)

    def flush_all(self) -> None:
        """Drop every counter (used by tests)."""
        with self._lock:
            self._counters.clear()

    def __len__(self) -> int:
        with self._lock:
            return sum(1 for key in list(self._counters) if self._live_entry(key))


class RedisCounterStore(CounterStore):
    """Counter store backed by Redis atomic commands."""

    backend_name = "redis"

    def __init__(self, redis_url: Optional[str] = None, client=None):
        """
        Args:
            redis_url: Connection URL (used when no client is given)
            client: Pre-built redis.asyncio client (tests inject a mock)
        """
        if client is None:
            client = aioredis.from_url(redis_url, decode_responses=True)
        self._redis = client

    def _unavailable(self, operation: str, error: Exception) -> BackendUnavailable:
        logger.warning(f"Redis counter {operation} failed: {error}")
        return BackendUnavailable("redis", operation, str(error))

    async def increment(self, key: str) -> int:
        try:
            return int(await self._redis.incr(key))
        except (RedisError, OSError) as e:
            raise self._unavailable("increment", e) from e

    async def decrement(self, key: str) -> int:
        try:
            return int(await self._redis.decr(key))
        except (RedisError, OSError) as e:
            raise self._unavailable("decrement", e) from e

    async def get(self, key: str) -> Optional[int]:
        try:
            value = await self._redis.get(key)
        except (RedisError, OSError) as e:
            raise self._unavailable("get", e) from e
        return int(value) if value is not None else None

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except (RedisError, OSError) as e:
            raise self._unavailable("delete", e) from e

    async def expire(self, key: str, seconds: int) -> None:
        try:
            await self._redis.expire(key, seconds)
        except (RedisError, OSError) as e:
            raise self._unavailable("expire", e) from e

    async def close(self) -> None:
        await self._redis.aclose()


def create_counter_store(redis_url: Optional[str]) -> CounterStore:
    """Pick the backend once: Redis for a real URL, in-process otherwise."""
    if uses_redis(redis_url):
        logger.info("Counter store: redis")
        return RedisCounterStore(redis_url)
    logger.info("Counter store: in-memory")
    return MemoryCounterStore()
