"""
Cache Service - namespaced cache-aside for research results.

Derives deterministic keys from request parameters and wraps the active
CacheStore with:
- a global enable flag (disabled: every get misses, every set is a no-op)
- per-namespace default TTLs
- failure isolation: backend errors are logged and treated as a miss or a
  dropped write, never raised to the caller

Call sites do the cache-aside explicitly:

    cached = await cache.get(CacheNamespace.RESEARCH, params)
    if cached is None:
        result = await compute()
        await cache.set(CacheNamespace.RESEARCH, params, result)

SingleFlight lets concurrent identical misses share one computation.
"""

import asyncio
import hashlib
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar, Union

from src.common.cache_store import CacheStats, CacheStore
from src.common.config import CacheConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

DIGEST_LENGTH = 16


class CacheNamespace(str, Enum):
    """Key namespaces, each with its own default TTL."""

    OSINT = "OSINT"              # raw evidence bundles (short-lived)
    JOB_SEARCH = "JOB_SEARCH"    # keyword searches (medium-lived)
    RESEARCH = "RESEARCH"        # full company research (long-lived)


NamespaceLike = Union[CacheNamespace, str]


def _ns(namespace: NamespaceLike) -> str:
    return namespace.value if isinstance(namespace, CacheNamespace) else str(namespace)


def normalize_params(value: Any) -> Any:
    """
    Canonical form of key parameters.

    None-valued entries are dropped and runs of whitespace in strings are
    collapsed, so logically equal requests serialize identically.
    """
    if isinstance(value, dict):
        return {
            str(k): normalize_params(v)
            for k, v in value.items()
            if v is not None
        }
    if isinstance(value, (list, tuple)):
        return [normalize_params(v) for v in value]
    if isinstance(value, str):
        return " ".join(value.split())
    return value


def derive_key(namespace: NamespaceLike, params: Dict[str, Any], prefix: str = "cache") -> str:
    """
    Stable cache key: "<prefix>:<namespace>:<sha256 prefix>".

    The digest covers the namespace and the sorted-key JSON of the
    normalized parameters, so key order and whitespace do not matter and no
    raw parameter characters leak into the key.
    """
    ns = _ns(namespace)
    canonical = json.dumps(normalize_params(params), sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha256(f"{ns}:{canonical}".encode("utf-8")).hexdigest()[:DIGEST_LENGTH]
    return f"{prefix}:{ns}:{digest}"


class CacheService:
    """Feature-flagged, failure-isolated cache over a CacheStore."""

    def __init__(self, store: CacheStore, config: CacheConfig):
        self.store = store
        self.config = config

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @property
    def backend(self) -> str:
        return self.store.backend_name

    def key_for(self, namespace: NamespaceLike, params: Dict[str, Any]) -> str:
        return derive_key(namespace, params, self.config.prefix)

    async def get(self, namespace: NamespaceLike, params: Dict[str, Any]) -> Optional[Any]:
        """Cached value, or None on miss, when disabled, or on backend failure."""
        if not self.enabled:
            return None

        key = self.key_for(namespace, params)
        try:
            raw = await self.store.get(key)
        except Exception as e:
            logger.warning(f"Cache get failed for {key}, treating as miss: {e}")
            return None

        if raw is None:
            logger.info(f"Cache MISS for {key}")
            return None

        try:
            value = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Cache entry {key} is not valid JSON, treating as miss: {e}")
            return None

        logger.info(f"Cache HIT for {key}")
        return value

    async def set(
        self,
        namespace: NamespaceLike,
        params: Dict[str, Any],
        value: Any,
        ttl_seconds: Optional[int] = None,
    ) -> bool:
        """
        Write a JSON-serializable value.

        Returns:
            True if written, False when disabled or the write was dropped
        """
        if not self.enabled:
            return False

        key = self.key_for(namespace, params)
        ttl = ttl_seconds if ttl_seconds is not None else self.config.ttl_for(_ns(namespace))
        try:
            await self.store.set(key, json.dumps(value, default=str), ttl)
        except Exception as e:
            logger.warning(f"Cache set failed for {key}, dropping write: {e}")
            return False

        logger.debug(f"Cached {key} (ttl={ttl}s)")
        return True

    async def invalidate(self, namespace: NamespaceLike, params: Dict[str, Any]) -> bool:
        if not self.enabled:
            return False
        key = self.key_for(namespace, params)
        try:
            return await self.store.delete(key) > 0
        except Exception as e:
            logger.warning(f"Cache invalidate failed for {key}: {e}")
            return False

    async def invalidate_pattern(self, namespace_prefix: str) -> int:
        """Remove every entry under "<prefix>:<namespace_prefix>:*"."""
        if not self.enabled:
            return 0
        pattern = f"{self.config.prefix}:{namespace_prefix}:*"
        try:
            keys = await self.store.keys(pattern)
            deleted = await self.store.delete(*keys) if keys else 0
        except Exception as e:
            logger.warning(f"Cache invalidate_pattern failed for {pattern}: {e}")
            return 0
        logger.info(f"Invalidated {deleted} cache entries matching {pattern}")
        return deleted

    async def stats(self) -> CacheStats:
        """Backend statistics; zeros with memory="unknown" on failure."""
        try:
            return await self.store.stats()
        except Exception as e:
            logger.warning(f"Cache stats unavailable: {e}")
            return CacheStats(backend=self.backend)

    async def close(self) -> None:
        await self.store.close()


class SingleFlight:
    """
    In-flight computation map keyed by cache key.

    The first caller for a key runs the computation; callers arriving while
    it runs await the same outcome (result or exception).
    """

    def __init__(self):
        self._inflight: Dict[str, asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._inflight)

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        existing = self._inflight.get(key)
        if existing is not None:
            logger.info(f"Joining in-flight computation for {key}")
            try:
                # Shield so one waiter's cancellation does not cancel the shared work
                return await asyncio.shield(existing)
            except asyncio.CancelledError:
                task = asyncio.current_task()
                if existing.cancelled() and task is not None and not task.cancelling():
                    # The leader was cancelled, not us: take over the computation
                    return await self.run(key, factory)
                raise

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        # Mark the outcome as retrieved even when nobody joined
        future.add_done_callback(lambda f: f.cancelled() or f.exception())
        self._inflight[key] = future
        try:
            result = await factory()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            self._inflight.pop(key, None)
