"""
Per-tenant admission control.

Enforces two quotas per tenant on top of a CounterStore:
- a daily cap, counted under a key that embeds the UTC date so the window
  rotates by itself (the key also expires 24h after its first increment)
- a concurrency cap, counted under a dateless key that is deleted when it
  drops back to zero (with a one-hour expiry as an orphan safety net)

Usage:
    controller = AdmissionController(store, AdmissionConfig())

    if not await controller.try_admit(tenant_id):
        raise AdmissionDenied(tenant_id)
    async with controller.slot(tenant_id):
        ...  # expensive work

Counter store failures during try_admit fail open: the request is admitted
rather than rejecting a legitimate caller because of an outage.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Dict, Any

from src.common.config import AdmissionConfig
from src.common.counter_store import CounterStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_utc_midnight(now: datetime) -> datetime:
    """Start of the next UTC calendar day."""
    now = now.astimezone(timezone.utc)
    return datetime(now.year, now.month, now.day, tzinfo=timezone.utc) + timedelta(days=1)


@dataclass
class QuotaStatus:
    """Read-only snapshot of one tenant's quotas."""

    tenant_id: str
    daily_used: int
    daily_limit: int
    concurrent_used: int
    concurrent_limit: int
    reset_at: datetime

    @property
    def daily_remaining(self) -> int:
        return max(0, self.daily_limit - self.daily_used)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dailyUsed": self.daily_used,
            "dailyLimit": self.daily_limit,
            "dailyRemaining": self.daily_remaining,
            "concurrentUsed": self.concurrent_used,
            "concurrentLimit": self.concurrent_limit,
            "resetAt": self.reset_at.isoformat().replace("+00:00", "Z"),
        }


class AdmissionController:
    """
    Daily and concurrency quotas per tenant.

    All counter mutation goes through the store's atomic increment and
    decrement, so concurrent requests never race on a read-modify-write.
    """

    def __init__(
        self,
        store: CounterStore,
        config: AdmissionConfig,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Args:
            store: Counter backend (in-memory or Redis)
            config: Quota limits and expiry settings
            clock: Returns the current UTC datetime (tests pin the date)
        """
        self.store = store
        self.config = config
        self._clock = clock

    def daily_key(self, tenant_id: str) -> str:
        return f"rate:daily:{tenant_id}:{self._clock().strftime('%Y-%m-%d')}"

    @staticmethod
    def concurrency_key(tenant_id: str) -> str:
        return f"rate:concurrent:{tenant_id}"

    async def try_admit(self, tenant_id: str) -> bool:
        """
        Reserve one unit of the tenant's daily quota.

        Returns:
            True if admitted, False if either quota is exhausted
        """
        daily_key = self.daily_key(tenant_id)
        try:
            daily_count = await self.store.increment(daily_key)
            if daily_count == 1:
                await self.store.expire(daily_key, self.config.daily_window_seconds)

            if daily_count > self.config.daily_limit:
                await self.store.decrement(daily_key)
                logger.info(
                    f"Admission denied for {tenant_id}: daily limit "
                    f"{self.config.daily_limit} reached"
                )
                return False

            concurrent = await self.store.get(self.concurrency_key(tenant_id)) or 0
            if concurrent >= self.config.concurrency_limit:
                await self.store.decrement(daily_key)
                logger.info(
                    f"Admission denied for {tenant_id}: {concurrent}/"
                    f"{self.config.concurrency_limit} concurrent jobs running"
                )
                return False

            logger.info(
                f"Admitted {tenant_id} ({daily_count}/{self.config.daily_limit} today)"
            )
            return True
        except Exception as e:
            logger.warning(f"Admission check failed for {tenant_id}, failing open: {e}")
            return True

    async def mark_started(self, tenant_id: str) -> None:
        """Take a concurrency slot and refresh the orphan-key expiry."""
        key = self.concurrency_key(tenant_id)
        try:
            await self.store.increment(key)
            await self.store.expire(key, self.config.concurrency_ttl_seconds)
        except Exception as e:
            logger.warning(f"Failed to mark job started for {tenant_id}: {e}")

    async def mark_finished(self, tenant_id: str) -> None:
        """Release a concurrency slot; the key is deleted once it reaches zero."""
        key = self.concurrency_key(tenant_id)
        try:
            remaining = await self.store.decrement(key)
            if remaining <= 0:
                await self.store.delete(key)
        except Exception as e:
            logger.warning(f"Failed to mark job finished for {tenant_id}: {e}")

    @asynccontextmanager
    async def slot(self, tenant_id: str) -> AsyncIterator[None]:
        """Hold a concurrency slot for the duration of the block, however it ends."""
        await self.mark_started(tenant_id)
        try:
            yield
        finally:
            await self.mark_finished(tenant_id)

    async def get_status(self, tenant_id: str) -> QuotaStatus:
        """
        Read the tenant's counters without mutating them.

        Raises:
            BackendUnavailable: If the counter store cannot be read
        """
        now = self._clock()
        daily_used = await self.store.get(self.daily_key(tenant_id)) or 0
        concurrent_used = await self.store.get(self.concurrency_key(tenant_id)) or 0
        return QuotaStatus(
            tenant_id=tenant_id,
            daily_used=daily_used,
            daily_limit=self.config.daily_limit,
            concurrent_used=max(0, concurrent_used),
            concurrent_limit=self.config.concurrency_limit,
            reset_at=next_utc_midnight(now),
        )
