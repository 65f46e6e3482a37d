"""
Unit tests for src/common/rate_limiter.py

Tests per-tenant admission control:
- Daily cap and concurrency cap
- Slot release on every exit path
- Fail-open behaviour when the counter store is down
- Read-only status snapshots
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from src.common.config import AdmissionConfig
from src.common.counter_store import CounterStore, MemoryCounterStore
from src.common.errors import BackendUnavailable
from src.common.rate_limiter import AdmissionController, next_utc_midnight

FIXED_NOW = datetime(2026, 3, 14, 15, 30, tzinfo=timezone.utc)


# ===== FIXTURES =====

@pytest.fixture
def store(clock):
    return MemoryCounterStore(clock=clock)


def make_controller(store, daily_limit=50, concurrency_limit=3, now=FIXED_NOW):
    return AdmissionController(
        store,
        AdmissionConfig(daily_limit=daily_limit, concurrency_limit=concurrency_limit),
        clock=lambda: now,
    )


class BrokenStore(CounterStore):
    """Counter store whose every call fails like an unreachable Redis."""

    backend_name = "redis"

    async def increment(self, key):
        raise BackendUnavailable("redis", "increment", "connection refused")

    async def decrement(self, key):
        raise BackendUnavailable("redis", "decrement", "connection refused")

    async def get(self, key):
        raise BackendUnavailable("redis", "get", "connection refused")

    async def delete(self, key):
        raise BackendUnavailable("redis", "delete", "connection refused")

    async def expire(self, key, seconds):
        raise BackendUnavailable("redis", "expire", "connection refused")


# ===== TESTS: Keys =====

class TestKeys:
    """Tests for counter key layout."""

    def test_daily_key_embeds_utc_date(self, store):
        """Daily key rotates with the UTC calendar date."""
        controller = make_controller(store)
        assert controller.daily_key("client-1") == "rate:daily:client-1:2026-03-14"

    def test_concurrency_key_is_dateless(self, store):
        """Concurrency key does not rotate."""
        assert make_controller(store).concurrency_key("client-1") == "rate:concurrent:client-1"

    def test_next_utc_midnight(self):
        """Reset time is the start of the next UTC day."""
        assert next_utc_midnight(FIXED_NOW) == datetime(2026, 3, 15, tzinfo=timezone.utc)


# ===== TESTS: Admission =====

@pytest.mark.asyncio
class TestTryAdmit:
    """Tests for daily and concurrency quotas."""

    async def test_admits_until_daily_limit(self, store):
        """N < limit admissions succeed; the (limit+1)-th is rejected."""
        controller = make_controller(store, daily_limit=3)

        results = [await controller.try_admit("t") for _ in range(4)]

        assert results == [True, True, True, False]

    async def test_rejection_does_not_consume_quota(self, store):
        """A rejected call reverts its increment."""
        controller = make_controller(store, daily_limit=1)
        await controller.try_admit("t")
        await controller.try_admit("t")
        await controller.try_admit("t")

        assert await store.get(controller.daily_key("t")) == 1

    async def test_first_admission_sets_daily_expiry(self, store, clock):
        """The daily key expires 24h after its first increment."""
        controller = make_controller(store, daily_limit=1)
        assert await controller.try_admit("t") is True

        clock.advance(86400)
        assert await store.get(controller.daily_key("t")) is None
        assert await controller.try_admit("t") is True

    async def test_daily_and_concurrency_scenario(self, store):
        """dailyLimit=2, concurrencyLimit=1: slot blocks, release frees, daily cap holds."""
        controller = make_controller(store, daily_limit=2, concurrency_limit=1)

        assert await controller.try_admit("t") is True
        await controller.mark_started("t")

        assert await controller.try_admit("t") is False

        await controller.mark_finished("t")
        assert await controller.try_admit("t") is True

        assert await controller.try_admit("t") is False

    async def test_concurrency_rejection_reverts_daily(self, store):
        """A concurrency rejection does not burn daily quota."""
        controller = make_controller(store, daily_limit=5, concurrency_limit=1)
        await controller.try_admit("t")
        await controller.mark_started("t")

        await controller.try_admit("t")

        assert await store.get(controller.daily_key("t")) == 1

    async def test_tenants_are_independent(self, store):
        """One tenant's quota does not affect another's."""
        controller = make_controller(store, daily_limit=1)
        assert await controller.try_admit("a") is True
        assert await controller.try_admit("a") is False
        assert await controller.try_admit("b") is True

    async def test_expired_daily_keys_do_not_accumulate(self, store, clock):
        """Yesterday's per-tenant counters leave the in-process table."""
        controller = make_controller(store)
        for i in range(1000):
            assert await controller.try_admit(f"tenant-{i}") is True

        clock.advance(2 * 86400)
        await controller.try_admit("late")

        assert list(store._counters) == [controller.daily_key("late")]

    async def test_store_failure_fails_open(self):
        """An unreachable store admits rather than rejects."""
        controller = make_controller(BrokenStore(), daily_limit=1)
        assert await controller.try_admit("t") is True
        assert await controller.try_admit("t") is True


# ===== TESTS: Slots =====

@pytest.mark.asyncio
class TestSlots:
    """Tests for concurrency slot bookkeeping."""

    async def test_mark_finished_deletes_key_at_zero(self, store):
        """The concurrency key disappears when the count returns to zero."""
        controller = make_controller(store)
        await controller.mark_started("t")
        await controller.mark_finished("t")
        assert await store.get(controller.concurrency_key("t")) is None

    async def test_mark_finished_never_leaves_negative(self, store):
        """An unmatched finish does not leave a negative counter behind."""
        controller = make_controller(store)
        await controller.mark_finished("t")
        assert await store.get(controller.concurrency_key("t")) is None

    async def test_concurrency_key_has_orphan_expiry(self, store, clock):
        """A slot never released expires after an hour."""
        controller = make_controller(store)
        await controller.mark_started("t")
        clock.advance(3600)
        assert await store.get(controller.concurrency_key("t")) is None

    async def test_slot_releases_on_success(self, store):
        """The slot is held inside the block and released after."""
        controller = make_controller(store)
        async with controller.slot("t"):
            assert await store.get(controller.concurrency_key("t")) == 1
        assert await store.get(controller.concurrency_key("t")) is None

    async def test_slot_releases_on_exception(self, store):
        """The slot is released when the work raises."""
        controller = make_controller(store)
        with pytest.raises(RuntimeError):
            async with controller.slot("t"):
                raise RuntimeError("boom")
        assert await store.get(controller.concurrency_key("t")) is None

    async def test_slot_failures_are_swallowed(self):
        """Bookkeeping failures never break the caller's work."""
        controller = make_controller(BrokenStore())
        async with controller.slot("t"):
            pass


# ===== TESTS: Status =====

@pytest.mark.asyncio
class TestGetStatus:
    """Tests for the read-only quota snapshot."""

    async def test_status_reports_usage(self, store):
        """Status reflects admissions and held slots."""
        controller = make_controller(store, daily_limit=50, concurrency_limit=3)
        await controller.try_admit("t")
        await controller.try_admit("t")
        await controller.mark_started("t")

        status = (await controller.get_status("t")).to_dict()

        assert status == {
            "dailyUsed": 2,
            "dailyLimit": 50,
            "dailyRemaining": 48,
            "concurrentUsed": 1,
            "concurrentLimit": 3,
            "resetAt": "2026-03-15T00:00:00Z",
        }

    async def test_status_does_not_mutate(self, store):
        """Reading status twice leaves counters untouched."""
        controller = make_controller(store)
        await controller.get_status("t")
        status = await controller.get_status("t")
        assert status.daily_used == 0
        assert len(store) == 0

    async def test_status_propagates_store_errors(self):
        """Status is not fail-open: the caller decides how to degrade."""
        controller = make_controller(BrokenStore())
        with pytest.raises(BackendUnavailable):
            await controller.get_status("t")

    async def test_status_with_mock_store(self):
        """Absent counters read as zero usage."""
        mock_store = AsyncMock(spec=CounterStore)
        mock_store.get.return_value = None
        controller = make_controller(mock_store, daily_limit=10)

        status = await controller.get_status("t")

        assert status.daily_remaining == 10
        assert status.concurrent_used == 0
