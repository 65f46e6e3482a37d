"""
Global fixtures for all unit tests.

This conftest provides autouse fixtures that prevent real external service calls:
- Environment variable isolation (no Redis URL, no LLM provider)
- Fresh in-process backends per test

These fixtures apply automatically to ALL tests in tests/unit/.
"""

import os

# Set test environment BEFORE any imports so RunnerSettings validates
os.environ["ENVIRONMENT"] = "development"

import pytest

from src.common.cache_store import MemoryCacheStore
from src.common.config import AdmissionConfig, CacheConfig, Config
from src.common.counter_store import MemoryCounterStore


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """
    Isolate test environment from real backends and credentials.

    This prevents:
    - Connecting to a real Redis via REDIS_URL
    - Real LLM calls via LLM_PROVIDER / LLM_API_KEY
    - A developer's ENABLE_CACHE=false leaking into cache tests
    """
    for name in ("REDIS_URL", "LLM_PROVIDER", "LLM_API_KEY", "LLM_BASE_URL", "ENABLE_CACHE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ENVIRONMENT", "development")


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def counter_store(clock):
    return MemoryCounterStore(clock=clock)


@pytest.fixture
def cache_store(clock):
    return MemoryCacheStore(clock=clock)


@pytest.fixture
def config():
    """Small limits so quota paths are reachable in a few calls."""
    return Config(
        admission=AdmissionConfig(daily_limit=5, concurrency_limit=2),
        cache=CacheConfig(enabled=True),
        request_timeout_seconds=5.0,
        top_companies=10,
        max_parallel_companies=3,
    )
