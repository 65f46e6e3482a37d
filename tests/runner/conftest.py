"""
Pytest fixtures for runner service tests.
"""

import os

# IMPORTANT: Set environment variables BEFORE any imports from runner_service
# so RunnerSettings validates when runner_service.app is first loaded, and no
# developer Redis or LLM credentials leak into the module-level app.
os.environ["ENVIRONMENT"] = "development"
for _name in ("REDIS_URL", "LLM_PROVIDER", "LLM_API_KEY", "CORS_ORIGINS"):
    os.environ.pop(_name, None)

import pytest
from fastapi.testclient import TestClient

from fixtures.sample_companies import acme_bundle, brightside_bundle, search_postings
from runner_service.app import create_app
from runner_service.config import RunnerSettings
from src.analysis.pipeline import AnalysisPipeline
from src.common.cache_store import MemoryCacheStore
from src.common.config import AdmissionConfig, Config
from src.common.counter_store import MemoryCounterStore
from src.common.rate_limiter import AdmissionController
from src.services.cache_service import CacheService
from src.services.evidence_collector import StaticEvidenceCollector
from src.services.research_orchestrator import ResearchOrchestrator


@pytest.fixture
def collector():
    return StaticEvidenceCollector(
        bundles=[acme_bundle(), brightside_bundle()],
        postings=search_postings(),
    )


@pytest.fixture
def orchestrator(collector):
    """Orchestrator over in-memory backends; two requests per tenant per day."""
    config = Config(admission=AdmissionConfig(daily_limit=2, concurrency_limit=2))
    return ResearchOrchestrator(
        AdmissionController(MemoryCounterStore(), config.admission),
        CacheService(MemoryCacheStore(), config.cache),
        collector,
        AnalysisPipeline(),
        config,
    )


@pytest.fixture
def client(orchestrator):
    """FastAPI test client fixture."""
    app = create_app(orchestrator=orchestrator, settings=RunnerSettings(environment="development"))
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def lenient_client(orchestrator):
    """Client that returns 500 responses instead of re-raising server errors."""
    app = create_app(orchestrator=orchestrator, settings=RunnerSettings(environment="development"))
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def client_headers():
    """Tenant header for status requests."""
    return {"X-Client-ID": "client-1"}
