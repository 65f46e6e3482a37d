"""
Unit tests for src/common/errors.py, src/common/error_handling.py and
src/common/config.py

Tests:
- Error taxonomy status codes and caller-facing bodies
- Stage failure ledger
- Configuration loading, validation and backend selection
"""

import pytest

from src.common.config import CacheConfig, CapabilityConfig, Config, uses_redis
from src.common.error_handling import ErrorCollector
from src.common.errors import (
    AdmissionDenied,
    BackendUnavailable,
    CapabilityUnavailable,
    EvidenceCollectionError,
    ResearchTimeoutError,
    ValidationError,
    error_response,
)


# ===== TESTS: Error taxonomy =====

class TestErrorResponse:
    """Tests for mapping exceptions to caller-facing bodies."""

    @pytest.mark.parametrize(
        "error, status, code",
        [
            (ValidationError("bad"), 400, "VALIDATION_ERROR"),
            (AdmissionDenied("t"), 429, "RATE_LIMIT_EXCEEDED"),
            (EvidenceCollectionError("Acme", "timeout"), 502, "EXTERNAL_SERVICE_ERROR"),
            (CapabilityUnavailable("down"), 503, "CAPABILITY_UNAVAILABLE"),
            (BackendUnavailable("redis", "get", "refused"), 503, "BACKEND_UNAVAILABLE"),
            (ResearchTimeoutError("deep_research", 300), 408, "TIMEOUT_ERROR"),
        ],
    )
    def test_known_errors(self, error, status, code):
        """Each error kind keeps its status and code."""
        status_code, body = error_response(error)
        assert status_code == status
        assert body["error"]["code"] == code
        assert body["error"]["message"] == error.message

    def test_admission_denied_carries_retry_after(self):
        """Quota rejections carry a 24h retry-after."""
        error = AdmissionDenied("client-1")
        _, body = error_response(error)

        assert error.retry_after_seconds == 86400
        assert body["error"]["details"] == {"retryAfter": 86400}

    def test_unknown_error_is_generic(self):
        """Unexpected exceptions never leak their message."""
        status_code, body = error_response(KeyError("secret internals"))

        assert status_code == 500
        assert body == {"error": {"message": "Internal server error", "code": "INTERNAL_ERROR"}}

    def test_details_omitted_when_absent(self):
        """No details key when the error has none."""
        _, body = error_response(ValidationError("bad"))
        assert "details" not in body["error"]


# ===== TESTS: Stage failure ledger =====

class TestErrorCollector:
    """Tests for the pipeline's structured error ledger."""

    def test_records_failures(self):
        """Failures keep stage, severity and exception type."""
        errors = ErrorCollector()
        errors.add_error("technical_signals", "capability_analysis", "timed out",
                         severity="low", exception=TimeoutError())
        errors.add_error("synthesis", "deterministic_analysis", "boom", severity="high")

        assert len(errors) == 2
        assert errors.stages() == ["technical_signals", "synthesis"]
        first = errors.to_list()[0]
        assert first["exception_type"] == "TimeoutError"
        assert first["recoverable"] is True

    def test_summary_counts_by_severity(self):
        """Summary aggregates severities and recoverability."""
        errors = ErrorCollector()
        errors.add_error("a", "op", "m", severity="low")
        errors.add_error("b", "op", "m", severity="critical", recoverable=False)

        summary = errors.summary()

        assert summary["total"] == 2
        assert summary["by_severity"]["low"] == 1
        assert summary["non_recoverable"] == 1
        assert errors.has_critical_errors() is True


# ===== TESTS: Configuration =====

class TestConfig:
    """Tests for environment-driven configuration."""

    def test_defaults(self):
        """Empty environment gives documented defaults."""
        config = Config.from_env({})

        assert config.admission.daily_limit == 50
        assert config.admission.concurrency_limit == 3
        assert config.cache.enabled is True
        assert config.cache.backend == "in-memory"
        assert config.capability.enabled is False
        assert config.request_timeout_seconds == 300.0

    def test_reads_environment(self):
        """Environment variables override defaults."""
        config = Config.from_env({
            "DAILY_RESEARCH_CAP_PER_TENANT": "10",
            "MAX_CONCURRENT_RESEARCH_JOBS": "1",
            "ENABLE_CACHE": "false",
            "REDIS_URL": "redis://cache:6379/0",
            "LLM_PROVIDER": "openai",
            "LLM_API_KEY": "sk-test",
            "REQUEST_TIMEOUT_SECONDS": "30",
        })

        assert config.admission.daily_limit == 10
        assert config.admission.concurrency_limit == 1
        assert config.cache.enabled is False
        assert config.cache.backend == "redis"
        assert config.capability.enabled is True
        assert config.request_timeout_seconds == 30.0

    def test_cache_flag_only_disabled_by_false(self):
        """Anything but "false" keeps the cache on."""
        assert Config.from_env({"ENABLE_CACHE": "no"}).cache.enabled is True
        assert Config.from_env({"ENABLE_CACHE": "FALSE"}).cache.enabled is False

    def test_validate_rejects_non_positive(self):
        """Non-positive limits fail validation."""
        config = Config.from_env({"DAILY_RESEARCH_CAP_PER_TENANT": "0"})
        with pytest.raises(ValueError, match="DAILY_RESEARCH_CAP_PER_TENANT"):
            config.validate()

    def test_summary_hides_secrets(self):
        """The log summary never contains the API key."""
        config = Config.from_env({"LLM_PROVIDER": "openai", "LLM_API_KEY": "sk-very-secret"})
        assert "sk-very-secret" not in config.summary()

    def test_namespace_ttls(self):
        """Each namespace has its own default TTL."""
        cache = CacheConfig()
        assert cache.ttl_for("OSINT") == 3600
        assert cache.ttl_for("JOB_SEARCH") == 1800
        assert cache.ttl_for("RESEARCH") == 86400
        assert cache.ttl_for("OTHER") == 3600

    @pytest.mark.parametrize("url, expected", [
        (None, False), ("", False), ("memory", False), (" Memory ", False),
        ("redis://localhost:6379", True),
    ])
    def test_uses_redis(self, url, expected):
        assert uses_redis(url) is expected

    def test_capability_enabled_by_provider(self):
        assert CapabilityConfig(provider="local").enabled is True
        assert CapabilityConfig().enabled is False
