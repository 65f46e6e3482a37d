"""
Configuration loader for the automation research service.

Loads all settings from environment variables (.env file) into an explicit,
immutable Config object that is built once at startup and passed into
constructors. Nothing in the service reads the environment after that, so
tests can build a Config per case instead of mutating the process env.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Sentinel REDIS_URL value that forces the in-process backends
MEMORY_BACKEND_SENTINEL = "memory"

# Cache TTL settings (in seconds)
DEFAULT_NAMESPACE_TTLS: Dict[str, int] = {
    "OSINT": 3600,        # 1 hour for raw evidence bundles
    "JOB_SEARCH": 1800,   # 30 minutes for keyword searches
    "RESEARCH": 86400,    # 24 hours for full company research
}
DEFAULT_CACHE_TTL_SECONDS = 3600


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    value = env.get(name)
    if value is None or value.strip() == "":
        return default
    return float(value)


def uses_redis(redis_url: Optional[str]) -> bool:
    """True when the URL selects the distributed (Redis) backends."""
    return bool(redis_url) and redis_url.strip().lower() != MEMORY_BACKEND_SENTINEL


@dataclass(frozen=True)
class AdmissionConfig:
    """Per-tenant quota settings."""

    daily_limit: int = 50
    concurrency_limit: int = 3
    daily_window_seconds: int = 86400
    # Orphan-key ceiling for the concurrency counter
    concurrency_ttl_seconds: int = 3600


@dataclass(frozen=True)
class CacheConfig:
    """Result cache settings."""

    enabled: bool = True
    redis_url: Optional[str] = None
    prefix: str = "cache"
    namespace_ttls: Dict[str, int] = field(
        default_factory=lambda: dict(DEFAULT_NAMESPACE_TTLS)
    )
    default_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS

    @property
    def backend(self) -> str:
        """Name of the active backend ("redis" or "in-memory")."""
        return "redis" if uses_redis(self.redis_url) else "in-memory"

    def ttl_for(self, namespace: str) -> int:
        return self.namespace_ttls.get(namespace, self.default_ttl_seconds)


@dataclass(frozen=True)
class CapabilityConfig:
    """Optional natural-language analysis capability (LLM) settings."""

    provider: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    model: str = "gpt-4o-mini"
    max_tokens: int = 2048
    temperature: float = 0.3
    timeout_seconds: float = 30.0

    @property
    def enabled(self) -> bool:
        """The capability-backed stage variants run only when a provider is set."""
        return bool(self.provider)


@dataclass(frozen=True)
class Config:
    """
    Centralized configuration for all service components.

    All values come from environment variables - NO SECRETS IN CODE.
    """

    admission: AdmissionConfig = field(default_factory=AdmissionConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    capability: CapabilityConfig = field(default_factory=CapabilityConfig)

    # ===== Orchestration =====
    request_timeout_seconds: float = 300.0
    top_companies: int = 10
    job_search_limit: int = 100
    max_parallel_companies: int = 3

    # ===== Logging =====
    log_level: str = "INFO"
    log_format: str = "simple"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Config":
        """
        Build configuration from environment variables.

        Args:
            env: Mapping to read from (defaults to os.environ)

        Returns:
            Frozen Config instance
        """
        env = os.environ if env is None else env

        admission = AdmissionConfig(
            daily_limit=_env_int(env, "DAILY_RESEARCH_CAP_PER_TENANT", 50),
            concurrency_limit=_env_int(env, "MAX_CONCURRENT_RESEARCH_JOBS", 3),
        )

        # Anything but an explicit "false" keeps the cache on
        cache_flag = env.get("ENABLE_CACHE", "true").strip().lower()
        cache = CacheConfig(
            enabled=cache_flag != "false",
            redis_url=env.get("REDIS_URL") or None,
        )

        capability = CapabilityConfig(
            provider=env.get("LLM_PROVIDER") or None,
            api_key=env.get("LLM_API_KEY") or None,
            base_url=env.get("LLM_BASE_URL") or None,
            model=env.get("LLM_MODEL", "gpt-4o-mini"),
            max_tokens=_env_int(env, "LLM_MAX_TOKENS", 2048),
            temperature=_env_float(env, "LLM_TEMPERATURE", 0.3),
            timeout_seconds=_env_float(env, "LLM_TIMEOUT_SECONDS", 30.0),
        )

        return cls(
            admission=admission,
            cache=cache,
            capability=capability,
            request_timeout_seconds=_env_float(env, "REQUEST_TIMEOUT_SECONDS", 300.0),
            top_companies=_env_int(env, "TOP_COMPANIES_LIMIT", 10),
            job_search_limit=_env_int(env, "JOB_SEARCH_LIMIT", 100),
            max_parallel_companies=_env_int(env, "MAX_PARALLEL_COMPANIES", 3),
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_format=env.get("LOG_FORMAT", "simple"),
        )

    def validate(self) -> None:
        """
        Validate that limits and timeouts are usable.
        Raises ValueError if any setting is out of range.
        """
        positive_settings = {
            "DAILY_RESEARCH_CAP_PER_TENANT": self.admission.daily_limit,
            "MAX_CONCURRENT_RESEARCH_JOBS": self.admission.concurrency_limit,
            "REQUEST_TIMEOUT_SECONDS": self.request_timeout_seconds,
            "TOP_COMPANIES_LIMIT": self.top_companies,
            "JOB_SEARCH_LIMIT": self.job_search_limit,
            "MAX_PARALLEL_COMPANIES": self.max_parallel_companies,
            "LLM_TIMEOUT_SECONDS": self.capability.timeout_seconds,
        }

        invalid = [name for name, value in positive_settings.items() if value <= 0]

        if invalid:
            raise ValueError(
                f"Invalid configuration (must be positive): {', '.join(invalid)}. "
                f"Please check your .env file."
            )

    def summary(self) -> str:
        """Return a summary of the current configuration (safe for logging)."""
        capability = (
            f"{self.capability.provider} ({self.capability.model})"
            if self.capability.enabled
            else "✗ Disabled (deterministic analysis only)"
        )
        return f"""
Configuration Summary:
  Admission: {self.admission.daily_limit}/day, {self.admission.concurrency_limit} concurrent per tenant
  Cache: {'✓ Enabled' if self.cache.enabled else '✗ Disabled'} ({self.cache.backend})
  Analysis capability: {capability}
  Request timeout: {self.request_timeout_seconds}s
  Top companies per search: {self.top_companies}
        """.strip()
