"""
Runner Service Configuration Module

Settings for the HTTP surface only (environment, CORS, API metadata),
validated with Pydantic at startup to catch misconfigurations early.
Research behaviour (quotas, cache, capability) is configured through
src.common.config.Config.
"""

import logging
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from version import __version__

logger = logging.getLogger(__name__)


class RunnerSettings(BaseSettings):
    """
    Runner service configuration with validation.

    All settings can be overridden via environment variables.
    """

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False, extra="ignore")

    environment: str = Field(
        default="development",
        description="Environment: development, staging, production"
    )

    # === CORS ===
    cors_origins: str = Field(
        default="",
        description="Comma-separated list of allowed CORS origins"
    )

    # === API metadata ===
    api_version: str = Field(
        default=__version__,
        description="Version reported by the API"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is a known value."""
        allowed = {"development", "staging", "production"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"environment must be one of: {', '.join(sorted(allowed))}")
        return v_lower

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list."""
        if not self.cors_origins:
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def validate_production_config(self) -> List[str]:
        """
        Validate configuration is suitable for production.

        Returns list of warning messages.
        """
        issues = []
        if self.is_production and not self.cors_origins:
            issues.append("WARNING: CORS_ORIGINS not configured")
        return issues


@lru_cache()
def get_settings() -> RunnerSettings:
    """
    Get cached settings instance.

    Settings are loaded once and cached for the life of the process.
    """
    return RunnerSettings()


def validate_config_on_startup() -> RunnerSettings:
    """
    Validate configuration at application startup.

    Raises ValueError with details if config is invalid.
    Logs warnings for non-critical issues.
    """
    try:
        settings = get_settings()
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")

    for issue in settings.validate_production_config():
        logger.warning(issue)

    logger.info(f"Configuration loaded: environment={settings.environment}")
    logger.info(f"  api_version={settings.api_version}")
    logger.info(f"  cors_origins={settings.cors_origins_list or 'none'}")
    return settings
