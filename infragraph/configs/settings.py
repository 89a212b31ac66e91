"""
Unified application settings.

Aggregates all configuration modules into a single Settings class.

Dependencies: All config modules
System role: Central configuration aggregator for the application
"""

from functools import lru_cache

from pydantic import Field

from infragraph.configs.base import BaseSettings
from infragraph.configs.engine import EngineSettings
from infragraph.configs.provider import ProviderSettings
from infragraph.configs.state_backend import StateBackendSettings


class Settings(BaseSettings):
    """Unified application settings aggregating all config modules."""

    # Aggregated settings, read when Settings is created so .env is honored
    engine: EngineSettings = Field(default_factory=EngineSettings)
    state: StateBackendSettings = Field(default_factory=StateBackendSettings)
    provider: ProviderSettings = Field(default_factory=ProviderSettings)


@lru_cache
def get_settings() -> Settings:
    """
    Get application settings singleton.

    Environment variables loaded once at startup.

    Returns:
        Settings: Application settings instance

    Usage:
        from infragraph.configs import get_settings
        settings = get_settings()
    """
    return Settings()
