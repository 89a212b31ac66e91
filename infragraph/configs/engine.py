"""
Apply engine configuration.

Worker pool size and retry policy for provider calls.

Dependencies: pydantic_settings
System role: Apply engine tuning
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Settings for the apply engine worker pool and retries."""

    model_config = SettingsConfigDict(
        env_prefix="INFRAGRAPH_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    max_workers: int = Field(
        default=4,
        ge=1,
        description="Concurrent provider calls for independent graph branches",
    )
    max_attempts: int = Field(
        default=5,
        ge=1,
        description="Attempts per provider call before the node is marked failed",
    )
    backoff_initial: float = Field(
        default=1.0,
        ge=0,
        description="Initial retry backoff in seconds",
    )
    backoff_max: float = Field(
        default=30.0,
        ge=0,
        description="Maximum retry backoff in seconds",
    )
    backoff_jitter: float = Field(
        default=1.0,
        ge=0,
        description="Maximum random jitter added to each backoff in seconds",
    )
