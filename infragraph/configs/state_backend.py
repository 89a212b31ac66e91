"""
State backend configuration.

Where the state snapshot lives and how long a run lease is valid.

Dependencies: pydantic_settings
System role: State storage configuration
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StateBackendSettings(BaseSettings):
    """Settings for state snapshot storage and locking."""

    model_config = SettingsConfigDict(
        env_prefix="INFRAGRAPH_STATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    backend: Literal["local", "s3"] = Field(
        default="local",
        description="State storage backend",
    )
    path: str = Field(
        default="infragraph.state.json",
        description="State file path for the local backend",
    )
    bucket: str | None = Field(
        default=None,
        description="S3 bucket holding the state object",
    )
    key: str = Field(
        default="network/infragraph.state.json",
        description="S3 object key of the state snapshot",
    )
    region: str = Field(
        default="ap-southeast-2",
        description="AWS region for the state bucket",
    )
    lock_ttl_seconds: int = Field(
        default=900,
        ge=1,
        description="Lease duration; an expired lease may be taken over",
    )
