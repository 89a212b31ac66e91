"""
Provider configuration.

Selects the network provider implementation used by the apply engine.

Dependencies: pydantic_settings
System role: Provider selection
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderSettings(BaseSettings):
    """Settings for the cloud network provider."""

    model_config = SettingsConfigDict(
        env_prefix="INFRAGRAPH_PROVIDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    kind: Literal["simulated", "aws"] = Field(
        default="simulated",
        description="Provider implementation (simulated, aws)",
    )
    region: str = Field(
        default="ap-southeast-2",
        description="AWS region for EC2 network calls",
    )
    simulated_path: str | None = Field(
        default=".infragraph/simulated-cloud.json",
        description="Inventory file for the simulated provider (None keeps it in memory)",
    )
