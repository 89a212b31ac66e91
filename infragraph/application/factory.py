"""
Boundary factories.

Builds the provider and state backend selected by settings.

Dependencies: infragraph.configs, infragraph.boundary
System role: Composition root helpers for the CLI and run service
"""

import logging

from infragraph.boundary.provider import Ec2NetworkProvider, ProviderClient, SimulatedNetworkProvider
from infragraph.boundary.state import LocalStateBackend, S3StateBackend, StateBackend
from infragraph.configs.provider import ProviderSettings
from infragraph.configs.state_backend import StateBackendSettings
from infragraph.core.exceptions import StateBackendError

logger = logging.getLogger(__name__)


def build_provider(settings: ProviderSettings) -> ProviderClient:
    """
    Create the configured network provider.

    Args:
        settings: Provider settings

    Returns:
        ProviderClient: Simulated or EC2 provider
    """
    if settings.kind == "aws":
        logger.info(f"{__name__}:build_provider - EC2 provider in {settings.region}")
        return Ec2NetworkProvider(region=settings.region)
    logger.info(
        f"{__name__}:build_provider - Simulated provider "
        f"({settings.simulated_path or 'in memory'})"
    )
    return SimulatedNetworkProvider(path=settings.simulated_path, region=settings.region)


def build_backend(settings: StateBackendSettings) -> StateBackend:
    """
    Create the configured state backend.

    Args:
        settings: State backend settings

    Returns:
        StateBackend: Local file or S3 backend

    Raises:
        StateBackendError: If the S3 backend is selected without a bucket
    """
    if settings.backend == "s3":
        if not settings.bucket:
            raise StateBackendError("INFRAGRAPH_STATE_BUCKET must be set for the s3 state backend")
        return S3StateBackend(
            bucket=settings.bucket,
            key=settings.key,
            region=settings.region,
            lock_ttl_seconds=settings.lock_ttl_seconds,
        )
    return LocalStateBackend(settings.path, lock_ttl_seconds=settings.lock_ttl_seconds)
