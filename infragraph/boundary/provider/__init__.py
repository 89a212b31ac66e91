"""
Network provider boundary.

Exports: ProviderClient, ResourceSchema, NETWORK_SCHEMAS,
SimulatedNetworkProvider, Ec2NetworkProvider
"""

from .aws_ec2 import Ec2NetworkProvider
from .base import ProviderClient, ResourceSchema
from .schemas import NETWORK_SCHEMAS
from .simulated import SimulatedNetworkProvider

__all__ = [
    "Ec2NetworkProvider",
    "NETWORK_SCHEMAS",
    "ProviderClient",
    "ResourceSchema",
    "SimulatedNetworkProvider",
]
