"""
Network resource constants.

Contains resource type names, default tags and lifecycle constants shared by
the graph builder, provider schemas and example configurations.
"""

from typing import Final

# Resource types understood by the network provider
VPC: Final[str] = "vpc"
SUBNET: Final[str] = "subnet"
INTERNET_GATEWAY: Final[str] = "internet_gateway"
ROUTE_TABLE: Final[str] = "route_table"
ROUTE: Final[str] = "route"
ROUTE_TABLE_ASSOCIATION: Final[str] = "route_table_association"

RESOURCE_TYPES: Final[tuple[str, ...]] = (
    VPC,
    SUBNET,
    INTERNET_GATEWAY,
    ROUTE_TABLE,
    ROUTE,
    ROUTE_TABLE_ASSOCIATION,
)

# Default tags applied to all taggable resources
DEFAULT_TAGS: Final[dict[str, str]] = {
    "ManagedBy": "infragraph",
}

# Tag keys the engine writes for read-before-create lookups
ADDRESS_TAG: Final[str] = "infragraph:address"
TOKEN_TAG: Final[str] = "infragraph:token"

# Placeholder substituted in string literals of counted declarations
COUNT_INDEX: Final[str] = "count.index"

STATE_FORMAT_VERSION: Final[int] = 1
