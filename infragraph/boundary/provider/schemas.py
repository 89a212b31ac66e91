"""
Network resource schemas.

Required and in-place updatable attributes per resource type. Attributes not
listed as updatable force replacement when they change.
"""

from typing import Final, Mapping

from infragraph.boundary.provider.base import ResourceSchema
from infragraph.configs.constants import (
    INTERNET_GATEWAY,
    ROUTE,
    ROUTE_TABLE,
    ROUTE_TABLE_ASSOCIATION,
    SUBNET,
    VPC,
)

NETWORK_SCHEMAS: Final[Mapping[str, ResourceSchema]] = {
    VPC: ResourceSchema(
        type=VPC,
        required=frozenset({"cidr_block"}),
        updatable=frozenset({"tags", "enable_dns_hostnames", "enable_dns_support"}),
    ),
    SUBNET: ResourceSchema(
        type=SUBNET,
        required=frozenset({"vpc_id", "cidr_block"}),
        updatable=frozenset({"tags", "map_public_ip_on_launch"}),
    ),
    INTERNET_GATEWAY: ResourceSchema(
        type=INTERNET_GATEWAY,
        required=frozenset({"vpc_id"}),
        updatable=frozenset({"tags"}),
    ),
    ROUTE_TABLE: ResourceSchema(
        type=ROUTE_TABLE,
        required=frozenset({"vpc_id"}),
        updatable=frozenset({"tags"}),
    ),
    ROUTE: ResourceSchema(
        type=ROUTE,
        required=frozenset({"route_table_id", "destination_cidr_block", "gateway_id"}),
        updatable=frozenset({"gateway_id"}),
        taggable=False,
    ),
    ROUTE_TABLE_ASSOCIATION: ResourceSchema(
        type=ROUTE_TABLE_ASSOCIATION,
        required=frozenset({"subnet_id", "route_table_id"}),
        updatable=frozenset({"route_table_id"}),
        taggable=False,
    ),
}
