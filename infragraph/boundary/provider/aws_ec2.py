"""
EC2 network provider.

Maps the six network resource types onto EC2 API calls. Taggable resources
carry the idempotency token as a tag so an interrupted create can be found
again by ``lookup``; routes and route table associations cannot be tagged and
are looked up by their natural key instead.

Dependencies: boto3, botocore
System role: Real cloud backend of the apply engine
"""

import logging
from typing import Any, Callable, Mapping

import boto3
from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from infragraph.boundary.provider.base import ProviderClient, ResourceSchema
from infragraph.boundary.provider.schemas import NETWORK_SCHEMAS
from infragraph.configs.constants import (
    INTERNET_GATEWAY,
    ROUTE,
    ROUTE_TABLE,
    ROUTE_TABLE_ASSOCIATION,
    SUBNET,
    TOKEN_TAG,
    VPC,
)
from infragraph.core.exceptions import (
    ProviderCallError,
    ResourceNotFoundError,
    TransientProviderError,
)
from infragraph.utils.tags import merge_tags

logger = logging.getLogger(__name__)

_TRANSIENT_CODES = frozenset({
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "RequestThrottled",
    "ServiceUnavailable",
    "Unavailable",
    "InternalError",
    "InternalFailure",
    "RequestTimeout",
    "RequestTimeoutException",
})

_TAG_RESOURCE_TYPES: dict[str, str] = {
    VPC: "vpc",
    SUBNET: "subnet",
    INTERNET_GATEWAY: "internet-gateway",
    ROUTE_TABLE: "route-table",
}

# Routes have no EC2 id; the provider id joins table and destination
_ROUTE_ID_SEPARATOR = "|"


def translate_client_error(error: ClientError, resource_type: str, operation: str) -> ProviderCallError:
    """
    Map a botocore ClientError to the provider error taxonomy.

    Args:
        error: Error raised by the EC2 client
        resource_type: Resource type of the failing call
        operation: Provider operation name

    Returns:
        ProviderCallError: Transient, not-found or terminal error
    """
    code = error.response.get("Error", {}).get("Code", "Unknown")
    message = error.response.get("Error", {}).get("Message", str(error))
    if code in _TRANSIENT_CODES:
        return TransientProviderError(message, resource_type, operation, code=code)
    if code.endswith(".NotFound"):
        return ResourceNotFoundError(message, resource_type, operation, code=code)
    return ProviderCallError(message, resource_type, operation, code=code)


def _to_tag_list(tags: Mapping[str, Any]) -> list[dict[str, str]]:
    return [{"Key": str(key), "Value": str(value)} for key, value in tags.items()]


def _from_tag_list(tags: list[dict[str, str]] | None) -> dict[str, str]:
    return {
        tag["Key"]: tag["Value"]
        for tag in tags or []
        if tag["Key"] != TOKEN_TAG
    }


def route_id(route_table_id: str, destination_cidr_block: str) -> str:
    return f"{route_table_id}{_ROUTE_ID_SEPARATOR}{destination_cidr_block}"


def split_route_id(resource_id: str) -> tuple[str, str]:
    route_table_id, sep, destination = resource_id.partition(_ROUTE_ID_SEPARATOR)
    if not sep:
        raise ResourceNotFoundError(
            f"Malformed route id: {resource_id!r}", ROUTE, code="InvalidRoute.NotFound"
        )
    return route_table_id, destination


class Ec2NetworkProvider(ProviderClient):
    """EC2-backed implementation of the network provider contract."""

    def __init__(self, region: str = "ap-southeast-2", client: Any = None) -> None:
        """
        Initialize the EC2 client.

        Args:
            region: AWS region for all network calls
            client: Pre-built EC2 client (tests inject a stub)
        """
        self._region = region
        self._client = client or boto3.client("ec2", region_name=region)

    @property
    def schemas(self) -> Mapping[str, ResourceSchema]:
        return NETWORK_SCHEMAS

    def create(self, resource_type: str, attributes: dict[str, Any], token: str) -> dict[str, Any]:
        creator = self._dispatch(resource_type, "create")
        resource_id = creator(attributes, token)
        logger.info(f"{__name__}:create - Created {resource_type} {resource_id}")
        realized = self.read(resource_type, resource_id)
        if realized is None:
            # Describe calls are eventually consistent; report what was sent
            realized = {**attributes, "id": resource_id}
        return realized

    def read(self, resource_type: str, resource_id: str) -> dict[str, Any] | None:
        reader = self._dispatch(resource_type, "read")
        try:
            return reader(resource_id)
        except ResourceNotFoundError:
            return None

    def update(self, resource_type: str, resource_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        updater = self._dispatch(resource_type, "update")
        new_id = updater(resource_id, changes) or resource_id
        realized = self.read(resource_type, new_id)
        if realized is None:
            raise ResourceNotFoundError(
                f"{resource_type} {new_id} disappeared during update",
                resource_type, "update", code="NotFound",
            )
        return realized

    def delete(self, resource_type: str, resource_id: str) -> None:
        deleter = self._dispatch(resource_type, "delete")
        deleter(resource_id)
        logger.info(f"{__name__}:delete - Deleted {resource_type} {resource_id}")

    def lookup(self, resource_type: str, attributes: dict[str, Any], token: str) -> dict[str, Any] | None:
        if resource_type in _TAG_RESOURCE_TYPES:
            return self._lookup_by_token(resource_type, token)
        if resource_type == ROUTE:
            return self.read(
                ROUTE, route_id(attributes["route_table_id"], attributes["destination_cidr_block"])
            )
        if resource_type == ROUTE_TABLE_ASSOCIATION:
            return self._lookup_association(attributes["subnet_id"], attributes["route_table_id"])
        raise self._unsupported(resource_type, "lookup")

    def _call(self, resource_type: str, operation: str, method: str, **kwargs: Any) -> dict[str, Any]:
        try:
            return getattr(self._client, method)(**kwargs)
        except ClientError as e:
            raise translate_client_error(e, resource_type, operation) from e
        except (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError) as e:
            raise TransientProviderError(
                str(e), resource_type, operation, code=type(e).__name__
            ) from e

    def _dispatch(self, resource_type: str, operation: str) -> Callable[..., Any]:
        handler = getattr(self, f"_{operation}_{resource_type}", None)
        if handler is None:
            raise self._unsupported(resource_type, operation)
        return handler

    @staticmethod
    def _unsupported(resource_type: str, operation: str) -> ProviderCallError:
        return ProviderCallError(
            f"Unsupported resource type: {resource_type}",
            resource_type, operation, code="UnsupportedOperation",
        )

    def _tag_specifications(self, resource_type: str, attributes: Mapping[str, Any], token: str) -> list[dict[str, Any]]:
        tags = merge_tags(attributes.get("tags") or {}, {TOKEN_TAG: token})
        return [{"ResourceType": _TAG_RESOURCE_TYPES[resource_type], "Tags": _to_tag_list(tags)}]

    def _sync_tags(self, resource_type: str, resource_id: str, desired: Mapping[str, Any] | None) -> None:
        current = self.read(resource_type, resource_id) or {}
        current_tags = current.get("tags", {})
        desired = dict(desired or {})
        stale = [key for key in current_tags if key not in desired]
        if stale:
            self._call(
                resource_type, "update", "delete_tags",
                Resources=[resource_id], Tags=[{"Key": key} for key in stale],
            )
        if desired:
            self._call(
                resource_type, "update", "create_tags",
                Resources=[resource_id], Tags=_to_tag_list(desired),
            )

    def _lookup_by_token(self, resource_type: str, token: str) -> dict[str, Any] | None:
        describe, key, id_key = {
            VPC: ("describe_vpcs", "Vpcs", "VpcId"),
            SUBNET: ("describe_subnets", "Subnets", "SubnetId"),
            INTERNET_GATEWAY: ("describe_internet_gateways", "InternetGateways", "InternetGatewayId"),
            ROUTE_TABLE: ("describe_route_tables", "RouteTables", "RouteTableId"),
        }[resource_type]
        response = self._call(
            resource_type, "lookup", describe,
            Filters=[{"Name": f"tag:{TOKEN_TAG}", "Values": [token]}],
        )
        found = response.get(key, [])
        if not found:
            return None
        return self.read(resource_type, found[0][id_key])

    # vpc

    def _create_vpc(self, attributes: Mapping[str, Any], token: str) -> str:
        response = self._call(
            VPC, "create", "create_vpc",
            CidrBlock=attributes["cidr_block"],
            TagSpecifications=self._tag_specifications(VPC, attributes, token),
        )
        vpc_id = response["Vpc"]["VpcId"]
        self._modify_vpc(vpc_id, attributes)
        return vpc_id

    def _modify_vpc(self, vpc_id: str, attributes: Mapping[str, Any]) -> None:
        # ModifyVpcAttribute accepts one attribute per call
        for name, api_name in (
            ("enable_dns_support", "EnableDnsSupport"),
            ("enable_dns_hostnames", "EnableDnsHostnames"),
        ):
            if name in attributes:
                self._call(
                    VPC, "update", "modify_vpc_attribute",
                    VpcId=vpc_id, **{api_name: {"Value": bool(attributes[name])}},
                )

    def _read_vpc(self, vpc_id: str) -> dict[str, Any]:
        response = self._call(VPC, "read", "describe_vpcs", VpcIds=[vpc_id])
        vpcs = response.get("Vpcs", [])
        if not vpcs:
            raise ResourceNotFoundError(f"VPC {vpc_id} not found", VPC, "read", code="InvalidVpcID.NotFound")
        vpc = vpcs[0]
        return {
            "id": vpc["VpcId"],
            "cidr_block": vpc["CidrBlock"],
            "state": vpc.get("State"),
            "owner_id": vpc.get("OwnerId"),
            "tags": _from_tag_list(vpc.get("Tags")),
        }

    def _update_vpc(self, vpc_id: str, changes: Mapping[str, Any]) -> None:
        self._modify_vpc(vpc_id, changes)
        if "tags" in changes:
            self._sync_tags(VPC, vpc_id, changes["tags"])

    def _delete_vpc(self, vpc_id: str) -> None:
        self._call(VPC, "delete", "delete_vpc", VpcId=vpc_id)

    # subnet

    def _create_subnet(self, attributes: Mapping[str, Any], token: str) -> str:
        kwargs: dict[str, Any] = {
            "VpcId": attributes["vpc_id"],
            "CidrBlock": attributes["cidr_block"],
            "TagSpecifications": self._tag_specifications(SUBNET, attributes, token),
        }
        if attributes.get("availability_zone"):
            kwargs["AvailabilityZone"] = attributes["availability_zone"]
        response = self._call(SUBNET, "create", "create_subnet", **kwargs)
        subnet_id = response["Subnet"]["SubnetId"]
        if "map_public_ip_on_launch" in attributes:
            self._modify_subnet(subnet_id, attributes["map_public_ip_on_launch"])
        return subnet_id

    def _modify_subnet(self, subnet_id: str, map_public_ip: Any) -> None:
        self._call(
            SUBNET, "update", "modify_subnet_attribute",
            SubnetId=subnet_id, MapPublicIpOnLaunch={"Value": bool(map_public_ip)},
        )

    def _read_subnet(self, subnet_id: str) -> dict[str, Any]:
        response = self._call(SUBNET, "read", "describe_subnets", SubnetIds=[subnet_id])
        subnets = response.get("Subnets", [])
        if not subnets:
            raise ResourceNotFoundError(
                f"Subnet {subnet_id} not found", SUBNET, "read", code="InvalidSubnetID.NotFound"
            )
        subnet = subnets[0]
        return {
            "id": subnet["SubnetId"],
            "vpc_id": subnet["VpcId"],
            "cidr_block": subnet["CidrBlock"],
            "availability_zone": subnet.get("AvailabilityZone"),
            "map_public_ip_on_launch": subnet.get("MapPublicIpOnLaunch", False),
            "available_ip_address_count": subnet.get("AvailableIpAddressCount"),
            "tags": _from_tag_list(subnet.get("Tags")),
        }

    def _update_subnet(self, subnet_id: str, changes: Mapping[str, Any]) -> None:
        if "map_public_ip_on_launch" in changes:
            self._modify_subnet(subnet_id, changes["map_public_ip_on_launch"])
        if "tags" in changes:
            self._sync_tags(SUBNET, subnet_id, changes["tags"])

    def _delete_subnet(self, subnet_id: str) -> None:
        self._call(SUBNET, "delete", "delete_subnet", SubnetId=subnet_id)

    # internet_gateway

    def _create_internet_gateway(self, attributes: Mapping[str, Any], token: str) -> str:
        response = self._call(
            INTERNET_GATEWAY, "create", "create_internet_gateway",
            TagSpecifications=self._tag_specifications(INTERNET_GATEWAY, attributes, token),
        )
        gateway_id = response["InternetGateway"]["InternetGatewayId"]
        self._call(
            INTERNET_GATEWAY, "create", "attach_internet_gateway",
            InternetGatewayId=gateway_id, VpcId=attributes["vpc_id"],
        )
        return gateway_id

    def _read_internet_gateway(self, gateway_id: str) -> dict[str, Any]:
        response = self._call(
            INTERNET_GATEWAY, "read", "describe_internet_gateways",
            InternetGatewayIds=[gateway_id],
        )
        gateways = response.get("InternetGateways", [])
        if not gateways:
            raise ResourceNotFoundError(
                f"Internet gateway {gateway_id} not found",
                INTERNET_GATEWAY, "read", code="InvalidInternetGatewayID.NotFound",
            )
        gateway = gateways[0]
        attachments = gateway.get("Attachments") or []
        return {
            "id": gateway["InternetGatewayId"],
            "vpc_id": attachments[0]["VpcId"] if attachments else None,
            "owner_id": gateway.get("OwnerId"),
            "tags": _from_tag_list(gateway.get("Tags")),
        }

    def _update_internet_gateway(self, gateway_id: str, changes: Mapping[str, Any]) -> None:
        if "tags" in changes:
            self._sync_tags(INTERNET_GATEWAY, gateway_id, changes["tags"])

    def _delete_internet_gateway(self, gateway_id: str) -> None:
        current = self._read_internet_gateway(gateway_id)
        if current["vpc_id"]:
            self._call(
                INTERNET_GATEWAY, "delete", "detach_internet_gateway",
                InternetGatewayId=gateway_id, VpcId=current["vpc_id"],
            )
        self._call(
            INTERNET_GATEWAY, "delete", "delete_internet_gateway",
            InternetGatewayId=gateway_id,
        )

    # route_table

    def _create_route_table(self, attributes: Mapping[str, Any], token: str) -> str:
        response = self._call(
            ROUTE_TABLE, "create", "create_route_table",
            VpcId=attributes["vpc_id"],
            TagSpecifications=self._tag_specifications(ROUTE_TABLE, attributes, token),
        )
        return response["RouteTable"]["RouteTableId"]

    def _describe_route_table(self, route_table_id: str, resource_type: str) -> dict[str, Any]:
        response = self._call(
            resource_type, "read", "describe_route_tables", RouteTableIds=[route_table_id]
        )
        tables = response.get("RouteTables", [])
        if not tables:
            raise ResourceNotFoundError(
                f"Route table {route_table_id} not found",
                resource_type, "read", code="InvalidRouteTableID.NotFound",
            )
        return tables[0]

    def _read_route_table(self, route_table_id: str) -> dict[str, Any]:
        table = self._describe_route_table(route_table_id, ROUTE_TABLE)
        return {
            "id": table["RouteTableId"],
            "vpc_id": table["VpcId"],
            "owner_id": table.get("OwnerId"),
            "tags": _from_tag_list(table.get("Tags")),
        }

    def _update_route_table(self, route_table_id: str, changes: Mapping[str, Any]) -> None:
        if "tags" in changes:
            self._sync_tags(ROUTE_TABLE, route_table_id, changes["tags"])

    def _delete_route_table(self, route_table_id: str) -> None:
        self._call(ROUTE_TABLE, "delete", "delete_route_table", RouteTableId=route_table_id)

    # route

    def _create_route(self, attributes: Mapping[str, Any], token: str) -> str:
        self._call(
            ROUTE, "create", "create_route",
            RouteTableId=attributes["route_table_id"],
            DestinationCidrBlock=attributes["destination_cidr_block"],
            GatewayId=attributes["gateway_id"],
        )
        return route_id(attributes["route_table_id"], attributes["destination_cidr_block"])

    def _read_route(self, resource_id: str) -> dict[str, Any]:
        route_table_id, destination = split_route_id(resource_id)
        table = self._describe_route_table(route_table_id, ROUTE)
        for route in table.get("Routes", []):
            if route.get("DestinationCidrBlock") == destination:
                return {
                    "id": resource_id,
                    "route_table_id": route_table_id,
                    "destination_cidr_block": destination,
                    "gateway_id": route.get("GatewayId"),
                    "state": route.get("State"),
                }
        raise ResourceNotFoundError(
            f"Route {destination} not found in {route_table_id}",
            ROUTE, "read", code="InvalidRoute.NotFound",
        )

    def _update_route(self, resource_id: str, changes: Mapping[str, Any]) -> None:
        route_table_id, destination = split_route_id(resource_id)
        self._call(
            ROUTE, "update", "replace_route",
            RouteTableId=route_table_id,
            DestinationCidrBlock=destination,
            GatewayId=changes["gateway_id"],
        )

    def _delete_route(self, resource_id: str) -> None:
        route_table_id, destination = split_route_id(resource_id)
        self._call(
            ROUTE, "delete", "delete_route",
            RouteTableId=route_table_id, DestinationCidrBlock=destination,
        )

    # route_table_association

    def _create_route_table_association(self, attributes: Mapping[str, Any], token: str) -> str:
        response = self._call(
            ROUTE_TABLE_ASSOCIATION, "create", "associate_route_table",
            SubnetId=attributes["subnet_id"],
            RouteTableId=attributes["route_table_id"],
        )
        return response["AssociationId"]

    def _associations(self, filters: list[dict[str, Any]], operation: str) -> list[dict[str, Any]]:
        response = self._call(
            ROUTE_TABLE_ASSOCIATION, operation, "describe_route_tables", Filters=filters
        )
        return [
            association
            for table in response.get("RouteTables", [])
            for association in table.get("Associations", [])
        ]

    @staticmethod
    def _association_record(association: Mapping[str, Any]) -> dict[str, Any]:
        return {
            "id": association["RouteTableAssociationId"],
            "subnet_id": association.get("SubnetId"),
            "route_table_id": association["RouteTableId"],
        }

    def _read_route_table_association(self, association_id: str) -> dict[str, Any]:
        associations = self._associations(
            [{"Name": "association.route-table-association-id", "Values": [association_id]}],
            "read",
        )
        for association in associations:
            if association["RouteTableAssociationId"] == association_id:
                return self._association_record(association)
        raise ResourceNotFoundError(
            f"Association {association_id} not found",
            ROUTE_TABLE_ASSOCIATION, "read", code="InvalidAssociationID.NotFound",
        )

    def _lookup_association(self, subnet_id: str, route_table_id: str) -> dict[str, Any] | None:
        associations = self._associations(
            [{"Name": "association.subnet-id", "Values": [subnet_id]}], "lookup"
        )
        for association in associations:
            if (
                association.get("SubnetId") == subnet_id
                and association["RouteTableId"] == route_table_id
            ):
                return self._association_record(association)
        return None

    def _update_route_table_association(self, association_id: str, changes: Mapping[str, Any]) -> str:
        response = self._call(
            ROUTE_TABLE_ASSOCIATION, "update", "replace_route_table_association",
            AssociationId=association_id, RouteTableId=changes["route_table_id"],
        )
        return response["NewAssociationId"]

    def _delete_route_table_association(self, association_id: str) -> None:
        self._call(
            ROUTE_TABLE_ASSOCIATION, "delete", "disassociate_route_table",
            AssociationId=association_id,
        )
