"""
Simulated network provider.

An in-process stand-in for the EC2 network API with the same invariants the
real service enforces: subnets must fit inside their VPC and not overlap, a
resource with dependents cannot be deleted, an association moves to a new id
when its route table changes. The inventory can be kept in memory or in a
JSON file so local runs survive across CLI invocations.

Failures can be injected per operation and resource type for testing retry,
partial-apply and read-before-create behavior.

Dependencies: ipaddress (stdlib)
System role: Local provider for development and tests
"""

import copy
import ipaddress
import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from infragraph.boundary.provider.base import ProviderClient, ResourceSchema
from infragraph.boundary.provider.schemas import NETWORK_SCHEMAS
from infragraph.configs.constants import (
    INTERNET_GATEWAY,
    ROUTE,
    ROUTE_TABLE,
    ROUTE_TABLE_ASSOCIATION,
    SUBNET,
    VPC,
)
from infragraph.core.exceptions import (
    ProviderCallError,
    ResourceNotFoundError,
    TransientProviderError,
)

logger = logging.getLogger(__name__)

_ID_PREFIXES: dict[str, str] = {
    VPC: "vpc",
    SUBNET: "subnet",
    INTERNET_GATEWAY: "igw",
    ROUTE_TABLE: "rtb",
    ROUTE: "r",
    ROUTE_TABLE_ASSOCIATION: "rtbassoc",
}

ACCOUNT_ID = "000000000000"


@dataclass
class ProviderCall:
    """One recorded provider call."""

    operation: str
    resource_type: str
    resource_id: str | None = None


@dataclass
class FaultRule:
    """
    Injected failure.

    Attributes:
        operation: create, read, update, delete or lookup
        resource_type: Limit to one type (None matches all)
        match: Attribute subset the call's attributes must contain (create/lookup)
        times: Remaining triggers, None for unlimited
        transient: Raise TransientProviderError instead of ProviderCallError
        after: Perform the operation, then raise (simulates a lost response)
        message: Error message
    """

    operation: str
    resource_type: str | None = None
    match: dict[str, Any] = field(default_factory=dict)
    times: int | None = 1
    transient: bool = False
    after: bool = False
    message: str = "Injected failure"

    def applies(self, operation: str, resource_type: str, attributes: Mapping[str, Any]) -> bool:
        if self.times is not None and self.times <= 0:
            return False
        if operation != self.operation:
            return False
        if self.resource_type is not None and resource_type != self.resource_type:
            return False
        return all(attributes.get(key) == value for key, value in self.match.items())

    def error(self, resource_type: str) -> ProviderCallError:
        if self.transient:
            return TransientProviderError(
                self.message, resource_type, self.operation, code="RequestLimitExceeded"
            )
        return ProviderCallError(self.message, resource_type, self.operation, code="InjectedFault")


class SimulatedNetworkProvider(ProviderClient):
    """Thread-safe simulated cloud network API."""

    def __init__(
        self,
        path: str | Path | None = None,
        region: str = "ap-southeast-2",
        availability_zones: tuple[str, ...] = ("ap-southeast-2a", "ap-southeast-2b", "ap-southeast-2c"),
    ) -> None:
        """
        Initialize the simulated provider.

        Args:
            path: Inventory file; None keeps everything in memory
            region: Region used in generated ARNs
            availability_zones: Zones assigned to subnets that do not set one
        """
        self._lock = threading.RLock()
        self._path = Path(path) if path else None
        self._region = region
        self._zones = availability_zones
        self._resources: dict[str, dict[str, dict[str, Any]]] = {
            resource_type: {} for resource_type in NETWORK_SCHEMAS
        }
        self._tokens: dict[str, list[str]] = {}
        self._faults: list[FaultRule] = []
        self.calls: list[ProviderCall] = []
        self._load()

    @property
    def schemas(self) -> Mapping[str, ResourceSchema]:
        return NETWORK_SCHEMAS

    def inject_failure(self, operation: str, resource_type: str | None = None, **kwargs: Any) -> FaultRule:
        """
        Register a failure for matching calls.

        Args:
            operation: Operation name to fail
            resource_type: Resource type to fail (None for any)
            **kwargs: Remaining FaultRule fields

        Returns:
            FaultRule: The registered rule (its ``times`` counts down)
        """
        rule = FaultRule(operation=operation, resource_type=resource_type, **kwargs)
        with self._lock:
            self._faults.append(rule)
        return rule

    def calls_for(self, operation: str | None = None) -> list[ProviderCall]:
        with self._lock:
            return [call for call in self.calls if operation is None or call.operation == operation]

    def reset_calls(self) -> None:
        with self._lock:
            self.calls.clear()

    def inventory(self, resource_type: str) -> dict[str, dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._resources.get(resource_type, {}))

    def create(self, resource_type: str, attributes: dict[str, Any], token: str) -> dict[str, Any]:
        with self._lock:
            self._record("create", resource_type, None)
            fault = self._fault("create", resource_type, attributes)
            if fault is not None and not fault.after:
                raise fault.error(resource_type)

            store = self._store(resource_type)
            self._validate_create(resource_type, attributes)
            resource_id = f"{_ID_PREFIXES[resource_type]}-{uuid.uuid4().hex[:17]}"
            record = {**copy.deepcopy(attributes), "id": resource_id}
            record.update(self._computed(resource_type, resource_id, record))
            store[resource_id] = record
            self._tokens[token] = [resource_type, resource_id]
            self._save()
            logger.debug(f"{__name__}:create - {resource_type} {resource_id}")

            if fault is not None:
                raise fault.error(resource_type)
            return copy.deepcopy(record)

    def read(self, resource_type: str, resource_id: str) -> dict[str, Any] | None:
        with self._lock:
            self._record("read", resource_type, resource_id)
            fault = self._fault("read", resource_type, {"id": resource_id})
            if fault is not None:
                raise fault.error(resource_type)
            record = self._store(resource_type).get(resource_id)
            return copy.deepcopy(record) if record is not None else None

    def update(self, resource_type: str, resource_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            self._record("update", resource_type, resource_id)
            fault = self._fault("update", resource_type, {"id": resource_id, **changes})
            if fault is not None and not fault.after:
                raise fault.error(resource_type)

            store = self._store(resource_type)
            record = store.get(resource_id)
            if record is None:
                raise ResourceNotFoundError(
                    f"{resource_type} {resource_id} does not exist",
                    resource_type, "update", code="NotFound",
                )
            schema = NETWORK_SCHEMAS[resource_type]
            fixed = [name for name in changes if name not in schema.updatable]
            if fixed:
                raise ProviderCallError(
                    f"Attributes cannot be changed in place: {', '.join(sorted(fixed))}",
                    resource_type, "update", code="InvalidParameterCombination",
                )

            updated = copy.deepcopy(record)
            for name, value in changes.items():
                if value is None:
                    updated.pop(name, None)
                else:
                    updated[name] = copy.deepcopy(value)
            self._validate_update(resource_type, updated)

            if resource_type == ROUTE_TABLE_ASSOCIATION and "route_table_id" in changes:
                # ReplaceRouteTableAssociation hands back a new association id
                del store[resource_id]
                new_id = f"{_ID_PREFIXES[resource_type]}-{uuid.uuid4().hex[:17]}"
                updated["id"] = new_id
                for token, target in self._tokens.items():
                    if target == [resource_type, resource_id]:
                        self._tokens[token] = [resource_type, new_id]
                resource_id = new_id
            store[resource_id] = updated
            self._save()

            if fault is not None:
                raise fault.error(resource_type)
            return copy.deepcopy(updated)

    def delete(self, resource_type: str, resource_id: str) -> None:
        with self._lock:
            self._record("delete", resource_type, resource_id)
            fault = self._fault("delete", resource_type, {"id": resource_id})
            if fault is not None and not fault.after:
                raise fault.error(resource_type)

            store = self._store(resource_type)
            if resource_id not in store:
                raise ResourceNotFoundError(
                    f"{resource_type} {resource_id} does not exist",
                    resource_type, "delete", code="NotFound",
                )
            dependents = self._dependents(resource_type, resource_id)
            if dependents:
                raise ProviderCallError(
                    f"{resource_type} {resource_id} has dependencies and cannot be deleted: "
                    + ", ".join(dependents),
                    resource_type, "delete", code="DependencyViolation",
                )
            del store[resource_id]
            self._tokens = {
                token: target for token, target in self._tokens.items()
                if target != [resource_type, resource_id]
            }
            self._save()

            if fault is not None:
                raise fault.error(resource_type)

    def lookup(self, resource_type: str, attributes: dict[str, Any], token: str) -> dict[str, Any] | None:
        with self._lock:
            self._record("lookup", resource_type, None)
            fault = self._fault("lookup", resource_type, attributes)
            if fault is not None:
                raise fault.error(resource_type)
            target = self._tokens.get(token)
            if target is None or target[0] != resource_type:
                return None
            record = self._store(resource_type).get(target[1])
            return copy.deepcopy(record) if record is not None else None

    def _record(self, operation: str, resource_type: str, resource_id: str | None) -> None:
        self.calls.append(ProviderCall(operation, resource_type, resource_id))

    def _fault(self, operation: str, resource_type: str, attributes: Mapping[str, Any]) -> FaultRule | None:
        for rule in self._faults:
            if rule.applies(operation, resource_type, attributes):
                if rule.times is not None:
                    rule.times -= 1
                return rule
        return None

    def _store(self, resource_type: str) -> dict[str, dict[str, Any]]:
        if resource_type not in self._resources:
            raise ProviderCallError(
                f"Unsupported resource type: {resource_type}",
                resource_type, code="UnsupportedOperation",
            )
        return self._resources[resource_type]

    def _require(self, resource_type: str, resource_id: Any, code: str) -> dict[str, Any]:
        record = self._resources[resource_type].get(resource_id) if isinstance(resource_id, str) else None
        if record is None:
            raise ProviderCallError(f"{code}: {resource_id!r}", resource_type, code=code)
        return record

    def _validate_create(self, resource_type: str, attributes: Mapping[str, Any]) -> None:
        missing = NETWORK_SCHEMAS[resource_type].required - set(attributes)
        if missing:
            raise ProviderCallError(
                f"Missing parameters: {', '.join(sorted(missing))}",
                resource_type, "create", code="MissingParameter",
            )

        if resource_type == VPC:
            self._network(attributes["cidr_block"], resource_type)
        elif resource_type == SUBNET:
            vpc = self._require(VPC, attributes["vpc_id"], "InvalidVpcID.NotFound")
            subnet = self._network(attributes["cidr_block"], resource_type)
            if not subnet.subnet_of(self._network(vpc["cidr_block"], VPC)):
                raise ProviderCallError(
                    f"CIDR {subnet} is not within VPC {vpc['id']}",
                    resource_type, "create", code="InvalidSubnet.Range",
                )
            for other in self._resources[SUBNET].values():
                if other["vpc_id"] == vpc["id"] and subnet.overlaps(
                    self._network(other["cidr_block"], SUBNET)
                ):
                    raise ProviderCallError(
                        f"CIDR {subnet} conflicts with subnet {other['id']}",
                        resource_type, "create", code="InvalidSubnet.Conflict",
                    )
        elif resource_type == INTERNET_GATEWAY:
            vpc = self._require(VPC, attributes["vpc_id"], "InvalidVpcID.NotFound")
            for other in self._resources[INTERNET_GATEWAY].values():
                if other["vpc_id"] == vpc["id"]:
                    raise ProviderCallError(
                        f"VPC {vpc['id']} already has gateway {other['id']}",
                        resource_type, "create", code="Resource.AlreadyAssociated",
                    )
        elif resource_type == ROUTE_TABLE:
            self._require(VPC, attributes["vpc_id"], "InvalidVpcID.NotFound")
        elif resource_type == ROUTE:
            self._validate_route(attributes)
            for other in self._resources[ROUTE].values():
                if (
                    other["route_table_id"] == attributes["route_table_id"]
                    and other["destination_cidr_block"] == attributes["destination_cidr_block"]
                ):
                    raise ProviderCallError(
                        f"Route {attributes['destination_cidr_block']} already exists",
                        resource_type, "create", code="RouteAlreadyExists",
                    )
        elif resource_type == ROUTE_TABLE_ASSOCIATION:
            self._validate_association(attributes)
            for other in self._resources[ROUTE_TABLE_ASSOCIATION].values():
                if other["subnet_id"] == attributes["subnet_id"]:
                    raise ProviderCallError(
                        f"Subnet {attributes['subnet_id']} is already associated",
                        resource_type, "create", code="Resource.AlreadyAssociated",
                    )

    def _validate_update(self, resource_type: str, record: Mapping[str, Any]) -> None:
        if resource_type == ROUTE:
            self._validate_route(record)
        elif resource_type == ROUTE_TABLE_ASSOCIATION:
            self._validate_association(record)

    def _validate_route(self, attributes: Mapping[str, Any]) -> None:
        table = self._require(ROUTE_TABLE, attributes["route_table_id"], "InvalidRouteTableID.NotFound")
        gateway = self._require(INTERNET_GATEWAY, attributes["gateway_id"], "InvalidInternetGatewayID.NotFound")
        if gateway["vpc_id"] != table["vpc_id"]:
            raise ProviderCallError(
                f"Gateway {gateway['id']} is not attached to VPC {table['vpc_id']}",
                ROUTE, code="Gateway.NotAttached",
            )
        self._network(attributes["destination_cidr_block"], ROUTE)

    def _validate_association(self, attributes: Mapping[str, Any]) -> None:
        subnet = self._require(SUBNET, attributes["subnet_id"], "InvalidSubnetID.NotFound")
        table = self._require(ROUTE_TABLE, attributes["route_table_id"], "InvalidRouteTableID.NotFound")
        if subnet["vpc_id"] != table["vpc_id"]:
            raise ProviderCallError(
                f"Route table {table['id']} and subnet {subnet['id']} belong to different VPCs",
                ROUTE_TABLE_ASSOCIATION, code="InvalidParameterValue",
            )

    @staticmethod
    def _network(cidr: Any, resource_type: str) -> ipaddress.IPv4Network | ipaddress.IPv6Network:
        try:
            return ipaddress.ip_network(str(cidr), strict=True)
        except ValueError as e:
            raise ProviderCallError(
                f"Invalid CIDR block {cidr!r}: {e}",
                resource_type, code="InvalidParameterValue",
            ) from e

    def _dependents(self, resource_type: str, resource_id: str) -> list[str]:
        found: list[str] = []
        if resource_type == VPC:
            for dependent_type in (SUBNET, INTERNET_GATEWAY, ROUTE_TABLE):
                found += [
                    rid for rid, record in self._resources[dependent_type].items()
                    if record.get("vpc_id") == resource_id
                ]
        elif resource_type == SUBNET:
            found += [
                rid for rid, record in self._resources[ROUTE_TABLE_ASSOCIATION].items()
                if record.get("subnet_id") == resource_id
            ]
        elif resource_type == INTERNET_GATEWAY:
            found += [
                rid for rid, record in self._resources[ROUTE].items()
                if record.get("gateway_id") == resource_id
            ]
        elif resource_type == ROUTE_TABLE:
            for dependent_type in (ROUTE, ROUTE_TABLE_ASSOCIATION):
                found += [
                    rid for rid, record in self._resources[dependent_type].items()
                    if record.get("route_table_id") == resource_id
                ]
        return found

    def _computed(self, resource_type: str, resource_id: str, record: Mapping[str, Any]) -> dict[str, Any]:
        computed: dict[str, Any] = {}
        if resource_type in (VPC, SUBNET, INTERNET_GATEWAY, ROUTE_TABLE):
            kind = "internet-gateway" if resource_type == INTERNET_GATEWAY else resource_type.replace("_", "-")
            computed["arn"] = f"arn:aws:ec2:{self._region}:{ACCOUNT_ID}:{kind}/{resource_id}"
            computed["owner_id"] = ACCOUNT_ID
        if resource_type == VPC:
            computed["state"] = "available"
        elif resource_type == SUBNET:
            network = ipaddress.ip_network(str(record["cidr_block"]))
            # Five addresses in every subnet are reserved
            computed["available_ip_address_count"] = max(network.num_addresses - 5, 0)
            if not record.get("availability_zone"):
                zone_count = len(self._resources[SUBNET])
                computed["availability_zone"] = self._zones[zone_count % len(self._zones)]
        return computed

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        data = json.loads(self._path.read_text(encoding="utf-8"))
        for resource_type, records in data.get("resources", {}).items():
            if resource_type in self._resources:
                self._resources[resource_type] = records
        self._tokens = data.get("tokens", {})
        logger.info(f"{__name__}:_load - Loaded simulated inventory from {self._path}")

    def _save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(
            json.dumps({"resources": self._resources, "tokens": self._tokens}, indent=2, sort_keys=True),
            encoding="utf-8",
        )
        tmp_path.replace(self._path)
