"""
State snapshot models.

The snapshot maps node ids to their last-known realized attributes and is the
sole source of truth for diffing on the next run. It is serialized as JSON
and stored by a state backend as an opaque blob.

Dependencies: pydantic
System role: Durable record of realized infrastructure
"""

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from infragraph.configs.constants import STATE_FORMAT_VERSION
from infragraph.models.resource import NodeState


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResourceState(BaseModel):
    """Last-known state of one resource."""

    id: str = Field(description="Node address")
    type: str = Field(description="Resource type")
    status: NodeState = Field(description="Lifecycle state at last write")
    provider_id: str | None = Field(default=None, description="Provider-assigned identifier")
    attributes: dict[str, Any] = Field(
        default_factory=dict,
        description="Attributes reported by the provider, including computed ones",
    )
    config: dict[str, Any] = Field(
        default_factory=dict,
        description="Desired attributes as last applied, references resolved",
    )
    dependencies: list[str] = Field(
        default_factory=list,
        description="Ids this resource depended on when applied",
    )
    token: str | None = Field(
        default=None,
        description="Idempotency token of the create call",
    )
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_realized(self) -> bool:
        return self.provider_id is not None


class OutputState(BaseModel):
    """Output value recorded after the last apply."""

    value: Any = None
    resolved: bool = False
    sensitive: bool = False


class StateSnapshot(BaseModel):
    """Mapping from node id to realized attributes, plus outputs."""

    version: int = STATE_FORMAT_VERSION
    serial: int = 0
    lineage: str = Field(default_factory=lambda: str(uuid.uuid4()))
    resources: dict[str, ResourceState] = Field(default_factory=dict)
    outputs: dict[str, OutputState] = Field(default_factory=dict)

    def get(self, node_id: str) -> ResourceState | None:
        return self.resources.get(node_id)

    def put(self, entry: ResourceState) -> None:
        entry.updated_at = _utcnow()
        self.resources[entry.id] = entry

    def remove(self, node_id: str) -> ResourceState | None:
        return self.resources.pop(node_id, None)

    def realized_value(self, node_id: str, attribute: str) -> tuple[bool, Any]:
        """
        Look up a realized attribute of a created resource.

        Args:
            node_id: Node address
            attribute: Attribute name (``id`` maps to the provider id)

        Returns:
            tuple[bool, Any]: (found, value); found is False when the resource
            is not ``created`` or lacks the attribute
        """
        entry = self.resources.get(node_id)
        if entry is None or entry.status != NodeState.CREATED:
            return False, None
        if attribute == "id" and entry.provider_id is not None:
            return True, entry.provider_id
        if attribute in entry.attributes:
            return True, entry.attributes[attribute]
        if attribute in entry.config:
            return True, entry.config[attribute]
        return False, None

    def to_bytes(self) -> bytes:
        return self.model_dump_json(indent=2).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes | str) -> "StateSnapshot":
        return cls.model_validate_json(data)
