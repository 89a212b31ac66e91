"""
Plan and apply result models.

Dependencies: dataclasses (stdlib)
System role: Planner output and apply engine report
"""

import enum
from dataclasses import dataclass, field
from typing import Any

from infragraph.models.resource import NodeState


class Action(str, enum.Enum):
    """
    Change applied to one node.

    CREATE: No realized resource exists
    UPDATE: Changed attributes are all updatable in place
    REPLACE: Destroy then create (non-updatable change or replaced dependency)
    DELETE: In state but no longer declared, or explicit teardown
    NOOP: Desired attributes match the state snapshot
    """

    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    NOOP = "no-op"


@dataclass
class ResourceChange:
    """Planned change for one node."""

    node_id: str
    resource_type: str
    action: Action
    changed: list[str] = field(default_factory=list)
    before: dict[str, Any] = field(default_factory=dict)
    after: dict[str, Any] = field(default_factory=dict)
    reason: str = ""


@dataclass
class Plan:
    """
    Ordered set of changes.

    Attributes:
        changes: Node id to change, covering every graph node and every orphan
        create_order: Graph creation order (dependencies first)
        destroy_order: Nodes to delete or replace, dependents first
        destroy: True for a full teardown plan
    """

    changes: dict[str, ResourceChange] = field(default_factory=dict)
    create_order: list[str] = field(default_factory=list)
    destroy_order: list[str] = field(default_factory=list)
    destroy: bool = False

    def by_action(self, action: Action) -> list[ResourceChange]:
        return [change for change in self.changes.values() if change.action == action]

    @property
    def has_changes(self) -> bool:
        return any(change.action != Action.NOOP for change in self.changes.values())

    def summary(self) -> dict[str, int]:
        counts = {action.value: 0 for action in Action}
        for change in self.changes.values():
            counts[change.action.value] += 1
        return counts


@dataclass
class NodeOutcome:
    """Final state of one node after apply."""

    node_id: str
    action: Action
    state: NodeState
    error: str | None = None


@dataclass
class ApplyResult:
    """Report of one apply or destroy run."""

    outcomes: dict[str, NodeOutcome] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)
    cancelled: bool = False
    provider_calls: int = 0

    @property
    def succeeded(self) -> bool:
        return not self.failures and not self.cancelled
