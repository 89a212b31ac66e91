"""
Planner.

Diffs the desired graph against the state snapshot and decides one action
per node:

- no realized entry: create
- attributes equal to the last applied config: no-op
- every changed attribute updatable in place: update
- otherwise, or when a dependency is replaced: replace
- recorded but no longer declared: delete

References are substituted with the realized values in the snapshot. A
reference to a node that will be created or replaced, or to an attribute an
update changes, is UNKNOWN and always counts as a change.

Dependencies: infragraph.core.dependency_resolver, infragraph.core.values
System role: Computes the Plan executed by the apply engine
"""

import logging
from typing import Any, Mapping

from infragraph.boundary.provider.base import ResourceSchema
from infragraph.core.dependency_resolver import DependencyResolver
from infragraph.core.validation import validate_graph
from infragraph.core.values import UNKNOWN, diff_keys, substitute_references
from infragraph.models.graph import ResourceGraph
from infragraph.models.plan import Action, Plan, ResourceChange
from infragraph.models.resource import Reference, ResourceNode
from infragraph.models.state import ResourceState, StateSnapshot

logger = logging.getLogger(__name__)

_PENDING_ACTIONS = (Action.CREATE, Action.REPLACE)


def recorded_value(entry: ResourceState | None, attribute: str) -> tuple[bool, Any]:
    """
    Read an attribute of a realized resource regardless of its last status.

    Args:
        entry: State entry, may be None
        attribute: Attribute name; ``id`` maps to the provider id

    Returns:
        tuple[bool, Any]: (found, value)
    """
    if entry is None or not entry.is_realized:
        return False, None
    if attribute == "id":
        return True, entry.provider_id
    if attribute in entry.attributes:
        return True, entry.attributes[attribute]
    if attribute in entry.config:
        return True, entry.config[attribute]
    return False, None


class Planner:
    """Computes plans for apply and destroy runs."""

    def __init__(
        self,
        schemas: Mapping[str, ResourceSchema],
        resolver: DependencyResolver | None = None,
    ) -> None:
        self._schemas = schemas
        self._resolver = resolver or DependencyResolver()

    def plan(self, graph: ResourceGraph, snapshot: StateSnapshot) -> Plan:
        """
        Plan the changes that bring the snapshot in line with the graph.

        Args:
            graph: Desired resource graph
            snapshot: Current state snapshot (not modified)

        Returns:
            Plan: One change per graph node and per orphaned entry

        Raises:
            CyclicDependencyError: If the graph contains a cycle
            UnknownResourceTypeError: If a node's type is not managed
            MissingAttributeError: If a node lacks a required attribute
        """
        validate_graph(graph, self._schemas)
        create_order = self._resolver.creation_order(graph)

        changes: dict[str, ResourceChange] = {}
        for node_id in create_order:
            node = graph.nodes[node_id]
            desired = substitute_references(
                node.attributes,
                lambda ref: self._planned_value(ref, changes, snapshot),
            )
            changes[node_id] = self._change_for(node, snapshot.get(node_id), desired, changes)

        for node_id, entry in snapshot.resources.items():
            if node_id not in graph:
                changes[node_id] = ResourceChange(
                    node_id=node_id,
                    resource_type=entry.type,
                    action=Action.DELETE,
                    before=dict(entry.config),
                    reason="no longer declared",
                )

        destroy_ids = [
            node_id for node_id, change in changes.items()
            if change.action in (Action.DELETE, Action.REPLACE) and node_id in snapshot.resources
        ]
        destroy_order = self._resolver.snapshot_destroy_order(snapshot, destroy_ids, graph)

        plan = Plan(changes=changes, create_order=create_order, destroy_order=destroy_order)
        logger.info(f"{__name__}:plan - {self._format_summary(plan)}")
        return plan

    def plan_destroy(self, snapshot: StateSnapshot, graph: ResourceGraph | None = None) -> Plan:
        """
        Plan deletion of every resource recorded in the snapshot.

        Args:
            snapshot: Current state snapshot
            graph: Current graph, if the configuration still builds; used only
                to keep the order aligned with creation order

        Returns:
            Plan: Delete changes in reverse dependency order
        """
        changes = {
            node_id: ResourceChange(
                node_id=node_id,
                resource_type=entry.type,
                action=Action.DELETE,
                before=dict(entry.config),
                reason="destroy",
            )
            for node_id, entry in snapshot.resources.items()
        }
        destroy_order = self._resolver.snapshot_destroy_order(snapshot, list(changes), graph)
        plan = Plan(changes=changes, destroy_order=destroy_order, destroy=True)
        logger.info(f"{__name__}:plan_destroy - {len(destroy_order)} to delete")
        return plan

    def _planned_value(
        self,
        ref: Reference,
        changes: Mapping[str, ResourceChange],
        snapshot: StateSnapshot,
    ) -> Any:
        change = changes.get(ref.target)
        if change is not None:
            if change.action in _PENDING_ACTIONS:
                return UNKNOWN
            if change.action == Action.UPDATE and ref.attribute in change.changed:
                return UNKNOWN
        found, value = recorded_value(snapshot.get(ref.target), ref.attribute)
        return value if found else UNKNOWN

    def _change_for(
        self,
        node: ResourceNode,
        entry: ResourceState | None,
        desired: dict[str, Any],
        changes: Mapping[str, ResourceChange],
    ) -> ResourceChange:
        if entry is None or not entry.is_realized:
            reason = ""
            if entry is not None and entry.token:
                reason = "interrupted create; existing resource checked first"
            return ResourceChange(
                node_id=node.id,
                resource_type=node.type,
                action=Action.CREATE,
                changed=list(desired),
                after=desired,
                reason=reason,
            )

        before = dict(entry.config)
        if entry.type != node.type:
            return ResourceChange(
                node.id, node.type, Action.REPLACE, list(desired), before, desired,
                reason=f"type changed from {entry.type}",
            )

        replaced = [
            dep for dep in node.dependencies()
            if dep in changes and changes[dep].action == Action.REPLACE
        ]
        changed = diff_keys(desired, entry.config)
        if replaced:
            return ResourceChange(
                node.id, node.type, Action.REPLACE, changed, before, desired,
                reason=f"dependency replaced: {', '.join(replaced)}",
            )
        if not changed:
            return ResourceChange(node.id, node.type, Action.NOOP, [], before, desired)

        schema = self._schemas[node.type]
        if schema.can_update(changed):
            return ResourceChange(node.id, node.type, Action.UPDATE, changed, before, desired)

        forcing = [name for name in changed if name not in schema.updatable]
        return ResourceChange(
            node.id, node.type, Action.REPLACE, changed, before, desired,
            reason=f"forces replacement: {', '.join(forcing)}",
        )

    @staticmethod
    def _format_summary(plan: Plan) -> str:
        summary = plan.summary()
        parts = [
            f"{count} to {action}" for action, count in summary.items()
            if count and action != Action.NOOP.value
        ]
        return ", ".join(parts) or "no changes"
