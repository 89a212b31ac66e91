"""
Unit tests for dependency ordering.

Dependencies: pytest, infragraph.core.dependency_resolver
System role: Ordering validation
"""

import pytest

from infragraph.core.dependency_resolver import DependencyResolver, find_cycle, topological_order
from infragraph.core.exceptions import CyclicDependencyError
from infragraph.models.configuration import Configuration
from infragraph.models.resource import NodeState
from infragraph.models.state import ResourceState, StateSnapshot


class TestTopologicalOrder:
    """Test suite for topological_order."""

    def test_dependencies_come_first(self):
        order = topological_order({"c": ["b"], "b": ["a"], "a": []})

        assert order == ["a", "b", "c"]

    def test_declaration_order_breaks_ties(self):
        """
        Test independent ids keep their mapping order.

        Arrange: Two roots and a shared dependent
        Act: Order
        Assert: Roots in insertion order, dependent last
        """
        order = topological_order({"z": [], "y": [], "x": ["z", "y"]})

        assert order == ["z", "y", "x"]

    def test_unknown_dependencies_ignored(self):
        assert topological_order({"b": ["a", "outside"], "a": []}) == ["a", "b"]

    def test_cycle_raises_with_path(self):
        with pytest.raises(CyclicDependencyError) as exc_info:
            topological_order({"a": ["c"], "b": ["a"], "c": ["b"], "d": []})

        cycle = exc_info.value.cycle
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"a", "b", "c"}

    def test_find_cycle_self_loop(self):
        assert find_cycle({"a": ["a"]}) == ["a", "a"]


class TestDependencyResolver:
    """Test suite for DependencyResolver."""

    def test_reference_vpc_creation_order(self, vpc_configuration, build_graph):
        """
        Test the reference VPC orders every node after its dependencies.

        Arrange: Reference VPC graph
        Act: Compute creation order
        Assert: VPC first, every edge respected
        """
        # Arrange
        graph = build_graph(vpc_configuration)

        # Act
        order = DependencyResolver().creation_order(graph)

        # Assert
        assert order[0] == "vpc.main"
        position = {node_id: i for i, node_id in enumerate(order)}
        for edge in graph.edges:
            assert position[edge.target] < position[edge.source]
        assert position["route.internet"] > position["internet_gateway.main"]

    def test_destroy_order_is_reverse(self, vpc_configuration, build_graph):
        graph = build_graph(vpc_configuration)
        resolver = DependencyResolver()

        assert resolver.destroy_order(graph) == list(reversed(resolver.creation_order(graph)))

    def test_cycle_in_graph(self, build_graph):
        configuration = Configuration.model_validate({
            "resources": [
                {"type": "route_table", "name": "a", "attributes": {"vpc_id": {"ref": "route_table.b"}}},
                {"type": "route_table", "name": "b", "attributes": {"vpc_id": {"ref": "route_table.a"}}},
            ],
        })
        graph = build_graph(configuration)

        with pytest.raises(CyclicDependencyError):
            DependencyResolver().creation_order(graph)

    def test_snapshot_destroy_order_uses_recorded_dependencies(self):
        """
        Test orphaned resources are deleted dependents first.

        Arrange: Snapshot with vpc <- subnet <- association, none declared
        Act: Order all three for deletion
        Assert: Association, subnet, vpc
        """
        # Arrange
        snapshot = StateSnapshot()
        for node_id, deps in [
            ("vpc.main", []),
            ("subnet.a", ["vpc.main"]),
            ("route_table_association.a", ["subnet.a"]),
        ]:
            snapshot.put(ResourceState(
                id=node_id,
                type=node_id.split(".")[0],
                status=NodeState.CREATED,
                provider_id=f"id-{node_id}",
                dependencies=deps,
            ))

        # Act
        order = DependencyResolver().snapshot_destroy_order(snapshot, list(snapshot.resources))

        # Assert
        assert order == ["route_table_association.a", "subnet.a", "vpc.main"]

    def test_snapshot_destroy_order_subset(self):
        snapshot = StateSnapshot()
        snapshot.put(ResourceState(id="vpc.main", type="vpc", status=NodeState.CREATED))
        snapshot.put(ResourceState(
            id="subnet.a", type="subnet", status=NodeState.CREATED, dependencies=["vpc.main"]
        ))

        order = DependencyResolver().snapshot_destroy_order(snapshot, ["subnet.a"])

        assert order == ["subnet.a"]
