"""
Unit tests for graph expansion.

Dependencies: pytest, infragraph.core.graph_builder
System role: Declaration expansion validation
"""

import pytest

from infragraph.core.exceptions import (
    DuplicateResourceError,
    InvalidCountError,
    InvalidReferenceError,
    UndefinedVariableError,
)
from infragraph.models.configuration import Configuration
from infragraph.models.resource import Reference


def _configuration(resources, variables=None, default_tags=None):
    return Configuration.model_validate({
        "variables": variables or [],
        "resources": resources,
        "default_tags": default_tags or {},
    })


class TestGraphExpansion:
    """Test suite for GraphBuilder.build on the reference VPC."""

    def test_counted_declarations_expand_per_index(self, vpc_configuration, build_graph):
        """
        Test count expands one node per index in declaration order.

        Arrange: Reference VPC with two public subnet CIDRs
        Act: Build the graph
        Assert: Eight nodes with indexed subnet and association ids
        """
        # Act
        graph = build_graph(vpc_configuration)

        # Assert
        assert list(graph.nodes) == [
            "vpc.main",
            "subnet.public[0]",
            "subnet.public[1]",
            "internet_gateway.main",
            "route_table.public",
            "route.internet",
            "route_table_association.public[0]",
            "route_table_association.public[1]",
        ]
        assert [node.position for node in graph] == list(range(8))

    def test_variables_substituted_per_index(self, vpc_configuration, build_graph):
        graph = build_graph(vpc_configuration)

        second = graph.nodes["subnet.public[1]"]

        assert second.attributes["cidr_block"] == "10.0.2.0/24"
        assert second.attributes["availability_zone"] == "ap-southeast-2b"
        assert second.index == 1
        assert second.name == "public"

    def test_references_stay_symbolic(self, vpc_configuration, build_graph):
        """
        Test references become Reference objects and edges.

        Arrange: Reference VPC
        Act: Build the graph
        Assert: Association references its own subnet index and the table
        """
        graph = build_graph(vpc_configuration)

        association = graph.nodes["route_table_association.public[1]"]

        assert association.attributes["subnet_id"] == Reference("subnet.public[1]")
        assert association.attributes["route_table_id"] == Reference("route_table.public")
        assert graph.dependencies_of(association.id) == [
            "subnet.public[1]",
            "route_table.public",
        ]

    def test_override_changes_expansion(self, vpc_configuration, build_graph):
        graph = build_graph(
            vpc_configuration,
            {"public_subnet_cidrs": ["10.0.1.0/24", "10.0.2.0/24", "10.0.3.0/24"]},
        )

        assert len(graph.instances_of("subnet.public")) == 3

    def test_default_tags_merged_into_taggable_types(self, vpc_document, build_graph):
        """
        Test default tags apply to taggable types only, declared tags win.

        Arrange: Default tags plus a declared Name tag on the VPC
        Act: Build the graph
        Assert: VPC tags merged, route has no tags attribute
        """
        # Arrange
        vpc_document["default_tags"] = {"Project": "demo", "Owner": "platform"}
        vpc_document["resources"][0]["attributes"]["tags"] = {"Owner": "network"}
        configuration = Configuration.model_validate(vpc_document)

        # Act
        graph = build_graph(configuration)

        # Assert
        assert graph.nodes["vpc.main"].attributes["tags"] == {
            "ManagedBy": "infragraph",
            "Project": "demo",
            "Owner": "network",
            "Name": "vpc.main",
        }
        assert "tags" not in graph.nodes["route.internet"].attributes

    def test_zero_count_produces_no_nodes(self, build_graph):
        configuration = _configuration([
            {"type": "vpc", "name": "main", "attributes": {"cidr_block": "10.0.0.0/16"}},
            {"type": "subnet", "name": "extra", "count": 0, "attributes": {}},
        ])

        graph = build_graph(configuration)

        assert list(graph.nodes) == ["vpc.main"]

    def test_count_index_placeholder_in_strings(self, build_graph):
        configuration = _configuration([
            {
                "type": "vpc",
                "name": "main",
                "count": 2,
                "attributes": {"cidr_block": "10.${count.index}.0.0/16"},
            },
        ])

        graph = build_graph(configuration)

        assert graph.nodes["vpc.main[1]"].attributes["cidr_block"] == "10.1.0.0/16"

    def test_depends_on_counted_target_means_every_instance(self, build_graph):
        configuration = _configuration([
            {"type": "vpc", "name": "main", "count": 2, "attributes": {"cidr_block": "10.0.0.0/16"}},
            {
                "type": "route_table",
                "name": "shared",
                "depends_on": ["vpc.main"],
                "attributes": {"vpc_id": {"ref": "vpc.main[0]"}},
            },
        ])

        graph = build_graph(configuration)

        assert graph.dependencies_of("route_table.shared") == ["vpc.main[0]", "vpc.main[1]"]

    def test_literal_map_with_expression_key_kept(self, build_graph):
        configuration = _configuration([
            {
                "type": "vpc",
                "name": "main",
                "attributes": {"cidr_block": "10.0.0.0/16", "tags": {"var": "literal", "x": "y"}},
            },
        ])

        graph = build_graph(configuration)

        assert graph.nodes["vpc.main"].attributes["tags"]["var"] == "literal"


class TestGraphBuilderErrors:
    """Test suite for expansion failures."""

    def test_duplicate_address_rejected(self, build_graph):
        configuration = _configuration([
            {"type": "vpc", "name": "main", "attributes": {}},
            {"type": "vpc", "name": "main", "attributes": {}},
        ])

        with pytest.raises(DuplicateResourceError):
            build_graph(configuration)

    @pytest.mark.parametrize("count", [-1, 1.5, True, "2"])
    def test_invalid_count_rejected(self, build_graph, count):
        configuration = _configuration([
            {"type": "vpc", "name": "main", "count": count, "attributes": {}},
        ])

        with pytest.raises(InvalidCountError):
            build_graph(configuration)

    def test_count_from_variable(self, build_graph):
        configuration = _configuration(
            [{"type": "vpc", "name": "main", "count": {"var": "n"}, "attributes": {}}],
            variables=[{"name": "n", "type": "number", "default": 3}],
        )

        graph = build_graph(configuration)

        assert len(graph) == 3

    def test_undefined_variable_raises(self, build_graph):
        configuration = _configuration(
            [{"type": "vpc", "name": "main", "attributes": {"cidr_block": {"var": "vpc_cidr"}}}],
            variables=[{"name": "vpc_cidr", "type": "string"}],
        )

        with pytest.raises(UndefinedVariableError):
            build_graph(configuration)

    def test_reference_to_unknown_resource(self, build_graph):
        """
        Test a reference to an undeclared address fails.

        Arrange: Subnet referencing vpc.missing
        Act: Build the graph
        Assert: InvalidReferenceError names source and target
        """
        configuration = _configuration([
            {"type": "subnet", "name": "a", "attributes": {"vpc_id": {"ref": "vpc.missing"}}},
        ])

        with pytest.raises(InvalidReferenceError) as exc_info:
            build_graph(configuration)

        assert exc_info.value.source == "subnet.a"
        assert exc_info.value.target == "vpc.missing"

    def test_index_out_of_range(self, build_graph):
        configuration = _configuration([
            {"type": "vpc", "name": "main", "count": 1, "attributes": {}},
            {"type": "subnet", "name": "a", "attributes": {"vpc_id": {"ref": "vpc.main[3]"}}},
        ])

        with pytest.raises(InvalidReferenceError):
            build_graph(configuration)

    def test_counted_target_requires_index(self, build_graph):
        configuration = _configuration([
            {"type": "vpc", "name": "main", "count": 2, "attributes": {}},
            {"type": "subnet", "name": "a", "attributes": {"vpc_id": {"ref": "vpc.main"}}},
        ])

        with pytest.raises(InvalidReferenceError):
            build_graph(configuration)

    def test_count_index_outside_counted_resource(self, build_graph):
        configuration = _configuration([
            {"type": "vpc", "name": "main", "count": 2, "attributes": {}},
            {
                "type": "subnet",
                "name": "a",
                "attributes": {"vpc_id": {"ref": "vpc.main", "index": "count.index"}},
            },
        ])

        with pytest.raises(InvalidReferenceError):
            build_graph(configuration)
