"""
Resource graph: an arena of nodes keyed by id plus an edge list.

Dependencies: dataclasses (stdlib)
System role: Output of the graph builder, input of the resolver and planner
"""

from dataclasses import dataclass, field
from typing import Iterator

from infragraph.models.resource import ResourceNode


@dataclass(frozen=True)
class Edge:
    """Dependency edge: ``source`` needs ``target`` realized first."""

    source: str
    target: str
    attribute: str


@dataclass
class ResourceGraph:
    nodes: dict[str, ResourceNode] = field(default_factory=dict)
    edges: list[Edge] = field(default_factory=list)

    def add_node(self, node: ResourceNode) -> None:
        if node.id in self.nodes:
            raise ValueError(f"Node already in graph: {node.id}")
        self.nodes[node.id] = node

    def add_edge(self, edge: Edge) -> None:
        if edge.source not in self.nodes:
            raise ValueError(f"Unknown source node: {edge.source}")
        if edge.target not in self.nodes:
            raise ValueError(f"Unknown target node: {edge.target}")
        self.edges.append(edge)

    def dependencies_of(self, node_id: str) -> list[str]:
        """Distinct dependency ids of a node, in edge order."""
        seen: dict[str, None] = {}
        for edge in self.edges:
            if edge.source == node_id:
                seen.setdefault(edge.target, None)
        return list(seen)

    def dependency_map(self) -> dict[str, list[str]]:
        """Node id to distinct dependency ids, in node declaration order."""
        deps: dict[str, dict[str, None]] = {node_id: {} for node_id in self.nodes}
        for edge in self.edges:
            deps[edge.source].setdefault(edge.target, None)
        return {node_id: list(targets) for node_id, targets in deps.items()}

    def instances_of(self, address: str) -> list[ResourceNode]:
        """All nodes expanded from the declaration ``type.name``, by index."""
        found = [
            node for node in self.nodes.values()
            if f"{node.type}.{node.name}" == address
        ]
        return sorted(found, key=lambda node: -1 if node.index is None else node.index)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes

    def __iter__(self) -> Iterator[ResourceNode]:
        return iter(self.nodes.values())

    def __len__(self) -> int:
        return len(self.nodes)
