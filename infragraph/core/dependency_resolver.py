"""
Dependency resolver.

Orders resource nodes so every node comes after the nodes it references.
Uses Kahn's algorithm with a priority queue: among nodes whose dependencies
are all placed, the one declared first goes next, so the order is stable and
deterministic. Destroy order is the reverse of creation order.

Dependencies: heapq (stdlib)
System role: Creation/destruction ordering
"""

import heapq
import logging
from typing import Iterable, Mapping

from infragraph.core.exceptions import CyclicDependencyError
from infragraph.models.graph import ResourceGraph
from infragraph.models.state import StateSnapshot

logger = logging.getLogger(__name__)


def topological_order(dependencies: Mapping[str, Iterable[str]]) -> list[str]:
    """
    Order ids so that each id follows all of its dependencies.

    Iteration order of ``dependencies`` is the tie-break. Dependencies on ids
    that are not keys of the mapping are ignored, which lets callers order a
    subset of a larger graph.

    Args:
        dependencies: Id to the ids it depends on

    Returns:
        list[str]: Ids in dependency order

    Raises:
        CyclicDependencyError: If the dependencies contain a cycle
    """
    position = {node_id: i for i, node_id in enumerate(dependencies)}
    remaining: dict[str, set[str]] = {
        node_id: {dep for dep in deps if dep in position}
        for node_id, deps in dependencies.items()
    }
    dependents: dict[str, list[str]] = {node_id: [] for node_id in dependencies}
    for node_id, deps in remaining.items():
        for dep in deps:
            dependents[dep].append(node_id)

    ready = [(position[node_id], node_id) for node_id, deps in remaining.items() if not deps]
    heapq.heapify(ready)

    order: list[str] = []
    while ready:
        _, node_id = heapq.heappop(ready)
        order.append(node_id)
        for dependent in dependents[node_id]:
            pending = remaining[dependent]
            pending.discard(node_id)
            if not pending:
                heapq.heappush(ready, (position[dependent], dependent))

    if len(order) < len(position):
        placed = set(order)
        unresolved = {
            node_id: deps for node_id, deps in remaining.items() if node_id not in placed
        }
        raise CyclicDependencyError(find_cycle(unresolved))
    return order


def find_cycle(dependencies: Mapping[str, Iterable[str]]) -> list[str]:
    """
    Find one cycle among ids that could not be ordered.

    Args:
        dependencies: Id to dependency ids, restricted to unordered ids

    Returns:
        list[str]: Cycle path whose first and last ids are the same
    """
    visiting: list[str] = []
    on_path: set[str] = set()
    finished: set[str] = set()

    def visit(node_id: str) -> list[str] | None:
        visiting.append(node_id)
        on_path.add(node_id)
        for dep in dependencies.get(node_id, ()):
            if dep not in dependencies or dep in finished:
                continue
            if dep in on_path:
                start = visiting.index(dep)
                return visiting[start:] + [dep]
            cycle = visit(dep)
            if cycle:
                return cycle
        visiting.pop()
        on_path.discard(node_id)
        finished.add(node_id)
        return None

    for node_id in dependencies:
        if node_id not in finished:
            cycle = visit(node_id)
            if cycle:
                return cycle
    return sorted(dependencies)


class DependencyResolver:
    """Creation and destruction ordering for graphs and state snapshots."""

    def creation_order(self, graph: ResourceGraph) -> list[str]:
        """
        Order graph nodes for creation.

        Args:
            graph: Resource graph

        Returns:
            list[str]: Node ids, dependencies first

        Raises:
            CyclicDependencyError: If the reference graph contains a cycle
        """
        order = topological_order(graph.dependency_map())
        logger.debug(f"{__name__}:creation_order - {len(order)} nodes ordered")
        return order

    def destroy_order(self, graph: ResourceGraph) -> list[str]:
        """Reverse of the creation order: dependents before dependencies."""
        return list(reversed(self.creation_order(graph)))

    def snapshot_destroy_order(
        self,
        snapshot: StateSnapshot,
        node_ids: Iterable[str],
        graph: ResourceGraph | None = None,
    ) -> list[str]:
        """
        Order recorded resources for deletion.

        Uses the dependency lists recorded in the snapshot, so resources that
        are no longer declared can still be removed safely. Ties follow the
        graph's creation order for declared resources, then snapshot order.

        Args:
            snapshot: State snapshot holding the resources
            node_ids: Ids to delete; all must be present in the snapshot
            graph: Current graph, if any, used for the tie-break

        Returns:
            list[str]: Ids with dependents before their dependencies
        """
        wanted = set(node_ids)
        snapshot_position = {node_id: i for i, node_id in enumerate(snapshot.resources)}
        graph_position = (
            {node.id: node.position for node in graph} if graph is not None else {}
        )

        def rank(node_id: str) -> tuple[int, int]:
            if node_id in graph_position:
                return 0, graph_position[node_id]
            return 1, snapshot_position.get(node_id, len(snapshot_position))

        ordered_ids = sorted(wanted, key=rank)
        dependencies = {
            node_id: list(snapshot.resources[node_id].dependencies) for node_id in ordered_ids
        }
        return list(reversed(topological_order(dependencies)))

    @staticmethod
    def dependencies_of(graph: ResourceGraph) -> dict[str, list[str]]:
        """Partial order used by the concurrent scheduler."""
        return graph.dependency_map()
