"""
Output resolver.

Reads each declared output from the state snapshot after apply. An output
whose source node never reached ``created`` is reported as unresolved rather
than failing the run, so outputs of the healthy part of a partial apply are
still available.

Dependencies: infragraph.models
System role: Final stage of every apply
"""

import logging
from typing import Iterable

from infragraph.configs.constants import COUNT_INDEX
from infragraph.models.configuration import OutputDeclaration
from infragraph.models.graph import ResourceGraph
from infragraph.models.output import OutputValue
from infragraph.models.state import OutputState, StateSnapshot
from infragraph.utils.naming import format_address, parse_address

logger = logging.getLogger(__name__)

SPLAT = "*"


class OutputResolver:
    """Resolves output declarations against a snapshot."""

    def resolve(
        self,
        outputs: Iterable[OutputDeclaration],
        graph: ResourceGraph,
        snapshot: StateSnapshot,
    ) -> dict[str, OutputValue]:
        """
        Resolve every output.

        ``index`` selects one instance of a counted resource; ``"*"`` collects
        the attribute of every instance into a list, resolved only when all
        instances are. A counted resource with zero instances gives an empty
        list.

        Args:
            outputs: Output declarations
            graph: Graph used to enumerate counted instances
            snapshot: Snapshot after apply

        Returns:
            dict[str, OutputValue]: Output name to value, in declaration order
        """
        resolved: dict[str, OutputValue] = {}
        for output in outputs:
            resolved[output.name] = self._resolve_one(output, graph, snapshot)
        unresolved = [name for name, value in resolved.items() if not value.resolved]
        if unresolved:
            logger.warning(f"{__name__}:resolve - Unresolved outputs: {', '.join(unresolved)}")
        return resolved

    def record(self, values: dict[str, OutputValue], snapshot: StateSnapshot) -> None:
        """Store resolved outputs in the snapshot (caller persists it)."""
        snapshot.outputs = {
            name: OutputState(value=value.value, resolved=value.resolved, sensitive=value.sensitive)
            for name, value in values.items()
        }

    def invalidate(self, snapshot: StateSnapshot) -> None:
        """
        Mark every recorded output unresolved.

        Used after a partial teardown when the configuration no longer builds,
        so there is no graph to re-resolve against.
        """
        snapshot.outputs = {
            name: OutputState(value=None, resolved=False, sensitive=state.sensitive)
            for name, state in snapshot.outputs.items()
        }
        if snapshot.outputs:
            logger.warning(f"{__name__}:invalidate - Outputs unresolved: {', '.join(snapshot.outputs)}")

    @staticmethod
    def from_snapshot(snapshot: StateSnapshot) -> dict[str, OutputValue]:
        """Outputs as recorded by the last apply."""
        return {
            name: OutputValue(
                name=name,
                value=state.value,
                resolved=state.resolved,
                sensitive=state.sensitive,
            )
            for name, state in snapshot.outputs.items()
        }

    def _resolve_one(
        self,
        output: OutputDeclaration,
        graph: ResourceGraph,
        snapshot: StateSnapshot,
    ) -> OutputValue:
        expression = output.value
        attribute = expression.attribute
        try:
            target_type, target_name, inline_index = parse_address(expression.ref)
        except ValueError:
            return self._unresolved(output, expression.ref)
        index = inline_index if inline_index is not None else expression.index
        address = format_address(target_type, target_name)

        if index == SPLAT:
            instances = graph.instances_of(address)
            values = []
            for node in instances:
                found, value = snapshot.realized_value(node.id, attribute)
                if not found:
                    return self._unresolved(output, f"{address}[*].{attribute}")
                values.append(value)
            return OutputValue(
                name=output.name,
                value=values,
                resolved=True,
                sensitive=output.sensitive,
                source=f"{address}[*].{attribute}",
            )

        if index == COUNT_INDEX or (index is not None and not isinstance(index, int)):
            return self._unresolved(output, f"{address}[{index}].{attribute}")
        node_id = format_address(target_type, target_name, index)
        source = f"{node_id}.{attribute}"
        found, value = snapshot.realized_value(node_id, attribute)
        if not found:
            return self._unresolved(output, source)
        return OutputValue(
            name=output.name,
            value=value,
            resolved=True,
            sensitive=output.sensitive,
            source=source,
        )

    @staticmethod
    def _unresolved(output: OutputDeclaration, source: str) -> OutputValue:
        return OutputValue(
            name=output.name,
            value=None,
            resolved=False,
            sensitive=output.sensitive,
            source=source,
        )
