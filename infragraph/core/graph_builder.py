"""
Resource graph builder.

Expands resource declarations into concrete ResourceNodes:
1. Counts are evaluated first so every address and its instance count is known.
2. Each declaration is expanded once per count index; variables are substituted,
   references to other resources are recorded as Reference objects, and
   ``${count.index}`` in string literals is replaced with the index.
3. Edges are added for every reference and explicit ``depends_on`` entry.

Nothing is resolved against the provider here; references stay symbolic until
the apply engine realizes their targets.

Dependencies: infragraph.core.variables, infragraph.models
System role: Declarations to graph expansion
"""

import logging
from typing import Any, Iterable, Mapping, Sequence

from infragraph.configs.constants import COUNT_INDEX
from infragraph.core.exceptions import (
    DuplicateResourceError,
    InvalidCountError,
    InvalidReferenceError,
)
from infragraph.core.variables import VariableStore
from infragraph.models.configuration import ResourceDeclaration
from infragraph.models.expressions import LengthExpr, RefExpr, VarExpr, parse_expression
from infragraph.models.graph import Edge, ResourceGraph
from infragraph.models.resource import Reference, ResourceNode
from infragraph.utils.naming import format_address, parse_address
from infragraph.utils.tags import create_tags

logger = logging.getLogger(__name__)

_COUNT_PLACEHOLDER = "${" + COUNT_INDEX + "}"


class GraphBuilder:
    """
    Builds a ResourceGraph from parsed declarations.

    Default tags are merged into the ``tags`` attribute of every node whose
    type is listed in ``taggable_types``.
    """

    def __init__(
        self,
        variables: VariableStore,
        default_tags: Mapping[str, str] | None = None,
        taggable_types: Iterable[str] = (),
    ) -> None:
        self._variables = variables
        self._default_tags = dict(default_tags or {})
        self._taggable_types = frozenset(taggable_types)

    def build(self, declarations: Sequence[ResourceDeclaration]) -> ResourceGraph:
        """
        Expand declarations into a graph.

        Args:
            declarations: Resource declarations in declaration order

        Returns:
            ResourceGraph: Nodes in expansion order plus reference edges

        Raises:
            DuplicateResourceError: If two declarations share an address
            InvalidCountError: If a count is negative or not an integer
            InvalidReferenceError: If a reference target cannot be resolved
            UndefinedVariableError: If a referenced variable is undefined
            TypeMismatchError: If a variable has the wrong type
        """
        counts: dict[str, int | None] = {}
        for declaration in declarations:
            if declaration.address in counts:
                raise DuplicateResourceError(declaration.address)
            counts[declaration.address] = self._evaluate_count(declaration)

        graph = ResourceGraph()
        position = 0
        for declaration in declarations:
            count = counts[declaration.address]
            indices: list[int | None] = [None] if count is None else list(range(count))
            for index in indices:
                node_id = format_address(declaration.type, declaration.name, index)
                attributes = self._expand(declaration.attributes, node_id, index, counts)
                if declaration.type in self._taggable_types:
                    attributes["tags"] = create_tags(
                        node_id, self._default_tags, attributes.get("tags")
                    )
                depends_on: list[str] = []
                for dependency in declaration.depends_on:
                    depends_on.extend(self._dependency_ids(node_id, dependency, counts))
                graph.add_node(
                    ResourceNode(
                        id=node_id,
                        type=declaration.type,
                        name=declaration.name,
                        index=index,
                        attributes=attributes,
                        position=position,
                        depends_on=depends_on,
                    )
                )
                position += 1

        for node in graph:
            for path, ref in node.references():
                graph.add_edge(Edge(source=node.id, target=ref.target, attribute=path))
            for dependency in node.depends_on:
                graph.add_edge(Edge(source=node.id, target=dependency, attribute="depends_on"))

        logger.info(
            f"{__name__}:build - Expanded {len(declarations)} declarations "
            f"into {len(graph)} nodes and {len(graph.edges)} edges"
        )
        return graph

    def _evaluate_count(self, declaration: ResourceDeclaration) -> int | None:
        raw = declaration.count
        if raw is None:
            return None

        expression = parse_expression(raw)
        if isinstance(expression, LengthExpr):
            value = self._variable_value(expression.length, declaration.address, None)
            if not isinstance(value, (list, dict)):
                raise InvalidCountError(declaration.address, value)
            return len(value)
        if isinstance(expression, VarExpr):
            value = self._variable_value(expression, declaration.address, None)
        elif expression is None:
            value = raw
        else:
            raise InvalidCountError(declaration.address, raw)

        # bool is an int subclass; reject it along with floats and strings
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InvalidCountError(declaration.address, value)
        return value

    def _expand(
        self,
        value: Any,
        node_id: str,
        index: int | None,
        counts: Mapping[str, int | None],
    ) -> Any:
        if isinstance(value, str):
            if _COUNT_PLACEHOLDER in value:
                if index is None:
                    raise InvalidReferenceError(
                        node_id, COUNT_INDEX, "count.index used outside a counted resource"
                    )
                return value.replace(_COUNT_PLACEHOLDER, str(index))
            return value
        if isinstance(value, list):
            return [self._expand(item, node_id, index, counts) for item in value]
        if isinstance(value, dict):
            expression = parse_expression(value)
            if isinstance(expression, VarExpr):
                return self._variable_value(expression, node_id, index)
            if isinstance(expression, RefExpr):
                return self._reference(expression, node_id, index, counts)
            return {
                key: self._expand(item, node_id, index, counts)
                for key, item in value.items()
            }
        return value

    def _variable_value(self, expression: VarExpr, node_id: str, index: int | None) -> Any:
        value = self._variables.resolve(expression.var)
        selector = expression.index
        if selector is None:
            return value
        if selector == COUNT_INDEX:
            if index is None:
                raise InvalidReferenceError(
                    node_id, f"var.{expression.var}", "count.index used outside a counted resource"
                )
            selector = index
        try:
            return value[selector]
        except (IndexError, KeyError, TypeError) as e:
            raise InvalidReferenceError(
                node_id, f"var.{expression.var}[{selector!r}]", "no such element"
            ) from e

    def _reference(
        self,
        expression: RefExpr,
        node_id: str,
        index: int | None,
        counts: Mapping[str, int | None],
    ) -> Reference:
        try:
            target_type, target_name, inline_index = parse_address(expression.ref)
        except ValueError as e:
            raise InvalidReferenceError(node_id, expression.ref, str(e)) from e

        selector: int | str | None = expression.index
        if inline_index is not None:
            if selector is not None:
                raise InvalidReferenceError(node_id, expression.ref, "index given twice")
            selector = inline_index
        if selector == COUNT_INDEX:
            if index is None:
                raise InvalidReferenceError(
                    node_id, expression.ref, "count.index used outside a counted resource"
                )
            selector = index

        address = format_address(target_type, target_name)
        target_id = self._instance_id(node_id, address, selector, counts)
        return Reference(target=target_id, attribute=expression.attribute)

    def _dependency_ids(
        self,
        node_id: str,
        dependency: str,
        counts: Mapping[str, int | None],
    ) -> list[str]:
        try:
            dep_type, dep_name, dep_index = parse_address(dependency)
        except ValueError as e:
            raise InvalidReferenceError(node_id, dependency, str(e)) from e
        address = format_address(dep_type, dep_name)
        if address not in counts:
            raise InvalidReferenceError(node_id, dependency, "no such resource")
        count = counts[address]
        if dep_index is None and count is not None:
            # depends_on a counted declaration means every instance
            return [format_address(dep_type, dep_name, i) for i in range(count)]
        return [self._instance_id(node_id, address, dep_index, counts)]

    @staticmethod
    def _instance_id(
        node_id: str,
        address: str,
        selector: int | str | None,
        counts: Mapping[str, int | None],
    ) -> str:
        if address not in counts:
            raise InvalidReferenceError(node_id, address, "no such resource")
        count = counts[address]
        if count is None:
            if selector is not None:
                raise InvalidReferenceError(node_id, address, "target is not counted")
            return address
        if selector is None:
            raise InvalidReferenceError(node_id, address, "counted target requires an index")
        if isinstance(selector, bool) or not isinstance(selector, int):
            raise InvalidReferenceError(node_id, address, f"invalid index {selector!r}")
        if not 0 <= selector < count:
            raise InvalidReferenceError(
                node_id, address, f"index {selector} out of range for count {count}"
            )
        return f"{address}[{selector}]"
