"""
Resource node models.

A ResourceNode is one concrete unit of infrastructure produced by expanding a
declaration. Attributes hold literals or References; references are resolved
only when the target has been realized by the provider.

Dependencies: dataclasses (stdlib)
System role: Graph arena entries
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Iterator


class NodeState(str, enum.Enum):
    """
    Node lifecycle states.

    PLANNED: Built from declarations, no provider call issued yet
    CREATING: Create call issued (or interrupted); token recorded in state
    CREATED: Realized and recorded in the state snapshot
    FAILED: Last provider call for the node failed terminally
    DESTROYING: Delete call issued
    DESTROYED: Deleted and removed from the state snapshot
    """

    PLANNED = "planned"
    CREATING = "creating"
    CREATED = "created"
    FAILED = "failed"
    DESTROYING = "destroying"
    DESTROYED = "destroyed"


@dataclass(frozen=True)
class Reference:
    """Symbolic pointer at another node's realized attribute."""

    target: str
    attribute: str = "id"

    def __str__(self) -> str:
        return f"{self.target}.{self.attribute}"


@dataclass
class ResourceNode:
    """
    One expanded resource.

    Attributes:
        id: Unique address, ``type.name`` or ``type.name[index]``
        type: Resource type tag (vpc, subnet, ...)
        name: Logical name from the declaration
        index: Count index, None for uncounted declarations
        attributes: Attribute name to literal or Reference (nested values allowed)
        position: Expansion order, used as the scheduling tie-break
        depends_on: Explicit dependency ids in addition to references
        state: Lifecycle state, mutated only by the apply engine
    """

    id: str
    type: str
    name: str
    index: int | None
    attributes: dict[str, Any]
    position: int
    depends_on: list[str] = field(default_factory=list)
    state: NodeState = NodeState.PLANNED

    def references(self) -> Iterator[tuple[str, Reference]]:
        """Yield (attribute path, Reference) pairs in attribute order."""
        yield from iter_references(self.attributes)

    def dependencies(self) -> list[str]:
        """Distinct ids this node depends on, references first."""
        seen: dict[str, None] = {}
        for _, ref in self.references():
            seen.setdefault(ref.target, None)
        for dep in self.depends_on:
            seen.setdefault(dep, None)
        return list(seen)


def iter_references(value: Any, path: str = "") -> Iterator[tuple[str, Reference]]:
    """
    Walk a nested attribute value and yield every Reference it contains.

    Args:
        value: Literal, Reference, list or dict
        path: Dotted path of ``value`` within the attribute mapping

    Yields:
        tuple[str, Reference]: Attribute path and reference
    """
    if isinstance(value, Reference):
        yield path, value
    elif isinstance(value, dict):
        for key, item in value.items():
            yield from iter_references(item, f"{path}.{key}" if path else str(key))
    elif isinstance(value, list):
        for position, item in enumerate(value):
            yield from iter_references(item, f"{path}[{position}]")
