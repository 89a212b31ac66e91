"""
Domain models for declarations, resource graphs, plans and state.

Dependencies: pydantic
System role: Shared data contracts between core, boundary and application layers
"""

from infragraph.models.configuration import (
    Configuration,
    OutputDeclaration,
    ResourceDeclaration,
)
from infragraph.models.expressions import LengthExpr, RefExpr, VarExpr
from infragraph.models.graph import Edge, ResourceGraph
from infragraph.models.output import OutputValue
from infragraph.models.plan import Action, ApplyResult, NodeOutcome, Plan, ResourceChange
from infragraph.models.resource import NodeState, Reference, ResourceNode
from infragraph.models.state import OutputState, ResourceState, StateSnapshot
from infragraph.models.variable import VariableDeclaration, VariableType

__all__ = [
    "Action",
    "ApplyResult",
    "Configuration",
    "Edge",
    "LengthExpr",
    "NodeOutcome",
    "NodeState",
    "OutputDeclaration",
    "OutputState",
    "OutputValue",
    "Plan",
    "RefExpr",
    "Reference",
    "ResourceChange",
    "ResourceDeclaration",
    "ResourceGraph",
    "ResourceNode",
    "ResourceState",
    "StateSnapshot",
    "VarExpr",
    "VariableDeclaration",
    "VariableType",
]
