"""
Core resolver logic.

Contains the exception hierarchy and the resolve pipeline: variable store,
graph builder, dependency resolver, planner, apply engine and output resolver.
"""

from infragraph.core.exceptions import (
    ApplyCancelledError,
    CyclicDependencyError,
    DuplicateResourceError,
    InfraGraphError,
    InvalidCountError,
    InvalidReferenceError,
    LockContentionError,
    MissingAttributeError,
    PartialApplyError,
    ProviderCallError,
    ResourceNotFoundError,
    StateBackendError,
    TransientProviderError,
    TypeMismatchError,
    UndefinedVariableError,
    UnknownResourceTypeError,
    ValidationError,
)

# Resolve pipeline
from infragraph.core.variables import VariableStore
from infragraph.core.graph_builder import GraphBuilder
from infragraph.core.dependency_resolver import DependencyResolver
from infragraph.core.planner import Planner
from infragraph.core.apply_engine import ApplyEngine
from infragraph.core.output_resolver import OutputResolver

__all__ = [
    # Exceptions
    "ApplyCancelledError",
    "CyclicDependencyError",
    "DuplicateResourceError",
    "InfraGraphError",
    "InvalidCountError",
    "InvalidReferenceError",
    "LockContentionError",
    "MissingAttributeError",
    "PartialApplyError",
    "ProviderCallError",
    "ResourceNotFoundError",
    "StateBackendError",
    "TransientProviderError",
    "TypeMismatchError",
    "UndefinedVariableError",
    "UnknownResourceTypeError",
    "ValidationError",
    # Resolve pipeline
    "ApplyEngine",
    "DependencyResolver",
    "GraphBuilder",
    "OutputResolver",
    "Planner",
    "VariableStore",
]
