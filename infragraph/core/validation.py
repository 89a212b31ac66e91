"""
Graph validation against provider schemas.

Runs after the graph is built and before the state lock is taken, so a bad
configuration never reaches the provider.
"""

import logging
from typing import Mapping

from infragraph.boundary.provider.base import ResourceSchema
from infragraph.core.exceptions import MissingAttributeError, UnknownResourceTypeError
from infragraph.models.graph import ResourceGraph

logger = logging.getLogger(__name__)


def validate_graph(graph: ResourceGraph, schemas: Mapping[str, ResourceSchema]) -> None:
    """
    Check every node's type and required attributes.

    Args:
        graph: Built resource graph
        schemas: Resource schemas of the provider

    Raises:
        UnknownResourceTypeError: If a node's type has no schema
        MissingAttributeError: If a node omits a required attribute or sets it to null
    """
    for node in graph:
        schema = schemas.get(node.type)
        if schema is None:
            raise UnknownResourceTypeError(node.id, node.type)
        missing = [
            name for name in schema.required
            if node.attributes.get(name) is None
        ]
        if missing:
            raise MissingAttributeError(node.id, missing)
    logger.debug(f"{__name__}:validate_graph - {len(graph)} nodes valid")
