"""
Provider client contract.

Every call is keyed by resource type and, after creation, by the
provider-assigned identifier. Implementations raise:

- TransientProviderError for throttling and timeouts (the engine retries)
- ResourceNotFoundError when the identifier does not exist
- ProviderCallError for anything else (terminal for the node)

Calls may be delivered more than once. ``create`` receives an idempotency
token and ``lookup`` must find a resource created with that token, so an
interrupted or retried create can be detected before issuing another one.

Dependencies: abc (stdlib)
System role: External API seam of the apply engine
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class ResourceSchema:
    """
    Static description of one resource type.

    Attributes:
        type: Resource type tag
        required: Attributes a declaration must set
        updatable: Attributes the provider can change in place
        taggable: Whether the type carries a ``tags`` attribute
    """

    type: str
    required: frozenset[str]
    updatable: frozenset[str]
    taggable: bool = True

    def can_update(self, attributes: set[str] | frozenset[str] | list[str]) -> bool:
        return all(name in self.updatable for name in attributes)


class ProviderClient(ABC):
    """Create/read/update/delete operations per network resource type."""

    @property
    @abstractmethod
    def schemas(self) -> Mapping[str, ResourceSchema]:
        """Resource types this provider manages."""
        raise NotImplementedError

    @abstractmethod
    def create(self, resource_type: str, attributes: dict[str, Any], token: str) -> dict[str, Any]:
        """
        Create a resource.

        Args:
            resource_type: Resource type tag
            attributes: Desired attributes with references resolved
            token: Idempotency token recorded before the call

        Returns:
            dict[str, Any]: Realized attributes, including ``id``
        """
        raise NotImplementedError

    @abstractmethod
    def read(self, resource_type: str, resource_id: str) -> dict[str, Any] | None:
        """Return realized attributes, or None if the resource does not exist."""
        raise NotImplementedError

    @abstractmethod
    def update(
        self,
        resource_type: str,
        resource_id: str,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Change updatable attributes in place.

        Returns:
            dict[str, Any]: Realized attributes after the update; ``id`` may
            differ from ``resource_id`` for types whose update re-keys them
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, resource_type: str, resource_id: str) -> None:
        """Delete a resource; raises ResourceNotFoundError if it is gone."""
        raise NotImplementedError

    @abstractmethod
    def lookup(
        self,
        resource_type: str,
        attributes: dict[str, Any],
        token: str,
    ) -> dict[str, Any] | None:
        """Find a resource created with ``token`` (read-before-create check)."""
        raise NotImplementedError
