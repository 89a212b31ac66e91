"""
Exception taxonomy for the resolver.

Validation errors are raised before any provider call is made and before the
state lock is taken. Provider and lock errors are raised while a run holds
the state snapshot.

Dependencies: none
System role: Shared error types
"""


class InfraGraphError(Exception):
    """Base class for all resolver errors."""


class ValidationError(InfraGraphError):
    """Base class for configuration errors detected before apply."""


class UndefinedVariableError(ValidationError):
    """Raised when a variable has neither an override nor a default."""

    def __init__(self, name: str, message: str | None = None) -> None:
        self.name = name
        super().__init__(message or f"Variable '{name}' is not defined and has no default")


class TypeMismatchError(ValidationError):
    """Raised when a variable value does not match its declared type."""

    def __init__(self, name: str, expected: str, value: object) -> None:
        self.name = name
        self.expected = expected
        self.value = value
        super().__init__(
            f"Variable '{name}' expects {expected}, got {type(value).__name__}: {value!r}"
        )


class InvalidCountError(ValidationError):
    """Raised when a count evaluates to a negative or non-integer value."""

    def __init__(self, address: str, value: object) -> None:
        self.address = address
        self.value = value
        super().__init__(
            f"Count for '{address}' must be a non-negative integer, got {value!r}"
        )


class InvalidReferenceError(ValidationError):
    """Raised when a reference points at an unknown or mis-indexed resource."""

    def __init__(self, source: str, target: str, reason: str) -> None:
        self.source = source
        self.target = target
        self.reason = reason
        super().__init__(f"Invalid reference from '{source}' to '{target}': {reason}")


class DuplicateResourceError(ValidationError):
    """Raised when two declarations share the same address."""

    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__(f"Resource '{address}' is declared more than once")


class CyclicDependencyError(ValidationError):
    """Raised when the reference graph contains a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = list(cycle)
        super().__init__("Dependency cycle detected: " + " -> ".join(self.cycle))


class UnknownResourceTypeError(ValidationError):
    """Raised when a declaration uses a type the provider does not manage."""

    def __init__(self, address: str, resource_type: str) -> None:
        self.address = address
        self.resource_type = resource_type
        super().__init__(f"Resource '{address}' has unsupported type '{resource_type}'")


class MissingAttributeError(ValidationError):
    """Raised when a resource omits attributes its type requires."""

    def __init__(self, address: str, missing: list[str]) -> None:
        self.address = address
        self.missing = sorted(missing)
        super().__init__(
            f"Resource '{address}' is missing required attributes: {', '.join(self.missing)}"
        )


class ProviderCallError(InfraGraphError):
    """Raised when a provider call fails terminally for one node."""

    def __init__(
        self,
        message: str,
        resource_type: str | None = None,
        operation: str | None = None,
        code: str | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.operation = operation
        self.code = code
        super().__init__(message)


class TransientProviderError(ProviderCallError):
    """Raised for retryable provider failures (throttling, timeouts)."""


class ResourceNotFoundError(ProviderCallError):
    """Raised when the provider has no resource with the given id."""


class StateBackendError(InfraGraphError):
    """Raised when the state snapshot cannot be read or written."""


class LockContentionError(InfraGraphError):
    """Raised when another run holds the state lease."""

    def __init__(self, holder: str, expires_at: str | None = None) -> None:
        self.holder = holder
        self.expires_at = expires_at
        detail = f" until {expires_at}" if expires_at else ""
        super().__init__(f"State is locked by '{holder}'{detail}")


class PartialApplyError(InfraGraphError):
    """Raised at the end of a run when one or more nodes failed."""

    def __init__(self, failures: dict[str, str], skipped: list[str] | None = None) -> None:
        self.failures = dict(failures)
        self.skipped = list(skipped or [])
        lines = [f"{node_id}: {cause}" for node_id, cause in sorted(self.failures.items())]
        message = f"{len(self.failures)} resource(s) failed:\n  " + "\n  ".join(lines)
        if self.skipped:
            message += f"\n{len(self.skipped)} dependent resource(s) skipped"
        super().__init__(message)


class ApplyCancelledError(InfraGraphError):
    """Raised after a cancelled run has persisted its in-flight results."""

    def __init__(self, completed: int, pending: list[str]) -> None:
        self.completed = completed
        self.pending = list(pending)
        super().__init__(
            f"Run cancelled after {completed} operation(s); {len(self.pending)} not started"
        )
