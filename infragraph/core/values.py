"""
Attribute value helpers.

Resolves References inside nested attribute values against the state
snapshot and compares desired attributes with the last applied ones.
A reference whose target is not realized yet resolves to UNKNOWN; plans show
such values as ``(known after apply)``.

Dependencies: infragraph.models
System role: Shared by the planner, apply engine and output resolver
"""

from typing import Any, Callable, Mapping

from infragraph.models.resource import Reference


class _Unknown:
    """Placeholder for a value that is only known after apply."""

    _instance: "_Unknown | None" = None

    def __new__(cls) -> "_Unknown":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "(known after apply)"

    def __deepcopy__(self, memo: dict) -> "_Unknown":
        return self


UNKNOWN = _Unknown()

Resolver = Callable[[Reference], Any]


def substitute_references(value: Any, resolve: Resolver) -> Any:
    """
    Replace every Reference in a nested value.

    Args:
        value: Literal, Reference, list or dict
        resolve: Called with each Reference; its return value replaces it

    Returns:
        Any: A new value with no References left
    """
    if isinstance(value, Reference):
        return resolve(value)
    if isinstance(value, dict):
        return {key: substitute_references(item, resolve) for key, item in value.items()}
    if isinstance(value, list):
        return [substitute_references(item, resolve) for item in value]
    return value


def contains_unknown(value: Any) -> bool:
    if value is UNKNOWN:
        return True
    if isinstance(value, dict):
        return any(contains_unknown(item) for item in value.values())
    if isinstance(value, list):
        return any(contains_unknown(item) for item in value)
    return False


def diff_keys(desired: Mapping[str, Any], applied: Mapping[str, Any]) -> list[str]:
    """
    Top-level attribute names whose values differ.

    An UNKNOWN anywhere inside a desired value counts as a change, since the
    realized value cannot be compared until apply.

    Args:
        desired: Attributes the configuration asks for
        applied: Attributes recorded by the last apply

    Returns:
        list[str]: Changed names, desired order first, then removed names
    """
    changed = [
        name for name, value in desired.items()
        if contains_unknown(value) or name not in applied or applied[name] != value
    ]
    changed.extend(name for name in applied if name not in desired)
    return changed


def render_value(value: Any) -> str:
    """Human readable rendering used by plan output."""
    if value is UNKNOWN:
        return "(known after apply)"
    if isinstance(value, str):
        return f'"{value}"'
    if isinstance(value, dict):
        inner = ", ".join(f"{key} = {render_value(item)}" for key, item in value.items())
        return "{" + inner + "}"
    if isinstance(value, list):
        return "[" + ", ".join(render_value(item) for item in value) + "]"
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)
