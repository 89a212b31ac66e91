"""
Tag factory for network resources.

Provides consistent tagging for cost allocation and resource management.
"""

from typing import Any, Mapping

from infragraph.configs.constants import DEFAULT_TAGS


def create_tags(
    resource_name: str,
    default_tags: Mapping[str, str] | None = None,
    extra_tags: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Create a standard tag set for a resource.

    Declared tags win over defaults; ``Name`` defaults to the node address.

    Args:
        resource_name: Name of the resource
        default_tags: Stack-wide tags from the configuration
        extra_tags: Tags declared on the resource itself

    Returns:
        Dictionary of tags
    """
    tags: dict[str, Any] = {
        **DEFAULT_TAGS,
        **(default_tags or {}),
        "Name": resource_name,
    }
    tags.update(extra_tags or {})
    return tags


def merge_tags(
    base_tags: Mapping[str, Any],
    *additional_tags: Mapping[str, Any],
) -> dict[str, Any]:
    """
    Merge multiple tag dictionaries.

    Args:
        base_tags: Base tag dictionary
        *additional_tags: Additional tag dictionaries to merge

    Returns:
        Merged tag dictionary
    """
    result = dict(base_tags)
    for tags in additional_tags:
        result.update(tags)
    return result
