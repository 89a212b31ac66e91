"""
Expression models embedded in declarations.

Attribute values, counts and outputs are plain JSON. A JSON object whose keys
match one of the shapes below is read as an expression instead of a literal:

- ``{"var": "azs", "index": "count.index"}``: variable value, optionally one element
- ``{"ref": "vpc.main", "attribute": "id"}``: another resource's realized attribute
- ``{"length": {"var": "public_subnet_cidrs"}}``: length of a list variable (counts only)

Dependencies: pydantic
System role: Symbolic values resolved by the graph builder
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError


IndexValue = int | str | None


class VarExpr(BaseModel):
    """Reference to a variable, optionally selecting one element."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    var: str = Field(description="Variable name")
    index: IndexValue = Field(
        default=None,
        description="List index, map key, or 'count.index'",
    )


class RefExpr(BaseModel):
    """Reference to another resource's attribute."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    ref: str = Field(description="Target address, e.g. 'subnet.public' or 'subnet.public[0]'")
    attribute: str = Field(default="id", description="Attribute of the realized target")
    index: IndexValue = Field(
        default=None,
        description="Instance index, 'count.index', or '*' for every instance",
    )


class LengthExpr(BaseModel):
    """Length of a list or map variable."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    length: VarExpr


_SHAPES: tuple[tuple[str, type[BaseModel]], ...] = (
    ("ref", RefExpr),
    ("var", VarExpr),
    ("length", LengthExpr),
)


def parse_expression(value: Any) -> VarExpr | RefExpr | LengthExpr | None:
    """
    Interpret a JSON value as an expression.

    Args:
        value: Raw attribute, count or output value

    Returns:
        The parsed expression, or None when the value is a literal
    """
    if not isinstance(value, dict):
        return None
    for key, model in _SHAPES:
        if key in value:
            try:
                return model.model_validate(value)
            except ValidationError:
                # A literal map that happens to use the key, e.g. a tag named "var"
                return None
    return None
