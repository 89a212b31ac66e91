"""
Variable declaration models.

Dependencies: pydantic
System role: Typed configuration parameters (region, CIDR blocks, AZ lists)
"""

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class VariableType(str, enum.Enum):
    """
    Declared variable types.

    STRING: Plain string value (region, CIDR block)
    NUMBER: Integer or float, never a bool
    BOOL: true/false flag
    LIST: Ordered list (availability zones, subnet CIDRs)
    MAP: String-keyed mapping (tags)
    """

    STRING = "string"
    NUMBER = "number"
    BOOL = "bool"
    LIST = "list"
    MAP = "map"


class VariableDeclaration(BaseModel):
    """A named input value with an optional default."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1, description="Variable name")
    type: VariableType = Field(default=VariableType.STRING, description="Declared type")
    default: Any = Field(default=None, description="Value used when no override is given")
    description: str = Field(default="", description="Human readable description")

    @property
    def has_default(self) -> bool:
        """True when the declaration sets ``default``, even to null."""
        return "default" in self.model_fields_set
