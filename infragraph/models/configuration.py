"""
Parsed declarative input.

The front-end hands the resolver a JSON document with variables, resources,
outputs and default tags. These models validate its shape; expressions inside
attribute values are interpreted later by the graph builder.

Dependencies: pydantic
System role: Declarative input contract
"""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from infragraph.models.expressions import RefExpr
from infragraph.models.variable import VariableDeclaration


class ResourceDeclaration(BaseModel):
    """One resource block, possibly repeated by ``count``."""

    model_config = ConfigDict(extra="forbid")

    type: str = Field(min_length=1, description="Resource type (vpc, subnet, ...)")
    name: str = Field(min_length=1, description="Logical name, unique per type")
    count: Any = Field(
        default=None,
        description="Repetition: integer, {'var': ...} or {'length': {'var': ...}}",
    )
    attributes: dict[str, Any] = Field(default_factory=dict)
    depends_on: list[str] = Field(
        default_factory=list,
        description="Explicit dependencies by address",
    )

    @property
    def address(self) -> str:
        return f"{self.type}.{self.name}"


class OutputDeclaration(BaseModel):
    """Named value exported after apply."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    value: RefExpr
    description: str = ""
    sensitive: bool = False


class Configuration(BaseModel):
    """Complete declarative input for one network stack."""

    model_config = ConfigDict(extra="forbid")

    variables: list[VariableDeclaration] = Field(default_factory=list)
    resources: list[ResourceDeclaration] = Field(default_factory=list)
    outputs: list[OutputDeclaration] = Field(default_factory=list)
    default_tags: dict[str, str] = Field(
        default_factory=dict,
        description="Tags merged into every taggable resource",
    )

    @classmethod
    def from_file(cls, path: str | Path) -> "Configuration":
        """
        Load and validate a configuration JSON file.

        Args:
            path: Path to the configuration document

        Returns:
            Configuration: Validated configuration

        Raises:
            FileNotFoundError: If the file does not exist
            pydantic.ValidationError: If the document shape is invalid
        """
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))
