"""
Variable store.

Resolves named configuration values (region, CIDR blocks, AZ lists) with
override > default precedence and checks them against their declared type.
Values are resolved once per run and handed out as copies.

Dependencies: infragraph.models.variable
System role: Leaf of the resolve pipeline
"""

import copy
import json
import logging
import os
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from infragraph.core.exceptions import TypeMismatchError, UndefinedVariableError
from infragraph.models.variable import VariableDeclaration, VariableType

logger = logging.getLogger(__name__)

ENV_PREFIX = "INFRAGRAPH_VAR_"


def _matches(declared: VariableType, value: Any) -> bool:
    if declared == VariableType.STRING:
        return isinstance(value, str)
    if declared == VariableType.NUMBER:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if declared == VariableType.BOOL:
        return isinstance(value, bool)
    if declared == VariableType.LIST:
        return isinstance(value, list)
    if declared == VariableType.MAP:
        return isinstance(value, dict) and all(isinstance(key, str) for key in value)
    return False


class VariableStore:
    """
    Holds variable declarations and overrides for one run.

    Overrides for variables that are not declared are rejected up front so a
    typo in ``--var`` fails before any provider call.
    """

    def __init__(
        self,
        declarations: Iterable[VariableDeclaration],
        overrides: Mapping[str, Any] | None = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            declarations: Declared variables
            overrides: Values that take precedence over defaults

        Raises:
            UndefinedVariableError: If an override names an undeclared variable
        """
        self._declarations: dict[str, VariableDeclaration] = {}
        for declaration in declarations:
            self._declarations[declaration.name] = declaration

        self._overrides = dict(overrides or {})
        for name in self._overrides:
            if name not in self._declarations:
                raise UndefinedVariableError(
                    name, f"Override given for undeclared variable '{name}'"
                )

        self._resolved: dict[str, Any] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._declarations

    @property
    def names(self) -> list[str]:
        return list(self._declarations)

    def resolve(self, name: str) -> Any:
        """
        Resolve a variable value.

        Args:
            name: Variable name

        Returns:
            Any: A copy of the resolved value

        Raises:
            UndefinedVariableError: If neither an override nor a default exists
            TypeMismatchError: If the value does not match the declared type
        """
        if name not in self._resolved:
            self._resolved[name] = self._resolve_uncached(name)
        return copy.deepcopy(self._resolved[name])

    def resolve_all(self) -> Mapping[str, Any]:
        """
        Resolve every declared variable.

        Returns:
            Mapping[str, Any]: Read-only view of name to value

        Raises:
            UndefinedVariableError: On the first variable that cannot be resolved
            TypeMismatchError: On the first type conflict
        """
        values = {name: self.resolve(name) for name in self._declarations}
        return MappingProxyType(values)

    def _resolve_uncached(self, name: str) -> Any:
        declaration = self._declarations.get(name)
        if declaration is None:
            raise UndefinedVariableError(name)

        if name in self._overrides:
            value = self._coerce(declaration, self._overrides[name])
            source = "override"
        elif declaration.has_default:
            value = declaration.default
            source = "default"
        else:
            raise UndefinedVariableError(name)

        if not _matches(declaration.type, value):
            raise TypeMismatchError(name, declaration.type.value, value)

        logger.debug(f"{__name__}:resolve - {name} resolved from {source}")
        return value

    @staticmethod
    def _coerce(declaration: VariableDeclaration, value: Any) -> Any:
        """Parse string overrides for non-string variables as JSON."""
        if declaration.type == VariableType.STRING or not isinstance(value, str):
            return value
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise TypeMismatchError(declaration.name, declaration.type.value, value) from e


def parse_var_assignments(assignments: Iterable[str]) -> dict[str, str]:
    """
    Parse ``name=value`` pairs from the command line.

    Args:
        assignments: Raw ``--var`` arguments

    Returns:
        dict[str, str]: Name to raw string value

    Raises:
        ValueError: If an assignment has no '=' or an empty name
    """
    parsed: dict[str, str] = {}
    for assignment in assignments:
        name, sep, value = assignment.partition("=")
        name = name.strip()
        if not sep or not name:
            raise ValueError(f"Expected NAME=VALUE, got {assignment!r}")
        parsed[name] = value
    return parsed


def load_var_file(path: str | Path) -> dict[str, Any]:
    """
    Load overrides from a JSON object file.

    Args:
        path: Path to the var-file

    Returns:
        dict[str, Any]: Name to value

    Raises:
        ValueError: If the file does not contain a JSON object
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Var-file {path} must contain a JSON object")
    return data


def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """
    Collect ``INFRAGRAPH_VAR_<name>`` environment overrides.

    Args:
        environ: Environment mapping (defaults to os.environ)

    Returns:
        dict[str, str]: Name to raw string value
    """
    source = os.environ if environ is None else environ
    return {
        key[len(ENV_PREFIX):]: value
        for key, value in source.items()
        if key.startswith(ENV_PREFIX) and len(key) > len(ENV_PREFIX)
    }


def collect_overrides(
    var_file: str | Path | None = None,
    assignments: Iterable[str] = (),
    environ: Mapping[str, str] | None = None,
    declared: Iterable[str] | None = None,
) -> dict[str, Any]:
    """
    Merge override sources; later sources win.

    Precedence (lowest to highest): var-file, environment, ``--var`` flags.
    Environment entries for undeclared names are ignored, since the shell may
    carry variables for other stacks.

    Args:
        var_file: Optional JSON var-file
        assignments: ``name=value`` strings from the command line
        environ: Environment mapping (defaults to os.environ)
        declared: Declared variable names used to filter environment entries

    Returns:
        dict[str, Any]: Merged overrides
    """
    overrides: dict[str, Any] = {}
    if var_file is not None:
        overrides.update(load_var_file(var_file))
    from_env = env_overrides(environ)
    if declared is not None:
        names = set(declared)
        from_env = {name: value for name, value in from_env.items() if name in names}
    overrides.update(from_env)
    overrides.update(parse_var_assignments(assignments))
    return overrides
