# gradleflow/infra/flow/variables.py
"""
Variable references and values.

Text may reference variables as ``${name}``. Resolution substitutes declared
variables and reports the names it could not resolve; unknown references are
left untouched in the text.
"""
from __future__ import annotations

import dataclasses
import math
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

from gradleflow.infra.flow.models import Variable, VariableType

VARIABLE_PATTERN = re.compile(r"\$\{([a-zA-Z_][a-zA-Z0-9_]*)\}")
_NAME_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

VariableSource = Union[Iterable[Variable], Mapping[str, str]]


@dataclass(frozen=True)
class VariableResolution:
    """
    Result of resolving ``${name}`` references in a string.

    Attributes:
        resolved: Text with every declared reference substituted
        unresolved: Referenced names with no declaration, in order of first use
    """
    resolved: str
    unresolved: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ValueCheck:
    valid: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class ReferenceCheck:
    valid: bool
    missing: List[str] = field(default_factory=list)


def _as_mapping(variables: VariableSource) -> Mapping[str, str]:
    if isinstance(variables, Mapping):
        return variables
    return {v.name: v.effective_value for v in variables}


# ============================================================
#                   REFERENCES
# ============================================================
def extract_variable_references(text: str) -> List[str]:
    """
    List the distinct variable names referenced in ``text``, in order of first use.
    """
    names: List[str] = []
    for match in VARIABLE_PATTERN.finditer(text or ""):
        if match.group(1) not in names:
            names.append(match.group(1))
    return names


def has_variable_references(text: str) -> bool:
    return VARIABLE_PATTERN.search(text or "") is not None


def format_variable_reference(name: str) -> str:
    return "${" + name + "}"


def resolve_variables(text: str, variables: VariableSource) -> VariableResolution:
    """
    Substitute ``${name}`` references with variable values.

    Args:
        text: Text containing references
        variables: Declared variables, or a plain name -> value mapping

    Returns:
        VariableResolution with the substituted text and the unresolved names

    Example:
        >>> resolve_variables("${foo}/out", {"foo": "build"}).resolved
        'build/out'
    """
    values = _as_mapping(variables)
    unresolved: List[str] = []

    def substitute(match: re.Match) -> str:
        name = match.group(1)
        if name in values:
            return values[name]
        if name not in unresolved:
            unresolved.append(name)
        return match.group(0)

    return VariableResolution(VARIABLE_PATTERN.sub(substitute, text or ""), unresolved)


def find_variables_in_object(obj: Any) -> List[str]:
    """
    Recursively collect variable references in strings nested inside ``obj``.

    Walks dataclasses, mappings, lists and tuples.
    """
    found: List[str] = []

    def walk(value: Any) -> None:
        if isinstance(value, str):
            for name in extract_variable_references(value):
                if name not in found:
                    found.append(name)
        elif dataclasses.is_dataclass(value) and not isinstance(value, type):
            for f in dataclasses.fields(value):
                walk(getattr(value, f.name))
        elif isinstance(value, Mapping):
            for item in value.values():
                walk(item)
        elif isinstance(value, (list, tuple, set, frozenset)):
            for item in value:
                walk(item)

    walk(obj)
    return found


def validate_variable_references(obj: Any, variables: Iterable[Variable]) -> ReferenceCheck:
    """
    Check that every variable referenced inside ``obj`` is declared.

    Returns:
        ReferenceCheck listing the missing names
    """
    declared = {v.name for v in variables}
    missing = [name for name in find_variables_in_object(obj) if name not in declared]
    return ReferenceCheck(not missing, missing)


# ============================================================
#                   NAMES AND VALUES
# ============================================================
def is_valid_variable_name(name: str) -> bool:
    return bool(_NAME_PATTERN.match(name or ""))


def validate_variable_value(value: str, type: VariableType) -> ValueCheck:
    """
    Check a raw value against a declared variable type.

    Empty values are always accepted. Numbers must parse as finite floats,
    booleans must be ``true`` or ``false`` (case-insensitive). Lists are
    comma-separated and paths/strings are free text.

    Args:
        value: Raw value
        type: Declared variable type

    Returns:
        ValueCheck with an error message when invalid
    """
    type = VariableType(type)
    if value == "":
        return ValueCheck(True)
    if type is VariableType.NUMBER:
        try:
            number = float(value)
        except ValueError:
            return ValueCheck(False, "Must be a valid number")
        if math.isnan(number):
            return ValueCheck(False, "Must be a valid number")
        return ValueCheck(True)
    if type is VariableType.BOOLEAN and value.lower() not in ("true", "false"):
        return ValueCheck(False, "Must be true or false")
    return ValueCheck(True)


def split_list_value(value: str) -> List[str]:
    """Split a list-typed value on commas, trimming blanks."""
    return [item.strip() for item in (value or "").split(",") if item.strip()]


def default_system_variables() -> Tuple[Variable, ...]:
    """
    Built-in variables every graph starts with.

    They cannot be renamed or removed and are never written to the script.
    """
    return (
        Variable(id="sys_projectDir", name="projectDir", type=VariableType.PATH,
                 default_value=".", is_system=True, description="Project root directory"),
        Variable(id="sys_buildDir", name="buildDir", type=VariableType.PATH,
                 default_value="build", is_system=True, description="Build output directory"),
        Variable(id="sys_version", name="version", type=VariableType.STRING,
                 default_value="unspecified", is_system=True, description="Project version"),
    )
