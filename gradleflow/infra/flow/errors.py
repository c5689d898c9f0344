# gradleflow/infra/flow/errors.py
"""
Exception hierarchy for the flow package.

Structural errors are raised synchronously by graph mutations and leave the
graph unchanged. Execution failures are never raised; they are recorded on
the node's result.
"""
from __future__ import annotations

from typing import List, Optional


class GradleFlowError(Exception):
    """Base class for all errors raised by the flow package."""


# ============================================================
#                   STRUCTURAL VALIDATION
# ============================================================
class StructuralValidationError(GradleFlowError):
    """A mutation would break a structural invariant of the graph."""


class UnknownNodeError(StructuralValidationError, KeyError):
    def __init__(self, node_id: str):
        super().__init__(f"Task not found: {node_id}")
        self.node_id = node_id

    def __str__(self) -> str:
        return self.args[0]


class DuplicateTaskNameError(StructuralValidationError):
    def __init__(self, name: str):
        super().__init__(f"Duplicate task name: \"{name}\"")
        self.name = name


class SelfLoopError(StructuralValidationError):
    def __init__(self, node_id: str):
        super().__init__("Cannot connect a task to itself")
        self.node_id = node_id


class DuplicateEdgeError(StructuralValidationError):
    def __init__(self, source: str, target: str, kind: str):
        super().__init__(f"Dependency already exists: {source} -[{kind}]-> {target}")
        self.source = source
        self.target = target
        self.kind = kind


class CycleError(StructuralValidationError):
    """
    Adding a hard dependency would create a cycle.

    Attributes:
        cycle: Node ids along the detected cycle, when known
    """

    def __init__(self, message: str = "This connection would create a circular dependency",
                 cycle: Optional[List[str]] = None):
        super().__init__(message)
        self.cycle = cycle or []


class MissingRequiredFieldError(StructuralValidationError):
    def __init__(self, task_name: str, field: str, message: str):
        super().__init__(f"Task \"{task_name}\": {message}")
        self.task_name = task_name
        self.field = field


class InvalidNameError(StructuralValidationError):
    pass


class DuplicateGroupNameError(StructuralValidationError):
    def __init__(self, name: str):
        super().__init__(f"A group named \"{name}\" already exists")
        self.name = name


class UnknownGroupError(StructuralValidationError, KeyError):
    def __init__(self, group_id: str):
        super().__init__(f"Group not found: {group_id}")
        self.group_id = group_id

    def __str__(self) -> str:
        return self.args[0]


class DuplicateVariableError(StructuralValidationError):
    def __init__(self, name: str):
        super().__init__(f"Variable \"{name}\" already exists")
        self.name = name


class UnknownVariableError(StructuralValidationError, KeyError):
    def __init__(self, name: str):
        super().__init__(f"Variable not found: {name}")
        self.name = name

    def __str__(self) -> str:
        return self.args[0]


class InvalidVariableValueError(StructuralValidationError):
    pass


class SystemVariableError(StructuralValidationError):
    def __init__(self, name: str, action: str):
        super().__init__(f"System variable \"{name}\" cannot be {action}")
        self.name = name


# ============================================================
#                   PARSING AND EXECUTION
# ============================================================
class ScriptParseError(GradleFlowError):
    """
    A single registration block could not be read.

    Recorded in ParseResult.errors; never raised out of parse_script.
    """

    def __init__(self, message: str, task_name: Optional[str] = None, line: Optional[int] = None):
        super().__init__(message)
        self.task_name = task_name
        self.line = line

    def __str__(self) -> str:
        prefix = f"Task \"{self.task_name}\": " if self.task_name else ""
        suffix = f" (line {self.line})" if self.line else ""
        return f"{prefix}{self.args[0]}{suffix}"


class RunInProgressError(GradleFlowError):
    def __init__(self):
        super().__init__("An execution is already in progress")


class RunNotActiveError(GradleFlowError):
    def __init__(self, action: str):
        super().__init__(f"Cannot {action}: no execution is in progress")
        self.action = action
