# gradleflow/infra/flow/conditions.py
"""
Guard condition evaluation.

Operands are resolved from variables, the environment, project properties or
literals (absent values resolve to the empty string). Evaluation never
raises: an invalid regular expression or a non-numeric operand simply makes
the comparison false.
"""
from __future__ import annotations

import logging
import math
import os
import re
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from gradleflow.infra.flow.models import (
    Condition,
    ConditionLogic,
    ConditionMode,
    ConditionOperator,
    OperandSource,
    TaskCondition,
    Variable,
)

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")

SKIP_REASON_ONLY_IF = "Condition not met (onlyIf evaluated to false)"
SKIP_REASON_SKIP_IF = "Skipped due to skipIf condition"

OPERATOR_LABELS = {
    ConditionOperator.EQUALS: "equals",
    ConditionOperator.NOT_EQUALS: "does not equal",
    ConditionOperator.CONTAINS: "contains",
    ConditionOperator.NOT_CONTAINS: "does not contain",
    ConditionOperator.STARTS_WITH: "starts with",
    ConditionOperator.ENDS_WITH: "ends with",
    ConditionOperator.MATCHES: "matches regex",
    ConditionOperator.GREATER_THAN: "is greater than",
    ConditionOperator.LESS_THAN: "is less than",
    ConditionOperator.GREATER_OR_EQUAL: "is greater or equal to",
    ConditionOperator.LESS_OR_EQUAL: "is less or equal to",
    ConditionOperator.IS_EMPTY: "is empty",
    ConditionOperator.IS_NOT_EMPTY: "is not empty",
    ConditionOperator.IS_TRUE: "is true",
    ConditionOperator.IS_FALSE: "is false",
}

SOURCE_LABELS = {
    OperandSource.VARIABLE: "Variable",
    OperandSource.ENVIRONMENT: "Environment",
    OperandSource.PROPERTY: "Property",
    OperandSource.LITERAL: "Value",
}


# ============================================================
#                   EVALUATION CONTEXT
# ============================================================
@dataclass(frozen=True)
class EvaluationContext:
    """
    Values visible to condition operands.

    Attributes:
        variables: Variable name -> current value
        environment: Environment variables
        properties: Project properties (-P flags, gradle.properties)
    """
    variables: Mapping[str, str] = field(default_factory=dict)
    environment: Mapping[str, str] = field(default_factory=dict)
    properties: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        variables: Iterable[Variable] = (),
        environment: Optional[Mapping[str, str]] = None,
        properties: Optional[Mapping[str, str]] = None,
    ) -> EvaluationContext:
        """
        Build a context from declared variables.

        Args:
            variables: Declared variables (their effective values are used)
            environment: Environment to use; defaults to the process environment
            properties: Project properties

        Returns:
            A new EvaluationContext
        """
        return cls(
            variables={v.name: v.effective_value for v in variables},
            environment=dict(os.environ) if environment is None else dict(environment),
            properties=dict(properties or {}),
        )


@dataclass(frozen=True)
class ExecutionDecision:
    execute: bool
    reason: Optional[str] = None


def resolve_operand(source: OperandSource, value: str, context: EvaluationContext) -> str:
    source = OperandSource(source)
    if source is OperandSource.VARIABLE:
        return context.variables.get(value, "")
    if source is OperandSource.ENVIRONMENT:
        return context.environment.get(value, "")
    if source is OperandSource.PROPERTY:
        return context.properties.get(value, "")
    return value


def _to_number(text: str) -> float:
    """
    Parse an operand for the numeric operators.

    Parsing is strict: the whole (stripped) text must be a decimal number,
    optionally signed and with an exponent. Text with a numeric prefix
    such as ``"5px"`` or ``"12abc"`` is not a number and yields NaN, so
    every comparison against it is false.
    """
    text = text.strip()
    if not _NUMBER_RE.match(text):
        return math.nan
    return float(text)


def is_unary_operator(operator: ConditionOperator) -> bool:
    return ConditionOperator(operator).is_unary


# ============================================================
#                   EVALUATION
# ============================================================
def evaluate_condition(condition: Condition, context: EvaluationContext) -> bool:
    """
    Evaluate a single condition.

    Args:
        condition: Condition to evaluate
        context: Operand values

    Returns:
        Result of the comparison; False for invalid regexes and NaN operands
    """
    operator = ConditionOperator(condition.operator)
    left = resolve_operand(condition.left_source, condition.left_value, context)
    right = "" if operator.is_unary else resolve_operand(
        condition.right_source, condition.right_value, context
    )

    if operator is ConditionOperator.EQUALS:
        return left == right
    if operator is ConditionOperator.NOT_EQUALS:
        return left != right
    if operator is ConditionOperator.CONTAINS:
        return right in left
    if operator is ConditionOperator.NOT_CONTAINS:
        return right not in left
    if operator is ConditionOperator.STARTS_WITH:
        return left.startswith(right)
    if operator is ConditionOperator.ENDS_WITH:
        return left.endswith(right)
    if operator is ConditionOperator.MATCHES:
        try:
            return re.search(right, left) is not None
        except re.error as exc:
            logger.debug(f"Invalid regex in condition, treating as false: pattern={right!r}, error={exc}")
            return False
    if operator.is_numeric:
        a, b = _to_number(left), _to_number(right)
        if math.isnan(a) or math.isnan(b):
            return False
        if operator is ConditionOperator.GREATER_THAN:
            return a > b
        if operator is ConditionOperator.LESS_THAN:
            return a < b
        if operator is ConditionOperator.GREATER_OR_EQUAL:
            return a >= b
        return a <= b
    if operator is ConditionOperator.IS_EMPTY:
        return left.strip() == ""
    if operator is ConditionOperator.IS_NOT_EMPTY:
        return left.strip() != ""
    if operator is ConditionOperator.IS_TRUE:
        return left.lower() in ("true", "1")
    if operator is ConditionOperator.IS_FALSE:
        return left.lower() in ("false", "0", "")
    return False


def evaluate_task_condition(task_condition: TaskCondition, context: EvaluationContext) -> bool:
    """
    Combine the atomic results with the declared logic.

    An empty condition list evaluates to True for onlyIf and False for skipIf,
    so an empty guard never causes a skip.
    """
    if not task_condition.conditions:
        return ConditionMode(task_condition.mode) is ConditionMode.ONLY_IF

    results = [evaluate_condition(c, context) for c in task_condition.conditions]
    if ConditionLogic(task_condition.logic) is ConditionLogic.AND:
        return all(results)
    return any(results)


def should_execute(task_condition: Optional[TaskCondition], context: EvaluationContext) -> ExecutionDecision:
    """
    Decide whether a guarded node runs.

    Args:
        task_condition: The node's guard, if any
        context: Operand values

    Returns:
        ExecutionDecision with a human-readable reason when the node is skipped
    """
    if task_condition is None or not task_condition.conditions:
        return ExecutionDecision(True)

    result = evaluate_task_condition(task_condition, context)
    if ConditionMode(task_condition.mode) is ConditionMode.ONLY_IF:
        return ExecutionDecision(result, None if result else SKIP_REASON_ONLY_IF)
    return ExecutionDecision(not result, SKIP_REASON_SKIP_IF if result else None)


# ============================================================
#                   FORMATTING
# ============================================================
def format_condition(condition: Condition) -> str:
    operator = ConditionOperator(condition.operator)
    left = f"{SOURCE_LABELS[OperandSource(condition.left_source)]}({condition.left_value})"
    if operator.is_unary:
        return f"{left} {OPERATOR_LABELS[operator]}"
    right = f"{SOURCE_LABELS[OperandSource(condition.right_source)]}({condition.right_value})"
    return f"{left} {OPERATOR_LABELS[operator]} {right}"


def format_task_condition(task_condition: TaskCondition) -> str:
    """
    Human-readable summary of a guard, e.g. ``Only if Environment(CI) is true``.
    """
    mode = ConditionMode(task_condition.mode)
    if not task_condition.conditions:
        return "Always run" if mode is ConditionMode.ONLY_IF else "Never skip"
    joiner = " AND " if ConditionLogic(task_condition.logic) is ConditionLogic.AND else " OR "
    body = joiner.join(format_condition(c) for c in task_condition.conditions)
    prefix = "Only if" if mode is ConditionMode.ONLY_IF else "Skip if"
    return f"{prefix} {body}"
