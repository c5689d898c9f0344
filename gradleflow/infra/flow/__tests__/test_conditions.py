"""
Tests for guard evaluation and variable references.

Evaluation never raises: invalid regexes and non-numeric operands make the
comparison false, and absent operands resolve to the empty string.
"""
import pytest

from gradleflow.infra.flow.conditions import (
    SKIP_REASON_ONLY_IF,
    SKIP_REASON_SKIP_IF,
    EvaluationContext,
    evaluate_condition,
    evaluate_task_condition,
    format_task_condition,
    should_execute,
)
from gradleflow.infra.flow.models import (
    Condition,
    ConditionLogic,
    ConditionMode,
    ConditionOperator as Op,
    OperandSource,
    TaskCondition,
    Variable,
    VariableType,
)
from gradleflow.infra.flow.variables import (
    extract_variable_references,
    find_variables_in_object,
    resolve_variables,
    split_list_value,
    validate_variable_references,
    validate_variable_value,
)
from conftest import env_condition


def literal(left: str, operator: Op, right: str = "") -> Condition:
    return Condition(OperandSource.LITERAL, left, operator, OperandSource.LITERAL, right)


EMPTY = EvaluationContext()


# ============================================================
#                   SINGLE CONDITIONS
# ============================================================

@pytest.mark.parametrize("left, operator, right, expected", [
    ("abc", Op.EQUALS, "abc", True),
    ("abc", Op.NOT_EQUALS, "abd", True),
    ("release-1.2", Op.CONTAINS, "1.2", True),
    ("release-1.2", Op.NOT_CONTAINS, "snapshot", True),
    ("release-1.2", Op.STARTS_WITH, "release", True),
    ("release-1.2", Op.ENDS_WITH, "1.3", False),
    ("v10", Op.MATCHES, r"^v\d+$", True),
    ("10", Op.GREATER_THAN, "9", True),
    ("5", Op.GREATER_THAN, "3", True),
    ("3", Op.GREATER_THAN, "5", False),
    ("2.5", Op.LESS_THAN, "10", True),
    ("3", Op.GREATER_OR_EQUAL, "3", True),
    ("-1", Op.LESS_OR_EQUAL, "-2", False),
])
def test_binary_operators(left, operator, right, expected):
    assert evaluate_condition(literal(left, operator, right), EMPTY) is expected


@pytest.mark.parametrize("value, operator, expected", [
    ("  ", Op.IS_EMPTY, True),
    ("x", Op.IS_NOT_EMPTY, True),
    ("TRUE", Op.IS_TRUE, True),
    ("1", Op.IS_TRUE, True),
    ("yes", Op.IS_TRUE, False),
    ("", Op.IS_FALSE, True),
    ("0", Op.IS_FALSE, True),
    ("no", Op.IS_FALSE, False),
])
def test_unary_operators(value, operator, expected):
    assert evaluate_condition(literal(value, operator), EMPTY) is expected


def test_non_numeric_operand_compares_false():
    assert evaluate_condition(literal("ten", Op.GREATER_THAN, "1"), EMPTY) is False
    assert evaluate_condition(literal("12abc", Op.LESS_THAN, "100"), EMPTY) is False
    assert evaluate_condition(literal("5px", Op.GREATER_THAN, "3"), EMPTY) is False


def test_invalid_regex_compares_false():
    assert evaluate_condition(literal("abc", Op.MATCHES, "(unclosed"), EMPTY) is False


def test_operand_sources():
    context = EvaluationContext.build(
        [Variable("v1", "stage", default_value="dev", value="prod")],
        environment={"CI": "true"},
        properties={"release": "yes"},
    )

    assert evaluate_condition(
        Condition(OperandSource.VARIABLE, "stage", Op.EQUALS, OperandSource.LITERAL, "prod"), context)
    assert evaluate_condition(Condition(OperandSource.ENVIRONMENT, "CI", Op.IS_TRUE), context)
    assert evaluate_condition(
        Condition(OperandSource.PROPERTY, "release", Op.EQUALS, OperandSource.LITERAL, "yes"), context)
    assert evaluate_condition(Condition(OperandSource.ENVIRONMENT, "MISSING", Op.IS_EMPTY), context)


def test_context_defaults_to_process_environment(monkeypatch):
    monkeypatch.setenv("GRADLEFLOW_TEST_FLAG", "1")
    context = EvaluationContext.build()
    assert context.environment["GRADLEFLOW_TEST_FLAG"] == "1"


# ============================================================
#                   GUARDS
# ============================================================

def test_and_or_logic():
    conditions = (literal("a", Op.EQUALS, "a"), literal("a", Op.EQUALS, "b"))

    assert not evaluate_task_condition(TaskCondition(conditions=conditions, logic=ConditionLogic.AND), EMPTY)
    assert evaluate_task_condition(TaskCondition(conditions=conditions, logic=ConditionLogic.OR), EMPTY)


def test_empty_guard_never_skips():
    assert evaluate_task_condition(TaskCondition(ConditionMode.ONLY_IF), EMPTY) is True
    assert evaluate_task_condition(TaskCondition(ConditionMode.SKIP_IF), EMPTY) is False
    assert should_execute(TaskCondition(ConditionMode.SKIP_IF), EMPTY).execute
    assert should_execute(None, EMPTY).execute


def test_should_execute_reasons():
    context = EvaluationContext(environment={"CI": "true"})

    only_if = should_execute(env_condition("CI", Op.IS_FALSE), context)
    skip_if = should_execute(env_condition("CI", mode=ConditionMode.SKIP_IF), context)

    assert (only_if.execute, only_if.reason) == (False, SKIP_REASON_ONLY_IF)
    assert (skip_if.execute, skip_if.reason) == (False, SKIP_REASON_SKIP_IF)


def test_format_task_condition():
    assert format_task_condition(env_condition("CI")) == "Only if Environment(CI) is true"
    guard = TaskCondition(
        ConditionMode.SKIP_IF,
        (Condition(OperandSource.VARIABLE, "stage", Op.EQUALS, OperandSource.LITERAL, "dev"),
         Condition(OperandSource.PROPERTY, "quick", Op.IS_NOT_EMPTY)),
        ConditionLogic.OR,
    )
    assert format_task_condition(guard) == "Skip if Variable(stage) equals Value(dev) OR Property(quick) is not empty"
    assert format_task_condition(TaskCondition(ConditionMode.SKIP_IF)) == "Never skip"


# ============================================================
#                   VARIABLES
# ============================================================

def test_extract_references_in_first_use_order():
    assert extract_variable_references("${b}/${a}/${b}/${1bad}") == ["b", "a"]


def test_resolve_reports_unresolved_and_keeps_text():
    result = resolve_variables("${buildDir}/${missing}", {"buildDir": "out"})

    assert result.resolved == "out/${missing}"
    assert result.unresolved == ["missing"]


def test_resolve_uses_effective_value():
    variables = [Variable("v1", "stage", default_value="dev", value="prod")]
    assert resolve_variables("deploy-${stage}", variables).resolved == "deploy-prod"


def test_find_and_validate_nested_references():
    obj = {"into": "${buildDir}/lib", "args": ("--env=${stage}", "${buildDir}")}

    assert find_variables_in_object(obj) == ["buildDir", "stage"]
    check = validate_variable_references(obj, [Variable("v1", "buildDir")])
    assert not check.valid
    assert check.missing == ["stage"]


@pytest.mark.parametrize("value, type, valid", [
    ("", VariableType.NUMBER, True),
    ("1.5", VariableType.NUMBER, True),
    ("many", VariableType.NUMBER, False),
    ("nan", VariableType.NUMBER, False),
    ("TRUE", VariableType.BOOLEAN, True),
    ("yes", VariableType.BOOLEAN, False),
    ("anything", VariableType.PATH, True),
])
def test_validate_variable_value(value, type, valid):
    assert validate_variable_value(value, type).valid is valid


def test_split_list_value():
    assert split_list_value(" a, b ,,c ") == ["a", "b", "c"]
