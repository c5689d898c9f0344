"""
Pytest configuration and DRY test utilities.

This module provides reusable fixtures, graph factories, and assertion
helpers for declarative graph and execution testing.
"""
import os
import tempfile

# The application layer opens its history database at import time.
os.environ.setdefault("DATABASE_URL", f"sqlite:///{tempfile.mkdtemp()}/gradleflow_test.db")
os.environ.setdefault("SIMULATION_DELAY_SCALE", "0")
os.environ.setdefault("EXECUTION_MODE", "simulated")

import pytest
from typing import Any, Callable, Dict, Iterable, List, Optional

from gradleflow.infra.flow import (
    ExecutionOrchestrator,
    ExecutionState,
    GraphBuilder,
    IdGenerator,
    RunOptions,
    SimulatedUnitOfWork,
    SQLHistoryStore,
    TaskGraph,
    TaskKind,
    TaskStatus,
    WorkRequest,
    WorkResult,
)
from gradleflow.infra.flow.models import (
    Condition,
    ConditionMode,
    ConditionOperator,
    OperandSource,
    TaskCondition,
)


# ============================================================
#                   FIXTURES
# ============================================================

@pytest.fixture
def ids():
    return IdGenerator()


@pytest.fixture
def store(tmp_path):
    """
    Create a temporary SQL history store.

    Args:
        tmp_path: Pytest fixture providing temporary directory

    Yields:
        SQLHistoryStore: Opened store instance
    """
    db_path = tmp_path / "test_history.db"
    store = SQLHistoryStore(f"sqlite:///{db_path}", max_entries=5, max_logs_per_entry=3)
    store.open()
    yield store
    store.close()


@pytest.fixture
def uow():
    return SimulatedUnitOfWork()


@pytest.fixture
def orchestrator(uow):
    return ExecutionOrchestrator(uow)


# ============================================================
#                   GRAPH FACTORIES (DRY)
# ============================================================

def build_graph(tasks_spec: List[Dict[str, Any]]) -> TaskGraph:
    """
    Build a graph from a declarative specification.

    Node ids are ``task_1``, ``task_2``... in declaration order.

    Args:
        tasks_spec: List of task specifications, each containing:
            - name: Task name (required)
            - kind: TaskKind (optional, default CUSTOM)
            - depends_on: Names of upstream tasks (optional)
            - any other GraphBuilder.add_task keyword (optional)

    Returns:
        The built TaskGraph

    Example:
        graph = build_graph([
            {"name": "a"},
            {"name": "b", "depends_on": ["a"]},
        ])
    """
    builder = GraphBuilder()
    for spec in tasks_spec:
        spec = dict(spec)
        name = spec.pop("name")
        kind = spec.pop("kind", TaskKind.CUSTOM)
        config = spec.pop("config", None)
        builder.add_task(name, kind, config, **spec)
    return builder.build()


def chain_graph(*names: str) -> TaskGraph:
    """Factory: a -> b -> c ... as dependsOn edges."""
    spec = []
    for index, name in enumerate(names):
        spec.append({"name": name, "depends_on": [names[index - 1]] if index else []})
    return build_graph(spec)


def node_id(graph: TaskGraph, name: str) -> str:
    return graph.find_node_by_name(name).id


def names_in_order(graph: TaskGraph, order: Iterable[str]) -> List[str]:
    return [graph.get_node(task_id).name for task_id in order]


def env_condition(name: str, operator: ConditionOperator = ConditionOperator.IS_TRUE,
                  mode: ConditionMode = ConditionMode.ONLY_IF, value: str = "") -> TaskCondition:
    """Factory: a single-condition guard on an environment variable."""
    return TaskCondition(
        mode=mode,
        conditions=(Condition(OperandSource.ENVIRONMENT, name, operator, OperandSource.LITERAL, value),),
    )


def isolated(environment: Optional[Dict[str, str]] = None, **kwargs) -> RunOptions:
    """RunOptions that ignore the process environment."""
    return RunOptions(environment=environment or {}, inherit_environment=False, **kwargs)


class RecordingUnitOfWork:
    """
    Unit of work driven by callables, recording the requests it receives.

    ``behaviours`` maps task names to a coroutine function taking the
    request and progress callback and returning a WorkResult.
    """

    def __init__(self, behaviours: Optional[Dict[str, Callable]] = None):
        self.behaviours = behaviours or {}
        self.requests: List[WorkRequest] = []

    async def execute(self, request: WorkRequest, on_progress) -> WorkResult:
        self.requests.append(request)
        behaviour = self.behaviours.get(request.task_name)
        if behaviour is not None:
            return await behaviour(request, on_progress)
        await on_progress(f"ran {request.task_name}")
        return WorkResult(True, f"ran {request.task_name}", None, 0, 1)

    @property
    def executed(self) -> List[str]:
        return [request.task_name for request in self.requests]


# ============================================================
#                   ASSERTION HELPERS
# ============================================================

def assert_status(state: ExecutionState, task_id: str, expected: str):
    actual = state.status_of(task_id)
    assert actual == expected, f"Task {task_id} expected {expected}, got {actual}"


def assert_task_success(state: ExecutionState, task_id: str):
    assert_status(state, task_id, TaskStatus.SUCCESS)


def assert_task_failed(state: ExecutionState, task_id: str, error_contains: Optional[str] = None):
    """
    Assert that a task failed.

    Args:
        state: Final snapshot of the run
        task_id: ID of task to check
        error_contains: Optional substring to check in error message
    """
    assert_status(state, task_id, TaskStatus.FAILED)
    if error_contains:
        error = state.task_results[task_id].error or ""
        assert error_contains in error, (
            f"Task {task_id} error message should contain '{error_contains}', got '{error}'"
        )


def assert_task_skipped(state: ExecutionState, task_id: str, reason_contains: Optional[str] = None):
    assert_status(state, task_id, TaskStatus.SKIPPED)
    if reason_contains:
        assert reason_contains in (state.task_results[task_id].skip_reason or "")


def assert_all_tasks_success(state: ExecutionState, task_ids: Iterable[str]):
    for task_id in task_ids:
        assert_task_success(state, task_id)
