"""
Visual Gradle task graph library.

Main exports:
- TaskGraph: Immutable graph of task nodes, typed edges, groups and variables
- generate_script / parse_script: Gradle Kotlin DSL export and best-effort import
- ExecutionOrchestrator: Sequential execution with pause, resume and abort
- ExecutionState: Snapshot of a run derived from its event log

Units of work:
- SimulatedUnitOfWork, GradleUnitOfWork, BridgeUnitOfWork

Workflow builders:
- GraphBuilder: Fluent builder pattern for programmatic graph construction
"""

from gradleflow.infra.flow.errors import (
    CycleError,
    GradleFlowError,
    RunInProgressError,
    RunNotActiveError,
    ScriptParseError,
    StructuralValidationError,
)
from gradleflow.infra.flow.executors import BridgeUnitOfWork, GradleUnitOfWork, SimulatedUnitOfWork
from gradleflow.infra.flow.graph import TaskGraph
from gradleflow.infra.flow.history import ExecutionHistoryEntry, HistoryStore, create_history_entry
from gradleflow.infra.flow.ids import IdGenerator
from gradleflow.infra.flow.models import (
    DependencyType,
    ExecutionState,
    TaskKind,
    TaskNode,
    TaskStatus,
    Variable,
    WorkRequest,
    WorkResult,
)
from gradleflow.infra.flow.orchestrator import ExecutionOrchestrator, RunOptions
from gradleflow.infra.flow.script_generator import ExportOptions, generate_script
from gradleflow.infra.flow.script_parser import ParseResult, parse_script
from gradleflow.infra.flow.store.sql_store import SQLHistoryStore
from gradleflow.infra.flow.workflow_builders import GraphBuilder

__all__ = [
    # Graph
    "TaskGraph",
    "TaskNode",
    "TaskKind",
    "DependencyType",
    "Variable",
    "IdGenerator",
    # Script
    "ExportOptions",
    "generate_script",
    "ParseResult",
    "parse_script",
    # Execution
    "ExecutionOrchestrator",
    "RunOptions",
    "ExecutionState",
    "TaskStatus",
    "WorkRequest",
    "WorkResult",
    "SimulatedUnitOfWork",
    "GradleUnitOfWork",
    "BridgeUnitOfWork",
    # History
    "ExecutionHistoryEntry",
    "HistoryStore",
    "SQLHistoryStore",
    "create_history_entry",
    # Errors
    "GradleFlowError",
    "StructuralValidationError",
    "CycleError",
    "ScriptParseError",
    "RunInProgressError",
    "RunNotActiveError",
    # Workflow builders
    "GraphBuilder",
]
