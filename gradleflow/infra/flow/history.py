# gradleflow/infra/flow/history.py
"""
Execution history: summaries of finished runs and statistics over them.
"""
from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from gradleflow.infra.flow.graph import TaskGraph
from gradleflow.infra.flow.models import ExecutionLogEntry, ExecutionState, TaskKind, TaskStatus, utc_now

MAX_HISTORY_ENTRIES = 50
MAX_LOGS_PER_ENTRY = 100


class HistoryStatus(enum.StrEnum):
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ExecutionHistoryTaskResult:
    task_id: str
    task_name: str
    task_kind: TaskKind
    status: str
    duration_ms: Optional[int] = None
    error: Optional[str] = None


@dataclass
class ExecutionHistoryEntry:
    """
    Summary of one finished run.

    Attributes:
        id: Entry ID (``exec_<millis>_<suffix>``)
        start_time: When the run started
        end_time: When the run finished
        duration_ms: Run duration in milliseconds
        status: Overall outcome
        total_tasks: Number of recorded task results
        success_count: Tasks that succeeded
        failed_count: Tasks that failed
        skipped_count: Tasks that were skipped
        task_results: Per-task outcomes
        logs: The last log entries of the run
        label: Optional user label
    """
    id: str
    start_time: datetime
    end_time: datetime
    duration_ms: int
    status: HistoryStatus
    total_tasks: int = 0
    success_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    task_results: List[ExecutionHistoryTaskResult] = field(default_factory=list)
    logs: List[ExecutionLogEntry] = field(default_factory=list)
    label: Optional[str] = None


@dataclass(frozen=True)
class ExecutionHistoryStats:
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    average_duration_ms: int = 0
    last_execution_time: Optional[datetime] = None


def generate_history_id(now: Optional[datetime] = None) -> str:
    now = now or utc_now()
    return f"exec_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:7]}"


def create_history_entry(
    state: ExecutionState,
    graph: TaskGraph,
    label: Optional[str] = None,
    max_logs: int = MAX_LOGS_PER_ENTRY,
    now: Optional[datetime] = None,
) -> ExecutionHistoryEntry:
    """
    Summarize a finished run.

    Results of nodes no longer in the graph are left out. The overall status
    is ``partial`` when some tasks failed and some succeeded, ``failed`` when
    only failures happened, ``cancelled`` for aborted runs and ``success``
    otherwise.

    Args:
        state: Final snapshot of the run
        graph: Graph the run executed
        label: Optional user label
        max_logs: Number of trailing log entries kept
        now: Fallback for missing start/end times

    Returns:
        A new ExecutionHistoryEntry
    """
    nodes = {node.id: node for node in graph.nodes}
    now = now or utc_now()

    results: List[ExecutionHistoryTaskResult] = []
    for task_id, result in state.task_results.items():
        node = nodes.get(task_id)
        if node is None:
            continue
        results.append(ExecutionHistoryTaskResult(
            task_id=result.task_id,
            task_name=result.task_name,
            task_kind=node.kind,
            status=result.status,
            duration_ms=result.duration_ms,
            error=result.error,
        ))

    success = sum(1 for r in results if r.status == TaskStatus.SUCCESS)
    failed = sum(1 for r in results if r.status == TaskStatus.FAILED)
    skipped = sum(1 for r in results if r.status == TaskStatus.SKIPPED)

    if failed and success:
        status = HistoryStatus.PARTIAL
    elif failed:
        status = HistoryStatus.FAILED
    elif state.cancelled or state.end_time is None:
        status = HistoryStatus.CANCELLED
    else:
        status = HistoryStatus.SUCCESS

    start_time = state.start_time or now
    end_time = state.end_time or now
    logs = list(state.logs[-max_logs:]) if max_logs > 0 else []

    return ExecutionHistoryEntry(
        id=generate_history_id(now),
        start_time=start_time,
        end_time=end_time,
        duration_ms=int((end_time - start_time).total_seconds() * 1000),
        status=status,
        total_tasks=len(results),
        success_count=success,
        failed_count=failed,
        skipped_count=skipped,
        task_results=results,
        logs=logs,
        label=label,
    )


def calculate_history_stats(entries: Sequence[ExecutionHistoryEntry]) -> ExecutionHistoryStats:
    """
    Aggregate statistics over history entries ordered newest first.
    """
    if not entries:
        return ExecutionHistoryStats()
    total_duration = sum(entry.duration_ms for entry in entries)
    return ExecutionHistoryStats(
        total_executions=len(entries),
        successful_executions=sum(1 for e in entries if e.status == HistoryStatus.SUCCESS),
        failed_executions=sum(1 for e in entries if e.status == HistoryStatus.FAILED),
        average_duration_ms=round(total_duration / len(entries)),
        last_execution_time=entries[0].start_time,
    )


def format_duration(ms: int) -> str:
    if ms < 1000:
        return f"{ms}ms"
    if ms < 60000:
        return f"{ms / 1000:.1f}s"
    if ms < 3600000:
        return f"{ms // 60000}m {(ms % 60000) // 1000}s"
    return f"{ms // 3600000}h {(ms % 3600000) // 60000}m"


class HistoryStore(Protocol):
    """
    Protocol for execution history storage backends.

    Entries are kept newest first.
    """

    def add(self, entry: ExecutionHistoryEntry) -> None:
        ...

    def load(self, entry_id: str) -> ExecutionHistoryEntry:
        ...

    def exists(self, entry_id: str) -> bool:
        ...

    def list_entries(self) -> List[ExecutionHistoryEntry]:
        ...

    def delete(self, entry_id: str) -> bool:
        ...

    def clear(self) -> None:
        ...

    def update_label(self, entry_id: str, label: Optional[str]) -> ExecutionHistoryEntry:
        ...
