"""
SQLModel models and mappers for execution history persistence.

This module contains SQLModel table definitions and mapper functions
to convert between SQLModel instances and history dataclasses.
"""
from datetime import datetime, timezone
from typing import List, Optional, TypeVar
import json

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from gradleflow.infra.flow.history import (
    ExecutionHistoryEntry,
    ExecutionHistoryTaskResult,
    HistoryStatus,
)
from gradleflow.infra.flow.models import ExecutionLogEntry, LogLevel, TaskKind

# Type variable for generic model update
T = TypeVar('T', bound=SQLModel)


# ============================================================
#                   SQLMODEL TABLE DEFINITIONS
# ============================================================

class ExecutionHistoryModel(SQLModel, table=True):
    """
    SQLModel representation of a history entry.

    Table: execution_history
    ``sequence`` orders entries by insertion (higher is newer).
    """
    __tablename__ = "execution_history"

    id: str = Field(primary_key=True)
    sequence: int = Field(default=0, index=True)
    start_time: datetime = Field(sa_type=DateTime(timezone=True), index=True)
    end_time: datetime = Field(sa_type=DateTime(timezone=True))
    duration_ms: int = Field(default=0)
    status: str = Field(index=True)
    total_tasks: int = Field(default=0)
    success_count: int = Field(default=0)
    failed_count: int = Field(default=0)
    skipped_count: int = Field(default=0)
    label: Optional[str] = Field(default=None)
    logs_json: str = Field(default="[]")


class HistoryTaskResultModel(SQLModel, table=True):
    """
    SQLModel representation of one task outcome of a history entry.

    Table: history_task_result
    Primary Key: (entry_id, position)
    """
    __tablename__ = "history_task_result"

    entry_id: str = Field(foreign_key="execution_history.id", primary_key=True)
    position: int = Field(default=0, primary_key=True)
    task_id: str
    task_name: str
    task_kind: str = Field(default=TaskKind.CUSTOM.value)
    status: str
    duration_ms: Optional[int] = Field(default=None)
    error: Optional[str] = Field(default=None)


# ============================================================
#                   UTILITY FUNCTIONS
# ============================================================

def copy_model_fields(target: T, source: T, exclude_keys: Optional[set] = None) -> T:
    """
    Copy all fields from source model to target model.

    Args:
        target: The SQLModel instance to update
        source: The SQLModel instance to copy from
        exclude_keys: Optional set of field names to skip during copy

    Returns:
        The updated target model
    """
    exclude_keys = exclude_keys or set()
    for key, value in source.model_dump(exclude=exclude_keys).items():
        if hasattr(target, key):
            setattr(target, key, value)
    return target


def as_utc(value: datetime) -> datetime:
    """
    Normalize a timestamp to timezone-aware UTC.

    Naive values (SQLite returns every stored timestamp that way) are taken
    to be UTC already.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def logs_to_json(logs: List[ExecutionLogEntry]) -> str:
    return json.dumps([
        {
            "timestamp": log.timestamp.isoformat(),
            "level": str(log.level),
            "message": log.message,
            "task_id": log.task_id,
            "task_name": log.task_name,
        }
        for log in logs
    ])


def json_to_logs(raw: Optional[str]) -> List[ExecutionLogEntry]:
    return [
        ExecutionLogEntry(
            timestamp=datetime.fromisoformat(item["timestamp"]),
            level=LogLevel(item["level"]),
            message=item["message"],
            task_id=item.get("task_id"),
            task_name=item.get("task_name"),
        )
        for item in json.loads(raw or "[]")
    ]


# ============================================================
#                   MAPPER FUNCTIONS
# ============================================================

def history_entry_to_model(entry: ExecutionHistoryEntry, sequence: int, max_logs: int) -> ExecutionHistoryModel:
    """
    Convert an ExecutionHistoryEntry to an ExecutionHistoryModel.

    Args:
        entry: The history entry
        sequence: Insertion sequence number
        max_logs: Number of trailing log entries to persist

    Returns:
        ExecutionHistoryModel instance ready for database persistence
    """
    logs = entry.logs[-max_logs:] if max_logs > 0 else []
    return ExecutionHistoryModel(
        id=entry.id,
        sequence=sequence,
        start_time=as_utc(entry.start_time),
        end_time=as_utc(entry.end_time),
        duration_ms=entry.duration_ms,
        status=str(entry.status),
        total_tasks=entry.total_tasks,
        success_count=entry.success_count,
        failed_count=entry.failed_count,
        skipped_count=entry.skipped_count,
        label=entry.label,
        logs_json=logs_to_json(logs),
    )


def task_result_to_model(result: ExecutionHistoryTaskResult, entry_id: str, position: int) -> HistoryTaskResultModel:
    return HistoryTaskResultModel(
        entry_id=entry_id,
        position=position,
        task_id=result.task_id,
        task_name=result.task_name,
        task_kind=str(result.task_kind),
        status=result.status,
        duration_ms=result.duration_ms,
        error=result.error,
    )


def model_to_task_result(model: HistoryTaskResultModel) -> ExecutionHistoryTaskResult:
    return ExecutionHistoryTaskResult(
        task_id=model.task_id,
        task_name=model.task_name,
        task_kind=TaskKind(model.task_kind),
        status=model.status,
        duration_ms=model.duration_ms,
        error=model.error,
    )


def model_to_history_entry(
    model: ExecutionHistoryModel,
    task_results: Optional[List[ExecutionHistoryTaskResult]] = None,
) -> ExecutionHistoryEntry:
    """
    Convert an ExecutionHistoryModel to an ExecutionHistoryEntry.

    Args:
        model: The ExecutionHistoryModel instance from the database
        task_results: Task outcomes of the entry, in order

    Returns:
        ExecutionHistoryEntry dataclass instance
    """
    return ExecutionHistoryEntry(
        id=model.id,
        start_time=as_utc(model.start_time),
        end_time=as_utc(model.end_time),
        duration_ms=model.duration_ms,
        status=HistoryStatus(model.status),
        total_tasks=model.total_tasks,
        success_count=model.success_count,
        failed_count=model.failed_count,
        skipped_count=model.skipped_count,
        task_results=task_results or [],
        logs=json_to_logs(model.logs_json),
        label=model.label,
    )
