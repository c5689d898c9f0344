"""
Tests for execution history summaries, statistics and the SQL history store.
"""
from datetime import datetime, timedelta, timezone

import pytest

from gradleflow.infra.flow import ExecutionOrchestrator, SimulatedUnitOfWork, SQLHistoryStore, TaskKind, TaskStatus
from gradleflow.infra.flow.history import (
    ExecutionHistoryEntry,
    ExecutionHistoryTaskResult,
    HistoryStatus,
    calculate_history_stats,
    create_history_entry,
    format_duration,
    generate_history_id,
)
from gradleflow.infra.flow.models import ExecutionLogEntry, ExecutionState, LogLevel, TaskResult
from conftest import build_graph, chain_graph, node_id

START = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def finished_state(graph, statuses, cancelled=False, finished=True, logs=()):
    """ExecutionState with one result per (name, status) pair."""
    results = {}
    for name, status in statuses.items():
        task_id = node_id(graph, name) if name in {n.name for n in graph.nodes} else name
        results[task_id] = TaskResult(task_id, name, status, duration_ms=10)
    return ExecutionState(
        cancelled=cancelled,
        start_time=START,
        end_time=START + timedelta(seconds=3) if finished else None,
        execution_order=tuple(results),
        task_results=results,
        logs=tuple(logs),
    )


def make_entry(entry_id, status=HistoryStatus.SUCCESS, duration_ms=1000, offset=0, logs=()):
    start = START + timedelta(minutes=offset)
    return ExecutionHistoryEntry(
        id=entry_id,
        start_time=start,
        end_time=start + timedelta(milliseconds=duration_ms),
        duration_ms=duration_ms,
        status=status,
        total_tasks=1,
        success_count=1 if status == HistoryStatus.SUCCESS else 0,
        failed_count=1 if status == HistoryStatus.FAILED else 0,
        task_results=[ExecutionHistoryTaskResult("n1", "compile", TaskKind.JAVA_COMPILE, TaskStatus.SUCCESS, 10)],
        logs=list(logs),
    )


def log(i):
    return ExecutionLogEntry(START + timedelta(seconds=i), LogLevel.INFO, f"line {i}")


# ============================================================
#                   SUMMARIES
# ============================================================

@pytest.mark.parametrize("statuses, cancelled, finished, expected", [
    ({"a": TaskStatus.SUCCESS, "b": TaskStatus.SUCCESS}, False, True, HistoryStatus.SUCCESS),
    ({"a": TaskStatus.SUCCESS, "b": TaskStatus.FAILED}, False, True, HistoryStatus.PARTIAL),
    ({"a": TaskStatus.FAILED, "b": TaskStatus.SKIPPED}, False, True, HistoryStatus.FAILED),
    ({"a": TaskStatus.SUCCESS, "b": TaskStatus.PENDING}, True, True, HistoryStatus.CANCELLED),
    ({"a": TaskStatus.SUCCESS}, False, False, HistoryStatus.CANCELLED),
])
def test_history_status(statuses, cancelled, finished, expected):
    graph = build_graph([{"name": "a"}, {"name": "b"}])
    state = finished_state(graph, statuses, cancelled=cancelled, finished=finished)

    entry = create_history_entry(state, graph, now=START + timedelta(seconds=5))

    assert entry.status is expected


def test_entry_counts_and_unknown_nodes():
    graph = build_graph([{"name": "a", "kind": TaskKind.TEST}, {"name": "b"}])
    state = finished_state(graph, {
        "a": TaskStatus.SUCCESS,
        "b": TaskStatus.SKIPPED,
        "removed_node": TaskStatus.FAILED,
    })

    entry = create_history_entry(state, graph, label="nightly")

    assert (entry.total_tasks, entry.success_count, entry.failed_count, entry.skipped_count) == (2, 1, 0, 1)
    assert entry.status is HistoryStatus.SUCCESS
    assert entry.duration_ms == 3000
    assert entry.task_results[0].task_kind is TaskKind.TEST
    assert entry.label == "nightly"
    assert entry.id.startswith("exec_")


def test_entry_keeps_trailing_logs():
    graph = build_graph([{"name": "a"}])
    state = finished_state(graph, {"a": TaskStatus.SUCCESS}, logs=[log(i) for i in range(10)])

    entry = create_history_entry(state, graph, max_logs=4)

    assert [entry_log.message for entry_log in entry.logs] == ["line 6", "line 7", "line 8", "line 9"]


def test_history_id_format():
    entry_id = generate_history_id(START)
    prefix, millis, suffix = entry_id.split("_")

    assert prefix == "exec"
    assert millis == str(int(START.timestamp() * 1000))
    assert len(suffix) == 7


# ============================================================
#                   STATISTICS
# ============================================================

def test_history_stats():
    entries = [
        make_entry("e3", HistoryStatus.FAILED, 1000, offset=2),
        make_entry("e2", HistoryStatus.SUCCESS, 2000, offset=1),
        make_entry("e1", HistoryStatus.PARTIAL, 2001, offset=0),
    ]

    stats = calculate_history_stats(entries)

    assert stats.total_executions == 3
    assert stats.successful_executions == 1
    assert stats.failed_executions == 1
    assert stats.average_duration_ms == 1667
    assert stats.last_execution_time == entries[0].start_time


def test_stats_of_no_entries():
    stats = calculate_history_stats([])
    assert (stats.total_executions, stats.average_duration_ms, stats.last_execution_time) == (0, 0, None)


@pytest.mark.parametrize("ms, expected", [
    (999, "999ms"),
    (1500, "1.5s"),
    (61000, "1m 1s"),
    (3660000, "1h 1m"),
])
def test_format_duration(ms, expected):
    assert format_duration(ms) == expected


# ============================================================
#                   SQL STORE
# ============================================================

def test_store_round_trip(store):
    entry = make_entry("e1", logs=[log(1), log(2)])

    store.add(entry)

    assert store.exists("e1")
    assert store.load("e1") == entry


def test_store_keeps_trailing_logs(store):
    store.add(make_entry("e1", logs=[log(i) for i in range(6)]))
    assert [entry_log.message for entry_log in store.load("e1").logs] == ["line 3", "line 4", "line 5"]


def test_store_lists_newest_first_and_trims(store):
    for i in range(7):
        store.add(make_entry(f"e{i}", offset=i))

    entries = store.list_entries()

    assert [entry.id for entry in entries] == ["e6", "e5", "e4", "e3", "e2"]
    assert not store.exists("e0")


def test_store_add_replaces_existing_entry(store):
    store.add(make_entry("e1"))
    store.add(make_entry("e2"))
    store.add(make_entry("e1", HistoryStatus.FAILED))

    entries = store.list_entries()

    assert [entry.id for entry in entries] == ["e1", "e2"]
    assert entries[0].status is HistoryStatus.FAILED
    assert len(entries[0].task_results) == 1


def test_store_labels(store):
    store.add(make_entry("e1"))

    assert store.update_label("e1", "release").label == "release"
    assert store.load("e1").label == "release"
    assert store.update_label("e1", "").label is None
    with pytest.raises(KeyError):
        store.update_label("missing", "x")


def test_store_delete_and_clear(store):
    store.add(make_entry("e1"))
    store.add(make_entry("e2"))

    assert store.delete("e1")
    assert not store.delete("e1")
    with pytest.raises(KeyError):
        store.load("e1")

    store.clear()
    assert store.list_entries() == []


def test_store_requires_open(tmp_path):
    store = SQLHistoryStore(f"sqlite:///{tmp_path / 'closed.db'}")

    with pytest.raises(RuntimeError, match="open\\(\\) must be called before add\\(\\)"):
        store.add(make_entry("e1"))
    with pytest.raises(RuntimeError):
        store.list_entries()


@pytest.mark.asyncio
async def test_store_keeps_a_real_run(store):
    graph = chain_graph("compile", "test")
    state = await ExecutionOrchestrator(SimulatedUnitOfWork(fail_tasks={"test"})).run(graph)
    entry = create_history_entry(state, graph, label="ci")

    store.add(entry)
    loaded = store.load(entry.id)

    assert (loaded.start_time, loaded.end_time) == (entry.start_time, entry.end_time)
    assert loaded.start_time.tzinfo is not None
    assert loaded.status is HistoryStatus.PARTIAL
    assert loaded.logs == entry.logs[-3:]
    assert [r.status for r in loaded.task_results] == [TaskStatus.SUCCESS, TaskStatus.FAILED]


def test_store_normalizes_timestamps_to_utc(store):
    paris = timezone(timedelta(hours=2))
    entry = make_entry("e1")
    entry.start_time = datetime(2024, 5, 1, 14, 0, 0, tzinfo=paris)
    entry.end_time = entry.start_time + timedelta(seconds=1)

    store.add(entry)
    loaded = store.load("e1")

    assert loaded.start_time == START
    assert loaded.start_time.utcoffset() == timedelta(0)
    assert loaded.end_time - loaded.start_time == timedelta(seconds=1)
