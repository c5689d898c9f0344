"""
Tests for sequential graph execution.

This module tests:
- Ordering and target closures
- Fail-fast skipping after the first failure
- Guards evaluated against the run's environment and properties
- Pause, resume and abort
- Timeouts and exceptions raised by the unit of work
- The event log and snapshot replay
"""
import asyncio

import pytest

from gradleflow.infra.flow import (
    ExecutionOrchestrator,
    GraphBuilder,
    SimulatedUnitOfWork,
    TaskKind,
    TaskStatus,
    WorkResult,
)
from gradleflow.infra.flow.conditions import SKIP_REASON_ONLY_IF, SKIP_REASON_SKIP_IF
from gradleflow.infra.flow.errors import RunInProgressError, RunNotActiveError
from gradleflow.infra.flow.event_manager import EventManager
from gradleflow.infra.flow.models import ConditionMode, ConditionOperator, ExecutionEventType, LogLevel
from gradleflow.infra.flow.orchestrator import replay
from conftest import (
    RecordingUnitOfWork,
    assert_all_tasks_success,
    assert_status,
    assert_task_failed,
    assert_task_skipped,
    assert_task_success,
    build_graph,
    chain_graph,
    env_condition,
    isolated,
    names_in_order,
    node_id,
)


async def wait_until(predicate, attempts: int = 200):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


def fail_with(error: str):
    async def behaviour(request, on_progress):
        await on_progress("working")
        return WorkResult(False, "partial output", error, 1, 5)
    return behaviour


# ============================================================
#                   ORDERING
# ============================================================

@pytest.mark.asyncio
async def test_runs_all_enabled_tasks_in_order(orchestrator, uow):
    graph = build_graph([
        {"name": "c", "depends_on": []},
        {"name": "a"},
        {"name": "b", "depends_on": ["a"]},
        {"name": "off", "enabled": False},
    ])

    state = await orchestrator.run(graph)

    assert names_in_order(graph, state.execution_order) == ["c", "a", "b"]
    assert_all_tasks_success(state, state.execution_order)
    assert uow.executed == list(state.execution_order)
    assert not state.is_running
    assert state.end_time is not None


@pytest.mark.asyncio
async def test_targets_run_only_their_closure():
    graph = build_graph([
        {"name": "a"},
        {"name": "b", "depends_on": ["a"]},
        {"name": "unrelated"},
    ])
    uow = RecordingUnitOfWork()

    state = await ExecutionOrchestrator(uow).run(graph, targets=[node_id(graph, "b")])

    assert uow.executed == ["a", "b"]
    assert node_id(graph, "unrelated") not in state.task_results


@pytest.mark.asyncio
async def test_simulated_output_is_recorded(orchestrator):
    graph = build_graph([{"name": "compileJava", "kind": TaskKind.JAVA_COMPILE}])

    state = await orchestrator.run(graph)

    result = state.task_results[node_id(graph, "compileJava")]
    assert result.output.startswith("> Task :compileJava\nCompiling Java source files...")
    assert result.output.endswith("BUILD SUCCESSFUL")
    assert result.duration_ms is not None


# ============================================================
#                   FAILURES
# ============================================================

@pytest.mark.asyncio
async def test_first_failure_skips_the_rest():
    graph = chain_graph("a", "b", "c")
    uow = RecordingUnitOfWork({"b": fail_with("boom")})

    state = await ExecutionOrchestrator(uow).run(graph, targets=[node_id(graph, "c")])

    assert uow.executed == ["a", "b"]
    assert_task_success(state, node_id(graph, "a"))
    assert_task_failed(state, node_id(graph, "b"), "boom")
    assert_task_skipped(state, node_id(graph, "c"), 'Skipped because task "b" failed')
    assert state.logs[-1].message == "Execution failed: 1 failed, 1 skipped"
    assert state.logs[-1].level is LogLevel.ERROR


@pytest.mark.asyncio
async def test_exception_becomes_failed_result():
    async def explode(request, on_progress):
        raise RuntimeError("kaput")

    graph = chain_graph("a", "b")
    state = await ExecutionOrchestrator(RecordingUnitOfWork({"a": explode})).run(graph)

    assert_task_failed(state, node_id(graph, "a"), "RuntimeError: kaput")
    assert_task_skipped(state, node_id(graph, "b"))


@pytest.mark.asyncio
async def test_timeout_fails_the_task(monkeypatch):
    seen = {}

    async def instant_timeout(awaitable, timeout):
        seen["timeout"] = timeout
        awaitable.close()
        raise asyncio.TimeoutError

    monkeypatch.setattr("gradleflow.infra.flow.orchestrator.asyncio.wait_for", instant_timeout)
    graph = build_graph([{"name": "slow", "timeout_minutes": 2}])

    state = await ExecutionOrchestrator(RecordingUnitOfWork()).run(graph)

    assert seen["timeout"] == 120
    assert_task_failed(state, node_id(graph, "slow"), "Task timed out after 2 minute(s)")


@pytest.mark.asyncio
async def test_simulated_failure_by_name():
    graph = chain_graph("compile", "test", "jar")
    state = await ExecutionOrchestrator(SimulatedUnitOfWork(fail_tasks={"test"})).run(graph)

    assert_task_failed(state, node_id(graph, "test"), "Task :test FAILED")
    assert_task_skipped(state, node_id(graph, "jar"))


# ============================================================
#                   GUARDS
# ============================================================

@pytest.mark.asyncio
async def test_guards_use_run_environment():
    graph = build_graph([
        {"name": "a"},
        {"name": "b", "depends_on": ["a"], "condition": env_condition("CI", mode=ConditionMode.SKIP_IF)},
        {"name": "c", "depends_on": ["b"], "condition": env_condition("DEPLOY")},
        {"name": "d", "depends_on": ["c"]},
    ])
    uow = RecordingUnitOfWork()

    state = await ExecutionOrchestrator(uow).run(graph, options=isolated({"CI": "true"}))

    assert uow.executed == ["a", "d"]
    assert_task_skipped(state, node_id(graph, "b"), SKIP_REASON_SKIP_IF)
    assert_task_skipped(state, node_id(graph, "c"), SKIP_REASON_ONLY_IF)
    assert_task_success(state, node_id(graph, "d"))


@pytest.mark.asyncio
async def test_skip_if_guard_on_unset_variable_runs_the_task():
    graph = build_graph([{
        "name": "publish",
        "condition": env_condition("CI", ConditionOperator.EQUALS, mode=ConditionMode.SKIP_IF, value="true"),
    }])
    uow = RecordingUnitOfWork()

    state = await ExecutionOrchestrator(uow).run(graph, options=isolated({}))

    assert uow.executed == ["publish"]
    assert_task_success(state, node_id(graph, "publish"))


@pytest.mark.asyncio
async def test_request_carries_options_and_variables():
    graph = (GraphBuilder()
        .add_variable("stage", "dev", value="prod")
        .add_task("my task", TaskKind.EXEC)
        .build())
    uow = RecordingUnitOfWork()

    await ExecutionOrchestrator(uow).run(graph, options=isolated(
        {"TOKEN": "x"}, project_path="/work", arguments=("--info",),
    ))

    request = uow.requests[0]
    assert request.task_name == "my_task"
    assert request.kind is TaskKind.EXEC
    assert request.project_path == "/work"
    assert request.arguments == ("--info", "-Pstage=prod")
    assert request.environment == {"TOKEN": "x"}


# ============================================================
#                   PAUSE / RESUME / ABORT
# ============================================================

@pytest.mark.asyncio
async def test_pause_holds_next_task_until_resume():
    graph = chain_graph("a", "b")

    async def pause_during(request, on_progress):
        await orchestrator.pause()
        return WorkResult(True, "", None, 0, 1)

    uow = RecordingUnitOfWork({"a": pause_during})
    orchestrator = ExecutionOrchestrator(uow)
    run = asyncio.create_task(orchestrator.run(graph))

    await wait_until(lambda: orchestrator.state.status_of(node_id(graph, "a")) == TaskStatus.SUCCESS)
    for _ in range(20):
        await asyncio.sleep(0)
    assert orchestrator.state.is_paused
    assert uow.executed == ["a"]

    await orchestrator.resume()
    state = await run

    assert uow.executed == ["a", "b"]
    assert not state.is_paused
    assert [log.message for log in state.logs if "paused" in log.message or "resumed" in log.message] == [
        "Execution paused", "Execution resumed",
    ]


@pytest.mark.asyncio
async def test_abort_leaves_remaining_tasks_pending():
    graph = chain_graph("a", "b", "c")

    async def abort_during(request, on_progress):
        await orchestrator.abort()
        return WorkResult(True, "", None, 0, 1)

    uow = RecordingUnitOfWork({"a": abort_during})
    orchestrator = ExecutionOrchestrator(uow)

    state = await orchestrator.run(graph)

    assert state.cancelled
    assert uow.executed == ["a"]
    assert_task_success(state, node_id(graph, "a"))
    assert_status(state, node_id(graph, "b"), TaskStatus.PENDING)
    assert_status(state, node_id(graph, "c"), TaskStatus.PENDING)
    assert state.logs[-1].message == "Execution cancelled"


@pytest.mark.asyncio
async def test_abort_during_last_task_completes_the_run():
    graph = chain_graph("a", "b")

    async def abort_during(request, on_progress):
        await orchestrator.abort()
        return WorkResult(True, "", None, 0, 1)

    orchestrator = ExecutionOrchestrator(RecordingUnitOfWork({"b": abort_during}))

    state = await orchestrator.run(graph)

    assert not state.cancelled
    assert_all_tasks_success(state, [node_id(graph, "a"), node_id(graph, "b")])
    assert [log.message for log in state.logs[-3:-1]] == ["Execution cancelled by user", "Task b completed in 1ms"]
    assert state.logs[-1].message == "Execution completed: 2 succeeded, 0 skipped"
    assert replay(orchestrator.events) == state


@pytest.mark.asyncio
async def test_abort_wakes_a_paused_run():
    graph = chain_graph("a", "b")

    async def pause_during(request, on_progress):
        await orchestrator.pause()
        return WorkResult(True, "", None, 0, 1)

    orchestrator = ExecutionOrchestrator(RecordingUnitOfWork({"a": pause_during}))
    run = asyncio.create_task(orchestrator.run(graph))
    await wait_until(lambda: orchestrator.state.is_paused)

    await orchestrator.abort()
    state = await run

    assert state.cancelled
    assert not state.is_paused
    assert_status(state, node_id(graph, "b"), TaskStatus.PENDING)


@pytest.mark.asyncio
async def test_controls_require_an_active_run(orchestrator):
    for control in (orchestrator.pause, orchestrator.resume, orchestrator.abort):
        with pytest.raises(RunNotActiveError):
            await control()


@pytest.mark.asyncio
async def test_only_one_run_at_a_time():
    release = asyncio.Event()

    async def block(request, on_progress):
        await release.wait()
        return WorkResult(True, "", None, 0, 1)

    graph = chain_graph("a")
    orchestrator = ExecutionOrchestrator(RecordingUnitOfWork({"a": block}))
    run = asyncio.create_task(orchestrator.run(graph))
    await wait_until(lambda: orchestrator.is_running)

    with pytest.raises(RunInProgressError):
        await orchestrator.run(graph)
    with pytest.raises(RunInProgressError):
        orchestrator.reset()

    release.set()
    await run
    orchestrator.reset()
    assert orchestrator.state.task_results == {}
    assert orchestrator.events == ()


# ============================================================
#                   EVENTS
# ============================================================

@pytest.mark.asyncio
async def test_replaying_events_rebuilds_the_snapshot():
    graph = chain_graph("a", "b", "c")
    orchestrator = ExecutionOrchestrator(RecordingUnitOfWork({"b": fail_with("nope")}))

    state = await orchestrator.run(graph)

    assert replay(orchestrator.events) == state
    assert len({event.run_id for event in orchestrator.events}) == 1


@pytest.mark.asyncio
async def test_listeners_receive_every_event():
    events = EventManager()
    received = []
    events.subscribe(lambda event: received.append(event.type))

    def broken_listener(event):
        raise ValueError("listener bug")

    unsubscribe = events.subscribe(broken_listener)
    orchestrator = ExecutionOrchestrator(RecordingUnitOfWork(), event_manager=events)

    await orchestrator.run(chain_graph("a"))
    unsubscribe()

    assert received == [
        ExecutionEventType.RUN_STARTED,
        ExecutionEventType.TASK_STARTED,
        ExecutionEventType.TASK_OUTPUT,
        ExecutionEventType.TASK_COMPLETED,
        ExecutionEventType.RUN_FINISHED,
    ]


@pytest.mark.asyncio
async def test_unsubscribed_listeners_stop_receiving():
    events = EventManager()
    received = []
    unsubscribe = events.subscribe(received.append)
    orchestrator = ExecutionOrchestrator(RecordingUnitOfWork(), event_manager=events)

    await orchestrator.run(chain_graph("a"))
    first_run = len(received)
    unsubscribe()
    unsubscribe()
    await orchestrator.run(chain_graph("a"))

    assert first_run == 5
    assert len(received) == first_run
    assert len({event.run_id for event in received}) == 1
