# gradleflow/infra/flow/orchestrator.py
"""
Sequential execution of a task graph.

The orchestrator walks the execution order one node at a time, consults the
node's guard, delegates the work to a UnitOfWork and records every step as
an ExecutionEvent. The events form an append-only log; the ExecutionState
snapshot is derived from it by folding ``apply_event`` over the log, so the
snapshot is replaced wholesale on every event and readers never observe a
half-updated state.

Example:
    orchestrator = ExecutionOrchestrator(SimulatedUnitOfWork())
    state = await orchestrator.run(graph, targets=["task_jar"])
    assert state.status_of("task_jar") == TaskStatus.SUCCESS
"""
from __future__ import annotations

import asyncio
import logging
import os
import traceback
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from gradleflow.infra.flow.conditions import EvaluationContext, should_execute
from gradleflow.infra.flow.errors import RunInProgressError, RunNotActiveError
from gradleflow.infra.flow.event_manager import EventManager
from gradleflow.infra.flow.graph import TaskGraph
from gradleflow.infra.flow.models import (
    ExecutionEvent,
    ExecutionEventType,
    ExecutionLogEntry,
    ExecutionState,
    LogLevel,
    TaskNode,
    TaskResult,
    TaskStatus,
    UnitOfWork,
    WorkRequest,
    WorkResult,
    utc_now,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class RunOptions:
    """
    Per-run settings.

    Attributes:
        project_path: Working directory handed to the unit of work
        arguments: Extra build-tool arguments
        environment: Extra environment variables, visible to guards and to the unit of work
        properties: Project properties visible to guards
        inherit_environment: Whether guards also see the process environment
    """
    project_path: Optional[str] = None
    arguments: Tuple[str, ...] = ()
    environment: Mapping[str, str] = field(default_factory=dict)
    properties: Mapping[str, str] = field(default_factory=dict)
    inherit_environment: bool = True


# ============================================================
#                   EVENT FOLDING
# ============================================================
def _with_result(state: ExecutionState, task_id: str, **changes) -> Dict[str, TaskResult]:
    results = dict(state.task_results)
    current = results.get(task_id) or TaskResult(task_id=task_id, task_name=changes.get("task_name") or task_id)
    results[task_id] = replace(current, **changes)
    return results


def apply_event(state: ExecutionState, event: ExecutionEvent) -> ExecutionState:
    """
    Derive the snapshot that follows ``event``.

    Never mutates ``state``; a new ExecutionState is always returned.

    Args:
        state: Snapshot before the event
        event: Event to apply

    Returns:
        Snapshot after the event
    """
    kind = ExecutionEventType(event.type)
    data = event.data

    if kind is ExecutionEventType.RESET:
        return ExecutionState()

    if kind is ExecutionEventType.RUN_STARTED:
        order = tuple(data.get("execution_order", ()))
        names = data.get("task_names", {})
        state = ExecutionState(
            is_running=True,
            start_time=event.timestamp,
            execution_order=order,
            task_results={
                task_id: TaskResult(task_id=task_id, task_name=names.get(task_id, task_id), status=TaskStatus.PENDING)
                for task_id in order
            },
        )
    elif kind is ExecutionEventType.TASK_STARTED:
        state = replace(state, task_results=_with_result(
            state, event.task_id, status=TaskStatus.RUNNING, start_time=event.timestamp,
        ))
    elif kind is ExecutionEventType.TASK_OUTPUT:
        previous = state.task_results.get(event.task_id)
        line = data.get("line", "")
        output = f"{previous.output}\n{line}" if previous and previous.output else line
        state = replace(state, task_results=_with_result(state, event.task_id, output=output))
    elif kind in (ExecutionEventType.TASK_COMPLETED, ExecutionEventType.TASK_FAILED):
        status = TaskStatus.SUCCESS if kind is ExecutionEventType.TASK_COMPLETED else TaskStatus.FAILED
        state = replace(state, task_results=_with_result(
            state,
            event.task_id,
            status=status,
            end_time=event.timestamp,
            duration_ms=data.get("duration_ms"),
            output=data.get("output"),
            error=data.get("error"),
        ))
    elif kind is ExecutionEventType.TASK_SKIPPED:
        state = replace(state, task_results=_with_result(
            state, event.task_id, status=TaskStatus.SKIPPED, end_time=event.timestamp,
            skip_reason=data.get("skip_reason"),
        ))
    elif kind is ExecutionEventType.RUN_PAUSED:
        state = replace(state, is_paused=True)
    elif kind is ExecutionEventType.RUN_RESUMED:
        state = replace(state, is_paused=False)
    elif kind is ExecutionEventType.RUN_ABORTED:
        state = replace(state, is_paused=False)
    elif kind is ExecutionEventType.RUN_FINISHED:
        state = replace(
            state, is_running=False, is_paused=False, end_time=event.timestamp,
            cancelled=data.get("cancelled", state.cancelled),
        )

    if event.message:
        entry = ExecutionLogEntry(
            timestamp=event.timestamp,
            level=event.level,
            message=event.message,
            task_id=event.task_id,
            task_name=event.task_name,
        )
        state = replace(state, logs=state.logs + (entry,))
    return state


def replay(events: Iterable[ExecutionEvent]) -> ExecutionState:
    """Rebuild a snapshot from scratch by folding ``apply_event`` over ``events``."""
    state = ExecutionState()
    for event in events:
        state = apply_event(state, event)
    return state


# ============================================================
#                   ORCHESTRATOR
# ============================================================
class ExecutionOrchestrator:
    """
    Runs a graph sequentially with pause, resume and abort.

    Only one run may be active at a time. Pausing closes a resume gate that
    the run loop awaits before each node; aborting is observed between nodes
    and never interrupts the node in flight. The first failed node stops the
    run and marks every remaining node skipped.

    Args:
        unit_of_work: Carries out individual nodes
        event_manager: Publishes events (a private one by default)
        clock: Returns the current, timezone-aware time (UTC by default)
    """

    def __init__(
        self,
        unit_of_work: UnitOfWork,
        event_manager: Optional[EventManager] = None,
        clock: Optional[Clock] = None,
    ):
        self.unit_of_work = unit_of_work
        self.event_manager = event_manager or EventManager()
        self.clock = clock or utc_now
        self._events: List[ExecutionEvent] = []
        self._state = ExecutionState()
        self._run_id: Optional[str] = None
        self._aborted = False
        self._resume_gate = asyncio.Event()
        self._resume_gate.set()

    # ---------- Read access ----------

    @property
    def state(self) -> ExecutionState:
        return self._state

    @property
    def events(self) -> Tuple[ExecutionEvent, ...]:
        return tuple(self._events)

    @property
    def run_id(self) -> Optional[str]:
        return self._run_id

    @property
    def is_running(self) -> bool:
        return self._run_id is not None

    # ---------- Recording ----------

    async def _record(
        self,
        event_type: ExecutionEventType,
        node: Optional[TaskNode] = None,
        message: Optional[str] = None,
        level: LogLevel = LogLevel.INFO,
        **data,
    ) -> None:
        event = ExecutionEvent(
            type=event_type,
            run_id=self._run_id or "",
            timestamp=self.clock(),
            task_id=node.id if node else None,
            task_name=node.name if node else None,
            level=level,
            message=message,
            data=data,
        )
        self._events.append(event)
        self._state = apply_event(self._state, event)
        await self.event_manager.emit_event(event)

    # ---------- Control ----------

    async def pause(self) -> None:
        """
        Pause before the next node. The node in flight runs to completion.

        Raises:
            RunNotActiveError: If no run is active
        """
        if not self.is_running:
            raise RunNotActiveError("pause")
        if self._state.is_paused or self._aborted:
            return
        self._resume_gate.clear()
        logger.info(f"Run paused: run_id={self._run_id}")
        await self._record(ExecutionEventType.RUN_PAUSED, message="Execution paused", level=LogLevel.WARN)

    async def resume(self) -> None:
        """
        Reopen the resume gate.

        Raises:
            RunNotActiveError: If no run is active
        """
        if not self.is_running:
            raise RunNotActiveError("resume")
        if not self._state.is_paused:
            return
        logger.info(f"Run resumed: run_id={self._run_id}")
        await self._record(ExecutionEventType.RUN_RESUMED, message="Execution resumed")
        self._resume_gate.set()

    async def abort(self) -> None:
        """
        Stop the run before its next node.

        Not-yet-started nodes keep their pending status. A paused run is
        woken up so it can observe the abort.

        Raises:
            RunNotActiveError: If no run is active
        """
        if not self.is_running:
            raise RunNotActiveError("abort")
        if self._aborted:
            return
        self._aborted = True
        logger.warning(f"Run aborted: run_id={self._run_id}")
        await self._record(ExecutionEventType.RUN_ABORTED, message="Execution cancelled by user", level=LogLevel.WARN)
        self._resume_gate.set()

    def reset(self) -> None:
        """
        Clear the event log and snapshot.

        Raises:
            RunInProgressError: If a run is active
        """
        if self.is_running:
            raise RunInProgressError()
        self._events = []
        self._state = ExecutionState()

    # ---------- Run ----------

    def _request(self, node: TaskNode, graph: TaskGraph, options: RunOptions) -> WorkRequest:
        properties = tuple(
            f"-P{variable.name}={variable.effective_value}" for variable in graph.user_variables
        )
        return WorkRequest(
            task_id=node.id,
            task_name=node.identifier,
            kind=node.kind,
            config=node.config,
            project_path=options.project_path,
            arguments=tuple(options.arguments) + properties,
            environment=dict(options.environment),
        )

    async def _execute(self, node: TaskNode, request: WorkRequest) -> WorkResult:
        """
        Invoke the unit of work, turning timeouts and exceptions into failed results.
        """
        async def on_progress(line: str) -> None:
            await self._record(ExecutionEventType.TASK_OUTPUT, node, message=line, line=line)

        started = self.clock()
        work = self.unit_of_work.execute(request, on_progress)
        try:
            if node.timeout_minutes:
                return await asyncio.wait_for(work, timeout=node.timeout_minutes * 60)
            return await work
        except asyncio.TimeoutError:
            error = f"Task timed out after {node.timeout_minutes} minute(s)"
        except Exception as exc:
            error = f"{exc.__class__.__name__}: {exc}"
            logger.debug(f"Full traceback for {self._run_id}::{node.id}:\n{traceback.format_exc()}")
        elapsed = int((self.clock() - started).total_seconds() * 1000)
        return WorkResult(False, "", error, None, elapsed)

    async def run(
        self,
        graph: TaskGraph,
        targets: Optional[Iterable[str]] = None,
        options: Optional[RunOptions] = None,
    ) -> ExecutionState:
        """
        Execute the graph (or the closure of ``targets``) sequentially.

        Unit-of-work failures, timeouts and exceptions are recorded on the
        node and never raised.

        Args:
            graph: Graph to run
            targets: Node ids to run, together with their hard dependencies;
                     all enabled nodes when omitted
            options: Run settings

        Returns:
            The final snapshot

        Raises:
            RunInProgressError: If another run is active
        """
        if self.is_running:
            raise RunInProgressError()
        options = options or RunOptions()
        order = graph.execution_order(list(targets) if targets is not None else None)

        self._run_id = str(uuid.uuid4())
        self._aborted = False
        self._resume_gate.set()
        self._events = []
        self._state = ExecutionState()

        environment = dict(os.environ) if options.inherit_environment else {}
        environment.update(options.environment)
        context = EvaluationContext.build(graph.variables, environment, options.properties)

        logger.info(f"Run started: run_id={self._run_id}, tasks={len(order)}")
        try:
            await self._record(
                ExecutionEventType.RUN_STARTED,
                message=f"Starting execution of {len(order)} task(s)",
                execution_order=list(order),
                task_names={node_id: graph.get_node(node_id).name for node_id in order},
            )

            stopped = False
            for index, node_id in enumerate(order):
                await self._resume_gate.wait()
                if self._aborted:
                    stopped = True
                    break
                node = graph.get_node(node_id)

                decision = should_execute(node.condition, context)
                if not decision.execute:
                    logger.info(f"Task skipped: run_id={self._run_id}, task_id={node.id}, reason={decision.reason}")
                    await self._record(
                        ExecutionEventType.TASK_SKIPPED, node,
                        message=f"Skipped {node.name}: {decision.reason}", skip_reason=decision.reason,
                    )
                    continue

                await self._record(ExecutionEventType.TASK_STARTED, node, message=f"Starting task: {node.name}")
                result = await self._execute(node, self._request(node, graph, options))

                if result.success:
                    await self._record(
                        ExecutionEventType.TASK_COMPLETED, node,
                        message=f"Task {node.name} completed in {result.duration_ms}ms",
                        level=LogLevel.SUCCESS,
                        output=result.output, duration_ms=result.duration_ms,
                    )
                    continue

                logger.error(
                    f"Task failed: run_id={self._run_id}, task_id={node.id}, "
                    f"exit_code={result.exit_code}. Error: {result.error}"
                )
                await self._record(
                    ExecutionEventType.TASK_FAILED, node,
                    message=f"Task {node.name} failed: {result.error or 'unknown error'}",
                    level=LogLevel.ERROR,
                    output=result.output, error=result.error, duration_ms=result.duration_ms,
                )
                reason = f"Skipped because task \"{node.name}\" failed"
                for remaining_id in order[index + 1:]:
                    await self._record(
                        ExecutionEventType.TASK_SKIPPED, graph.get_node(remaining_id), skip_reason=reason,
                    )
                break

            await self._record(ExecutionEventType.RUN_FINISHED, cancelled=stopped, **self._summary(stopped))
        finally:
            logger.info(
                f"Run finished: run_id={self._run_id}, cancelled={self._state.cancelled}, "
                f"success={self._state.count(TaskStatus.SUCCESS)}, failed={self._state.count(TaskStatus.FAILED)}, "
                f"skipped={self._state.count(TaskStatus.SKIPPED)}"
            )
            self._run_id = None
            self._resume_gate.set()
        return self._state

    def _summary(self, cancelled: bool) -> Dict[str, object]:
        state = self._state
        succeeded = state.count(TaskStatus.SUCCESS)
        failed = state.count(TaskStatus.FAILED)
        skipped = state.count(TaskStatus.SKIPPED)
        if cancelled:
            message, level = "Execution cancelled", LogLevel.WARN
        elif failed:
            message, level = f"Execution failed: {failed} failed, {skipped} skipped", LogLevel.ERROR
        else:
            message, level = f"Execution completed: {succeeded} succeeded, {skipped} skipped", LogLevel.SUCCESS
        return {"message": message, "level": level}
