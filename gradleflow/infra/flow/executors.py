# gradleflow/infra/flow/executors.py
"""
Units of work: how a single node is actually carried out.

The orchestrator only knows the UnitOfWork protocol. This module provides a
simulated implementation (deterministic unless asked otherwise), one that
runs the Gradle executable as a subprocess, and an adapter over a HostBridge.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import os
import random
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Callable, Deque, Dict, Iterable, List, Optional, Tuple

from gradleflow.infra.flow.models import (
    ArchiveConfig,
    BridgeEvent,
    BridgeEventType,
    HostBridge,
    ProgressCallback,
    TaskKind,
    WorkRequest,
    WorkResult,
)

logger = logging.getLogger(__name__)


class BaseUnitOfWork(ABC):
    """
    Common helpers for unit-of-work implementations.
    """

    async def _report(self, on_progress: Optional[ProgressCallback], line: str) -> None:
        """
        Deliver a progress line, handling both sync and async callbacks.
        """
        if on_progress is None:
            return
        result = on_progress(line)
        if inspect.isawaitable(result):
            await result

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)

    @abstractmethod
    async def execute(self, request: WorkRequest, on_progress: ProgressCallback) -> WorkResult:
        """
        Run one node.

        Args:
            request: What to run
            on_progress: Called with each line of output as it is produced

        Returns:
            WorkResult describing the outcome
        """
        pass


# ============================================================
#                   SIMULATION
# ============================================================
BASE_DURATIONS_MS: Dict[TaskKind, int] = {
    TaskKind.JAVA_COMPILE: 2000,
    TaskKind.TEST: 3000,
    TaskKind.JAR: 1500,
    TaskKind.COPY: 500,
    TaskKind.DELETE: 300,
    TaskKind.ZIP: 1000,
    TaskKind.EXEC: 1500,
    TaskKind.PROCESS_RESOURCES: 800,
    TaskKind.HTTP_REQUEST: 1200,
    TaskKind.CUSTOM: 200,
}


class SimulatedUnitOfWork(BaseUnitOfWork):
    """
    Produces kind-specific simulated build output.

    Delays are the per-kind base durations multiplied by ``delay_scale``
    (0 means no waiting at all). Failures happen for nodes listed in
    ``fail_tasks`` and, with probability ``failure_rate``, at random.
    Only the last ``history_limit`` executed node ids are kept in
    ``executed``.

    Example:
        uow = SimulatedUnitOfWork(fail_tasks={"test"})
        result = await uow.execute(WorkRequest("n1", "test", TaskKind.TEST), print)
        assert not result.success
    """

    def __init__(
        self,
        delay_scale: float = 0.0,
        fail_tasks: Iterable[str] = (),
        failure_rate: float = 0.0,
        rng: Optional[random.Random] = None,
        history_limit: int = 100,
    ):
        self.delay_scale = delay_scale
        self.fail_tasks = set(fail_tasks)
        self.failure_rate = failure_rate
        self.rng = rng or random.Random()
        self._executed: Deque[str] = deque(maxlen=history_limit)

    @property
    def executed(self) -> List[str]:
        """Ids of the most recently executed nodes, oldest first."""
        return list(self._executed)

    async def _sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds if seconds > 0 else 0)

    def _steps(self, request: WorkRequest) -> Tuple[str, float, str]:
        """(progress line, share of the duration, result line) for the node's kind."""
        kind = TaskKind(request.kind)
        archive_name = request.config.archive_file_name if isinstance(request.config, ArchiveConfig) else None
        if kind is TaskKind.JAVA_COMPILE:
            return "Compiling Java source files...", 0.4, f"Compiled {self.rng.randint(10, 59)} source files"
        if kind is TaskKind.TEST:
            count = self.rng.randint(20, 119)
            return "Running tests...", 0.5, f"{count} tests completed, {count} passed"
        if kind in (TaskKind.COPY, TaskKind.PROCESS_RESOURCES):
            return "Copying files...", 0.3, f"Copied {self.rng.randint(5, 34)} files"
        if kind is TaskKind.DELETE:
            return "Deleting files...", 0.3, "Deleted build directory"
        if kind is TaskKind.JAR:
            return "Creating JAR archive...", 0.4, f"Created {archive_name or 'output.jar'}"
        if kind is TaskKind.ZIP:
            return "Creating ZIP archive...", 0.4, f"Created {archive_name or 'archive.zip'}"
        if kind is TaskKind.EXEC:
            return "Executing command...", 0.5, "Command completed with exit code 0"
        if kind is TaskKind.HTTP_REQUEST:
            return "Making HTTP request...", 0.5, "Received 200 OK"
        return "Executing task...", 0.3, ""

    async def execute(self, request: WorkRequest, on_progress: ProgressCallback) -> WorkResult:
        started = time.monotonic()
        self._executed.append(request.task_id)
        base = BASE_DURATIONS_MS.get(TaskKind(request.kind), 1000)
        duration = (base + self.rng.random() * base * 0.5) / 1000 * self.delay_scale

        lines = [f"> Task :{request.task_name}"]
        await self._report(on_progress, lines[-1])
        await self._sleep(duration * 0.2)

        progress, share, outcome = self._steps(request)
        lines.append(progress)
        await self._report(on_progress, progress)
        await self._sleep(duration * share)
        if outcome:
            lines.append(outcome)
            await self._report(on_progress, outcome)
        await self._sleep(duration * 0.2)

        failed = (
            request.task_id in self.fail_tasks
            or request.task_name in self.fail_tasks
            or (self.failure_rate > 0 and self.rng.random() < self.failure_rate)
        )
        if failed:
            error = f"Task :{request.task_name} FAILED"
            lines.append(error)
            await self._report(on_progress, error)
            return WorkResult(False, "\n".join(lines), error, 1, self._elapsed_ms(started))

        lines.append("BUILD SUCCESSFUL")
        await self._report(on_progress, lines[-1])
        return WorkResult(True, "\n".join(lines), None, 0, self._elapsed_ms(started))


# ============================================================
#                   GRADLE SUBPROCESS
# ============================================================
# Longest output line read from the process, in bytes
STREAM_LIMIT = 1024 * 1024


class GradleUnitOfWork(BaseUnitOfWork):
    """
    Runs a task with the Gradle executable, streaming its output.

    The command is ``<executable> [--build-file <file>] <task> <arguments...>``,
    run in the request's project path (or ``project_dir``) with the request's
    environment layered over the process environment. The process is killed
    whenever reading its output stops early: the awaiting coroutine is
    cancelled (e.g. on timeout) or a line exceeds ``STREAM_LIMIT``.
    """

    def __init__(self, executable: str = "gradle", project_dir: Optional[str] = None,
                 build_file: Optional[str] = None):
        self.executable = executable
        self.project_dir = project_dir
        self.build_file = build_file

    def command(self, request: WorkRequest) -> List[str]:
        command = [self.executable]
        if self.build_file:
            command.extend(["--build-file", self.build_file])
        command.append(request.task_name)
        command.extend(request.arguments)
        return command

    async def execute(self, request: WorkRequest, on_progress: ProgressCallback) -> WorkResult:
        started = time.monotonic()
        command = self.command(request)
        cwd = request.project_path or self.project_dir
        env = {**os.environ, **request.environment}
        logger.info(f"Starting Gradle: task={request.task_name}, cwd={cwd}, command={command}")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=cwd,
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                limit=STREAM_LIMIT,
            )
        except OSError as exc:
            error = f"Failed to start {self.executable}: {exc}"
            logger.error(f"Gradle could not be started: task={request.task_name}, error={exc}")
            return WorkResult(False, "", error, -1, self._elapsed_ms(started))

        lines: List[str] = []
        try:
            async for raw in process.stdout:
                line = raw.decode(errors="replace").rstrip("\r\n")
                lines.append(line)
                await self._report(on_progress, line)
            exit_code = await process.wait()
        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()
                logger.warning(f"Gradle process killed: task={request.task_name}")

        output = "\n".join(lines)
        if exit_code != 0:
            return WorkResult(False, output, f"Gradle exited with code {exit_code}", exit_code,
                              self._elapsed_ms(started))
        return WorkResult(True, output, None, exit_code, self._elapsed_ms(started))


# ============================================================
#                   HOST BRIDGE ADAPTER
# ============================================================
class BridgeUnitOfWork(BaseUnitOfWork):
    """
    Delegates execution to a HostBridge, forwarding its output events as progress.
    """

    def __init__(self, bridge: HostBridge):
        self.bridge = bridge

    async def execute(self, request: WorkRequest, on_progress: ProgressCallback) -> WorkResult:
        pending: List[asyncio.Future] = []

        def on_event(event: BridgeEvent) -> None:
            if event.task_name != request.task_name or event.type != BridgeEventType.OUTPUT or not event.data:
                return
            result = on_progress(event.data)
            if inspect.isawaitable(result):
                pending.append(asyncio.ensure_future(result))

        unsubscribe: Callable[[], None] = self.bridge.subscribe(on_event)
        try:
            result = await self.bridge.execute_task(request)
        except asyncio.CancelledError:
            await self.bridge.stop_task(request.task_name)
            raise
        finally:
            unsubscribe()

        if pending:
            await asyncio.gather(*pending)
        return result
