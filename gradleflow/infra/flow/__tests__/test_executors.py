"""
Tests for the units of work: simulated output, the Gradle subprocess and
the host bridge adapter.
"""
import random
import shutil

import pytest

from gradleflow.infra.flow import GradleUnitOfWork, SimulatedUnitOfWork, TaskKind, WorkRequest, WorkResult
from gradleflow.infra.flow.executors import STREAM_LIMIT, BridgeUnitOfWork
from gradleflow.infra.flow.models import ArchiveConfig, BridgeEvent, BridgeEventType


class FakeBridge:
    """HostBridge double that replays a fixed list of events during execute_task."""

    def __init__(self, events, result):
        self.events = events
        self.result = result
        self.listeners = []
        self.stopped = []

    def subscribe(self, listener):
        self.listeners.append(listener)
        return lambda: self.listeners.remove(listener)

    async def execute_task(self, request):
        for event in self.events:
            for listener in list(self.listeners):
                listener(event)
        return self.result

    async def stop_task(self, task_name):
        self.stopped.append(task_name)


# ============================================================
#                   SIMULATION
# ============================================================

@pytest.mark.asyncio
async def test_simulated_output_per_kind():
    uow = SimulatedUnitOfWork()
    lines = []

    result = await uow.execute(WorkRequest("n1", "clean", TaskKind.DELETE), lines.append)

    assert result.success
    assert result.exit_code == 0
    assert lines == ["> Task :clean", "Deleting files...", "Deleted build directory", "BUILD SUCCESSFUL"]
    assert result.output == "\n".join(lines)
    assert uow.executed == ["n1"]


@pytest.mark.asyncio
async def test_simulated_archive_name():
    request = WorkRequest("n1", "dist", TaskKind.ZIP, ArchiveConfig(archive_file_name="dist.zip"))
    result = await SimulatedUnitOfWork().execute(request, None)
    assert "Created dist.zip" in result.output


@pytest.mark.asyncio
async def test_simulated_failures():
    listed = await SimulatedUnitOfWork(fail_tasks={"n1"}).execute(WorkRequest("n1", "test", TaskKind.TEST), None)
    random_failure = await SimulatedUnitOfWork(failure_rate=1.0, rng=random.Random(7)).execute(
        WorkRequest("n2", "jar", TaskKind.JAR), None,
    )

    assert (listed.success, listed.error, listed.exit_code) == (False, "Task :test FAILED", 1)
    assert not random_failure.success


@pytest.mark.asyncio
async def test_async_progress_callbacks_are_awaited():
    received = []

    async def on_progress(line):
        received.append(line)

    await SimulatedUnitOfWork().execute(WorkRequest("n1", "hello"), on_progress)

    assert received == ["> Task :hello", "Executing task...", "BUILD SUCCESSFUL"]


@pytest.mark.asyncio
async def test_simulated_history_keeps_latest_nodes():
    uow = SimulatedUnitOfWork(history_limit=2)

    for task_id in ("n1", "n2", "n3"):
        await uow.execute(WorkRequest(task_id, "hello"), None)

    assert uow.executed == ["n2", "n3"]


# ============================================================
#                   GRADLE SUBPROCESS
# ============================================================

def test_gradle_command_line():
    uow = GradleUnitOfWork("./gradlew", build_file="flow.gradle.kts")
    request = WorkRequest("n1", "jar", arguments=("--info", "-Pstage=prod"))

    assert uow.command(request) == ["./gradlew", "--build-file", "flow.gradle.kts", "jar", "--info", "-Pstage=prod"]


@pytest.mark.asyncio
async def test_gradle_missing_executable():
    uow = GradleUnitOfWork("/nonexistent/gradle")

    result = await uow.execute(WorkRequest("n1", "jar"), None)

    assert not result.success
    assert result.exit_code == -1
    assert result.error.startswith("Failed to start /nonexistent/gradle")


@pytest.mark.asyncio
@pytest.mark.skipif(shutil.which("echo") is None, reason="echo executable not available")
async def test_gradle_streams_process_output(tmp_path):
    uow = GradleUnitOfWork(shutil.which("echo"), project_dir=str(tmp_path))
    lines = []

    result = await uow.execute(WorkRequest("n1", "build", arguments=("-Pv=1",)), lines.append)

    assert result.success
    assert lines == ["build -Pv=1"]


class OverlongLineProcess:
    """Subprocess double whose output stream fails after one line, as StreamReader does past its limit."""

    def __init__(self):
        self.returncode = None
        self.killed = False
        self.stdout = self._lines()

    async def _lines(self):
        yield b"> Task :build\n"
        raise ValueError("Separator is not found, and chunk exceed the limit")

    def kill(self):
        self.killed = True
        self.returncode = -9

    async def wait(self):
        return self.returncode


@pytest.mark.asyncio
async def test_gradle_process_is_killed_when_reading_fails(monkeypatch):
    process = OverlongLineProcess()
    seen = {}

    async def fake_exec(*command, **kwargs):
        seen["limit"] = kwargs["limit"]
        return process

    monkeypatch.setattr("gradleflow.infra.flow.executors.asyncio.create_subprocess_exec", fake_exec)
    lines = []

    with pytest.raises(ValueError):
        await GradleUnitOfWork("gradle").execute(WorkRequest("n1", "build"), lines.append)

    assert process.killed
    assert lines == ["> Task :build"]
    assert seen["limit"] == STREAM_LIMIT


# ============================================================
#                   HOST BRIDGE
# ============================================================

@pytest.mark.asyncio
async def test_bridge_forwards_output_of_its_task_only():
    bridge = FakeBridge(
        events=[
            BridgeEvent(BridgeEventType.STARTED, "jar"),
            BridgeEvent(BridgeEventType.OUTPUT, "jar", "packing"),
            BridgeEvent(BridgeEventType.OUTPUT, "other", "noise"),
            BridgeEvent(BridgeEventType.OUTPUT, "jar", "done"),
        ],
        result=WorkResult(True, "packing\ndone", None, 0, 10),
    )
    received = []

    async def on_progress(line):
        received.append(line)

    result = await BridgeUnitOfWork(bridge).execute(WorkRequest("n1", "jar"), on_progress)

    assert result.success
    assert received == ["packing", "done"]
    assert bridge.listeners == []
