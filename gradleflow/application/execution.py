from gradleflow import config
from gradleflow.infra.flow import (
    ExecutionOrchestrator,
    GradleUnitOfWork,
    RunOptions,
    SimulatedUnitOfWork,
    TaskGraph,
    create_history_entry,
)
from gradleflow.infra.flow.models import UnitOfWork
from gradleflow.application.history_store import store


def build_unit_of_work() -> UnitOfWork:
    if config.EXECUTION_MODE == "gradle":
        return GradleUnitOfWork(config.GRADLE_EXECUTABLE, config.PROJECT_DIR, config.BUILD_FILE)
    return SimulatedUnitOfWork(delay_scale=config.SIMULATION_DELAY_SCALE)


orchestrator = ExecutionOrchestrator(build_unit_of_work())


async def run_and_record(graph: TaskGraph, targets=None, options: RunOptions = None, label: str = None):
    """Run the graph and add the outcome to the execution history."""
    state = await orchestrator.run(graph, targets, options)
    store.add(create_history_entry(state, graph, label, max_logs=config.MAX_LOGS_PER_ENTRY))
    return state
