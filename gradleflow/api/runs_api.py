import logging
from dataclasses import asdict
from typing import Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException
from pydantic import BaseModel, Field

from gradleflow.api.schemas import GraphDocument, load_graph
from gradleflow.application.execution import orchestrator, run_and_record
from gradleflow.application.history_store import store
from gradleflow.infra.flow import RunOptions
from gradleflow.infra.flow.errors import RunInProgressError, RunNotActiveError
from gradleflow.infra.flow.history import calculate_history_stats

logger = logging.getLogger(__name__)

run_router = APIRouter(prefix="/runs", tags=["Runs"])


class RunRequest(BaseModel):
    """Request schema for starting a run."""
    graph: GraphDocument
    targets: Optional[List[str]] = Field(default=None, description="Node ids to run with their dependencies")
    project_path: Optional[str] = Field(default=None, description="Working directory of the build")
    arguments: List[str] = Field(default_factory=list, description="Extra build-tool arguments")
    environment: Dict[str, str] = Field(default_factory=dict, description="Extra environment variables")
    properties: Dict[str, str] = Field(default_factory=dict, description="Project properties visible to conditions")
    label: Optional[str] = Field(default=None, description="Label stored with the history entry")


class LabelRequest(BaseModel):
    label: Optional[str] = Field(default=None, description="New label; empty or null clears it")


@run_router.post("/", summary="Start a run")
async def trigger(run_request: RunRequest, background_tasks: BackgroundTasks):
    """
    Start executing a graph in the background.

    Returns:
        The execution order the run will follow

    Raises:
        HTTPException: 409 if a run is already in progress
    """
    if orchestrator.is_running:
        raise HTTPException(status_code=409, detail=str(RunInProgressError()))
    graph = load_graph(run_request.graph)
    order = graph.execution_order(run_request.targets)
    options = RunOptions(
        project_path=run_request.project_path,
        arguments=tuple(run_request.arguments),
        environment=run_request.environment,
        properties=run_request.properties,
    )

    async def run_wrapper():
        try:
            await run_and_record(graph, run_request.targets, options, run_request.label)
        except RunInProgressError as e:
            logger.warning(f"Run not started: {e}")

    background_tasks.add_task(run_wrapper)
    return {
        "message": f"Run triggered for {len(order)} task(s)",
        "execution_order": order,
    }


@run_router.get("/current", summary="Get the current run state")
async def get_current():
    return {
        "run_id": orchestrator.run_id,
        **asdict(orchestrator.state),
    }


async def _control(action: str):
    try:
        await getattr(orchestrator, action)()
    except RunNotActiveError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"message": f"Run {action} requested", "state": asdict(orchestrator.state)}


@run_router.post("/current/pause", summary="Pause the current run")
async def pause():
    return await _control("pause")


@run_router.post("/current/resume", summary="Resume the current run")
async def resume():
    return await _control("resume")


@run_router.post("/current/abort", summary="Abort the current run")
async def abort():
    return await _control("abort")


@run_router.post("/current/reset", summary="Clear the last run's state")
async def reset():
    try:
        orchestrator.reset()
    except RunInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"message": "Execution state cleared"}


@run_router.get("/history", summary="Get the execution history")
async def get_history():
    """
    Get all history entries, newest first, with aggregated statistics.
    """
    entries = store.list_entries()
    return {
        "entries": [asdict(entry) for entry in entries],
        "stats": asdict(calculate_history_stats(entries)),
    }


@run_router.delete("/history", summary="Clear the execution history")
async def clear_history():
    store.clear()
    return {"message": "Execution history cleared"}


@run_router.get("/history/{entry_id}", summary="Get a history entry")
async def get_history_entry(entry_id: str):
    try:
        return asdict(store.load(entry_id))
    except KeyError:
        raise HTTPException(status_code=404, detail=f"History entry '{entry_id}' not found")


@run_router.patch("/history/{entry_id}", summary="Set or clear a history entry label")
async def update_label(entry_id: str, label_request: LabelRequest):
    try:
        return asdict(store.update_label(entry_id, label_request.label))
    except KeyError:
        raise HTTPException(status_code=404, detail=f"History entry '{entry_id}' not found")


@run_router.delete("/history/{entry_id}", summary="Delete a history entry")
async def delete_history_entry(entry_id: str):
    if not store.delete(entry_id):
        raise HTTPException(status_code=404, detail=f"History entry '{entry_id}' not found")
    return {"message": f"History entry '{entry_id}' deleted"}
