from typing import List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from gradleflow.api.schemas import GraphDocument, load_graph
from gradleflow.application.sample_graph import build_sample_graph
from gradleflow.infra.flow.dependency_resolver import find_cycle, validate_connection
from gradleflow.infra.flow.models import DependencyType
from gradleflow.infra.flow.script_generator import validate_for_export
from gradleflow.infra.flow.serialization import graph_to_dict

graph_router = APIRouter(prefix="/graphs", tags=["Graphs"])


class ExecutionOrderRequest(BaseModel):
    """Request schema for computing an execution order."""
    graph: GraphDocument
    targets: Optional[List[str]] = Field(default=None, description="Node ids to run; all enabled nodes when omitted")


class ConnectionRequest(BaseModel):
    """Request schema for validating a proposed edge."""
    graph: GraphDocument
    source: str = Field(..., description="Node that runs first")
    target: str = Field(..., description="Node that runs after the source")
    kind: DependencyType = Field(default=DependencyType.DEPENDS_ON, description="Relation kind")


@graph_router.get("/sample", summary="Get the sample graph")
async def get_sample():
    return graph_to_dict(build_sample_graph())


@graph_router.post("/validate", summary="Validate a graph")
async def validate(document: GraphDocument):
    """
    Validate a graph the way the exporter does.

    Returns:
        - valid flag with errors and warnings
        - per-node field errors
        - the first hard-dependency cycle, if any
    """
    graph = load_graph(document)
    validation = validate_for_export(graph)
    return {
        "valid": validation.valid,
        "errors": validation.errors,
        "warnings": validation.warnings,
        "node_errors": {
            node.id: [{"field": e.field, "message": e.message} for e in node.errors]
            for node in graph.nodes if node.errors
        },
        "cycle": find_cycle(graph.nodes, graph.edges),
    }


@graph_router.post("/execution-order", summary="Compute the execution order")
async def execution_order(request: ExecutionOrderRequest):
    graph = load_graph(request.graph)
    if request.targets:
        unknown = [t for t in request.targets if not graph.has_node(t)]
        if unknown:
            raise HTTPException(status_code=404, detail=f"Unknown task(s): {', '.join(unknown)}")
    order = graph.execution_order(request.targets)
    return {
        "execution_order": order,
        "task_names": [graph.get_node(node_id).name for node_id in order],
    }


@graph_router.post("/connections/validate", summary="Validate a proposed dependency")
async def validate_new_connection(request: ConnectionRequest):
    graph = load_graph(request.graph)
    for node_id in (request.source, request.target):
        if not graph.has_node(node_id):
            raise HTTPException(status_code=404, detail=f"Task '{node_id}' not found")
    result = validate_connection(graph.nodes, graph.edges, request.source, request.target, request.kind)
    return {"valid": result.valid, "message": result.message}
