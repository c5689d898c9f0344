from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from pydantic import BaseModel, Field

from gradleflow.infra.flow import TaskGraph
from gradleflow.infra.flow.errors import StructuralValidationError, UnknownNodeError
from gradleflow.infra.flow.serialization import graph_from_dict


class GraphDocument(BaseModel):
    """Request schema for a task graph, as produced by ``graph_to_dict``."""
    nodes: List[Dict[str, Any]] = Field(default_factory=list)
    edges: List[Dict[str, Any]] = Field(default_factory=list)
    groups: List[Dict[str, Any]] = Field(default_factory=list)
    variables: List[Dict[str, Any]] = Field(default_factory=list)


def load_graph(document: Optional[GraphDocument]) -> TaskGraph:
    """
    Rebuild a TaskGraph from a request body.

    Raises:
        HTTPException: 404 for references to unknown nodes, 422 for invalid graphs
    """
    if document is None:
        return TaskGraph.empty()
    try:
        return graph_from_dict(document.model_dump())
    except UnknownNodeError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (StructuralValidationError, KeyError, ValueError, TypeError) as e:
        raise HTTPException(status_code=422, detail=f"Invalid graph: {e}")
