from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from gradleflow.api.schemas import GraphDocument, load_graph
from gradleflow.infra.flow.script_generator import (
    DisabledTaskStyle,
    ExportOptions,
    VariableFormat,
    generate_script,
    validate_for_export,
)
from gradleflow.infra.flow.script_parser import parse_script
from gradleflow.infra.flow.serialization import graph_to_dict

script_router = APIRouter(prefix="/scripts", tags=["Scripts"])


class ExportOptionsModel(BaseModel):
    include_comments: bool = Field(default=True, description="Emit the header and section comments")
    include_descriptions: bool = Field(default=True, description="Emit descriptions as KDoc")
    disabled_tasks: DisabledTaskStyle = Field(default=DisabledTaskStyle.COMMENT)
    variable_format: VariableFormat = Field(default=VariableFormat.PROPERTIES)
    project_name: Optional[str] = None


class ExportRequest(BaseModel):
    """Request schema for exporting a graph to a build script."""
    graph: GraphDocument
    options: ExportOptionsModel = Field(default_factory=ExportOptionsModel)


class ImportRequest(BaseModel):
    """Request schema for importing a build script."""
    text: str = Field(..., description="Contents of a build.gradle.kts file")


@script_router.post("/export", summary="Export a graph as build.gradle.kts")
async def export_script(request: ExportRequest):
    """
    Generate the script for a graph.

    The script is generated even when validation reports errors, so the
    caller can decide whether to write it.
    """
    graph = load_graph(request.graph)
    validation = validate_for_export(graph)
    options = ExportOptions(**request.options.model_dump())
    return {
        "script": generate_script(graph, options),
        "valid": validation.valid,
        "errors": validation.errors,
        "warnings": validation.warnings,
    }


@script_router.post("/import", summary="Import a build.gradle.kts script")
async def import_script(request: ImportRequest):
    result = parse_script(request.text)
    return {
        "success": result.success,
        "graph": graph_to_dict(result.graph),
        "errors": result.errors,
        "warnings": result.warnings,
    }
