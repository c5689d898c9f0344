from fastapi import APIRouter

from gradleflow.api.graphs_api import graph_router
from gradleflow.api.runs_api import run_router
from gradleflow.api.scripts_api import script_router

api_router = APIRouter(prefix="/api")

api_router.include_router(graph_router)
api_router.include_router(script_router)
api_router.include_router(run_router)
