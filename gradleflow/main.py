import logging

from fastapi import FastAPI

from gradleflow import config
from gradleflow.api import api_router

logging.basicConfig(
    level=config.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Gradle Flow")
app.include_router(api_router)
