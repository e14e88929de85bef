"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from docpreview.api.main import api_router
from docpreview.api.routes import health
from docpreview.config import settings
from docpreview.database.base import engine
from docpreview.pipeline.runner import BackgroundTaskRunner
from docpreview.utils.logging import get_logger

LOGGER = get_logger(__name__, level=settings.log_level)


def build_task_launcher():
    """Launcher for pipeline tasks, chosen by ``TASK_RUNNER``."""
    if settings.task_runner == "temporal":
        from docpreview.temporal.launcher import TemporalTaskLauncher

        return TemporalTaskLauncher()
    return BackgroundTaskRunner()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Creates the pipeline task launcher on startup; on shutdown cancels
    in-process tasks and disposes of the database engine.
    """
    LOGGER.info(
        "Starting application",
        extra={
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "task_runner": settings.task_runner,
        },
    )
    app.state.task_launcher = build_task_launcher()

    yield

    LOGGER.info("Shutting down application")
    launcher = app.state.task_launcher
    if isinstance(launcher, BackgroundTaskRunner):
        await launcher.shutdown()

    try:
        await engine.dispose()
    except Exception as e:
        LOGGER.error("Error closing database", exc_info=True, extra={"error": str(e)})


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Converts uploaded documents into PDFs and per-page preview images",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(api_router, prefix=settings.api_v1_prefix)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "docpreview.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
