"""FastAPI dependencies for services and the pipeline dispatcher."""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from docpreview.database.session import get_async_session
from docpreview.pipeline.dispatcher import PipelineDispatcher
from docpreview.services.version_service import VersionService


async def get_version_service(
    db_session: Annotated[AsyncSession, Depends(get_async_session)]
) -> VersionService:
    return VersionService(db_session)


async def get_dispatcher(request: Request) -> PipelineDispatcher:
    """Dispatcher bound to the launcher created in the app lifespan."""
    return PipelineDispatcher(request.app.state.task_launcher)
