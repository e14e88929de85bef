"""Pipeline task entry points.

Each task opens its own database session and runs one stage. These are what
both the in-process runner and the Temporal activities call.
"""

from typing import Any, Awaitable, Callable, Dict, Optional
from uuid import UUID

from docpreview.core.progress import ProgressReporter
from docpreview.database.base import async_session_maker
from docpreview.pipeline.types import PipelinePayload, PipelineTask
from docpreview.services.conversion.cad_converter import CadConverter
from docpreview.services.conversion.office_converter import OfficeConverter
from docpreview.services.conversion.video_optimizer import VideoOptimizer
from docpreview.services.rasterization.rasterizer import RasterizationService

TaskHandler = Callable[[PipelinePayload, Optional[ProgressReporter]], Awaitable[Any]]


async def convert_office_to_pdf(payload: PipelinePayload, progress: Optional[ProgressReporter] = None):
    async with async_session_maker() as session:
        return await OfficeConverter(session).convert(
            document_id=UUID(payload.document_id),
            version_id=UUID(payload.version_id),
            team_id=payload.team_id,
            progress=progress,
        )


async def convert_cad_to_pdf(payload: PipelinePayload, progress: Optional[ProgressReporter] = None):
    async with async_session_maker() as session:
        return await CadConverter(session).convert(
            document_id=UUID(payload.document_id),
            version_id=UUID(payload.version_id),
            team_id=payload.team_id,
            progress=progress,
        )


async def optimize_video(payload: PipelinePayload, progress: Optional[ProgressReporter] = None):
    async with async_session_maker() as session:
        return await VideoOptimizer(session).optimize(
            document_id=UUID(payload.document_id),
            version_id=UUID(payload.version_id),
            team_id=payload.team_id,
            file_size=payload.file_size,
            progress=progress,
        )


async def convert_pdf_to_image(payload: PipelinePayload, progress: Optional[ProgressReporter] = None):
    async with async_session_maker() as session:
        return await RasterizationService(session).convert_pdf_to_images(
            document_id=UUID(payload.document_id),
            version_id=UUID(payload.version_id),
            team_id=payload.team_id,
            progress=progress,
        )


TASK_HANDLERS: Dict[PipelineTask, TaskHandler] = {
    PipelineTask.CONVERT_OFFICE: convert_office_to_pdf,
    PipelineTask.CONVERT_CAD: convert_cad_to_pdf,
    PipelineTask.OPTIMIZE_VIDEO: optimize_video,
    PipelineTask.RASTERIZE: convert_pdf_to_image,
}
