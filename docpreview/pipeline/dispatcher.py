"""Route a freshly created version to the stage that processes it."""

from typing import Dict, Optional, Protocol

from docpreview.database.models import DocumentVersion
from docpreview.pipeline.types import PipelinePayload, PipelineTask
from docpreview.utils.logging import get_logger

LOGGER = get_logger(__name__)

TASK_BY_TYPE: Dict[str, PipelineTask] = {
    "docs": PipelineTask.CONVERT_OFFICE,
    "slides": PipelineTask.CONVERT_OFFICE,
    "cad": PipelineTask.CONVERT_CAD,
    "dwg": PipelineTask.CONVERT_CAD,
    "dxf": PipelineTask.CONVERT_CAD,
    "video": PipelineTask.OPTIMIZE_VIDEO,
    "pdf": PipelineTask.RASTERIZE,
}


class TaskLauncher(Protocol):
    """Starts a pipeline task without waiting for it to finish."""

    async def launch(self, task: PipelineTask, payload: PipelinePayload) -> None:
        ...


def task_for_type(document_type: Optional[str]) -> Optional[PipelineTask]:
    if not document_type:
        return None
    return TASK_BY_TYPE.get(document_type.lower())


def build_payload(version: DocumentVersion, team_id: str) -> PipelinePayload:
    return PipelinePayload(
        document_id=str(version.document_id),
        version_id=str(version.id),
        team_id=team_id,
        file_size=version.file_size,
    )


class PipelineDispatcher:
    """Starts exactly one processing path per version.

    Launch failures are logged and swallowed: the version already exists and
    simply stays without pages.
    """

    def __init__(self, launcher: TaskLauncher):
        self.launcher = launcher

    async def dispatch(self, version: DocumentVersion, team_id: str) -> Optional[PipelineTask]:
        """Launch the task matching the version's type.

        Returns:
            The launched task, or None when the type needs no processing or the
            launch failed
        """
        payload = build_payload(version, team_id)
        task = task_for_type(version.type)
        if task is None:
            LOGGER.info(
                f"No processing required for type '{version.type}'",
                extra=payload.log_context(),
            )
            return None

        try:
            await self.launcher.launch(task, payload)
        except Exception as e:
            LOGGER.error(
                f"Failed to launch {task.value}: {str(e)}",
                exc_info=True,
                extra={**payload.log_context(), "task": task.value},
            )
            return None

        LOGGER.info(f"Dispatched {task.value}", extra=payload.log_context())
        return task
