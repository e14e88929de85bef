"""Launch pipeline tasks as Temporal workflows."""

from typing import Awaitable, Callable, Optional

from temporalio.client import Client as TemporalClient

from docpreview.config import settings
from docpreview.pipeline.types import PipelinePayload, PipelineTask
from docpreview.temporal.client import get_temporal_client
from docpreview.temporal.workflows import PipelineWorkflow
from docpreview.utils.logging import get_logger

LOGGER = get_logger(__name__)


def workflow_id_for(task: PipelineTask, payload: PipelinePayload) -> str:
    """One running workflow per version and task."""
    return f"{task.value}-{payload.version_id}"


class TemporalTaskLauncher:
    """Starts a PipelineWorkflow and returns without waiting for its result."""

    def __init__(
        self,
        client_provider: Callable[[], Awaitable[TemporalClient]] = get_temporal_client,
        task_queue: Optional[str] = None,
    ):
        self.client_provider = client_provider
        self.task_queue = task_queue or settings.temporal.task_queue

    async def launch(self, task: PipelineTask, payload: PipelinePayload) -> None:
        client = await self.client_provider()
        workflow_id = workflow_id_for(task, payload)
        handle = await client.start_workflow(
            PipelineWorkflow.run,
            args=[task.value, payload],
            id=workflow_id,
            task_queue=self.task_queue,
        )
        LOGGER.info(
            f"Started workflow {handle.id}",
            extra={**payload.log_context(), "workflow_id": handle.id},
        )
