"""Workflow running one pipeline stage as a Temporal activity.

Activities are referenced by name so this module does not import services,
database code or other non-deterministic modules.
"""

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from docpreview.pipeline.types import PipelinePayload, PipelineTask

ACTIVITY_BY_TASK = {
    PipelineTask.CONVERT_OFFICE.value: "convert_office_to_pdf",
    PipelineTask.CONVERT_CAD.value: "convert_cad_to_pdf",
    PipelineTask.OPTIMIZE_VIDEO.value: "optimize_video",
    PipelineTask.RASTERIZE.value: "convert_pdf_to_image",
}

START_TO_CLOSE_TIMEOUTS = {
    PipelineTask.CONVERT_OFFICE.value: timedelta(minutes=15),
    PipelineTask.CONVERT_CAD.value: timedelta(minutes=15),
    PipelineTask.OPTIMIZE_VIDEO.value: timedelta(hours=1),
    PipelineTask.RASTERIZE.value: timedelta(minutes=30),
}


@workflow.defn
class PipelineWorkflow:
    """Runs the activity for a pipeline task exactly once.

    Converters retry their own external calls, so the activity itself is
    never retried by Temporal.
    """

    @workflow.run
    async def run(self, task: str, payload: PipelinePayload) -> dict:
        activity_name = ACTIVITY_BY_TASK.get(task)
        if activity_name is None:
            raise ValueError(f"Unknown pipeline task: {task}")

        workflow.logger.info(f"Starting {task} for version {payload.version_id}")

        return await workflow.execute_activity(
            activity_name,
            payload,
            start_to_close_timeout=START_TO_CLOSE_TIMEOUTS[task],
            retry_policy=RetryPolicy(maximum_attempts=1),
        )
