"""Temporal worker for the preview pipeline.

Registers PipelineWorkflow and the stage activities and polls the configured
task queue.
"""

import asyncio

from temporalio.worker import Worker

from docpreview.config import settings
from docpreview.temporal.activities import ALL_ACTIVITIES
from docpreview.temporal.client import get_temporal_client
from docpreview.temporal.workflows import PipelineWorkflow
from docpreview.utils.logging import get_logger

logger = get_logger(__name__)

MAX_CONCURRENT_ACTIVITIES = 5
MAX_CONCURRENT_WORKFLOW_TASKS = 10


async def main():
    """Start the Temporal worker."""
    logger.info(f"Connecting to Temporal server at {settings.temporal_target}")
    client = await get_temporal_client()
    logger.info("Successfully connected to Temporal server")

    worker = Worker(
        client,
        task_queue=settings.temporal.task_queue,
        workflows=[PipelineWorkflow],
        activities=ALL_ACTIVITIES,
        max_concurrent_activities=MAX_CONCURRENT_ACTIVITIES,
        max_concurrent_workflow_tasks=MAX_CONCURRENT_WORKFLOW_TASKS,
    )

    logger.info("=" * 60)
    logger.info("Temporal Worker Started Successfully")
    logger.info("=" * 60)
    logger.info(f"Task Queue: {settings.temporal.task_queue}")
    logger.info(f"Max Concurrent Activities: {MAX_CONCURRENT_ACTIVITIES}")
    logger.info(f"Registered Activities: {len(ALL_ACTIVITIES)}")
    logger.info("=" * 60)

    await worker.run()


def cli():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Worker stopped by user")
    except Exception as e:
        logger.error(f"Worker failed: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    cli()
