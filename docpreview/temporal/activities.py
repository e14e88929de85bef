"""Temporal activities wrapping the pipeline tasks.

Each activity reports progress through heartbeats, logs failures with the
version's identifiers and re-raises so the workflow records the failure.
"""

import time
from typing import Any, Dict

from temporalio import activity

from docpreview.core.progress import HeartbeatProgress
from docpreview.pipeline import tasks
from docpreview.pipeline.types import PipelinePayload


def summarize(result: Any) -> Dict[str, Any]:
    """Reduce a stage result to a JSON-friendly dict."""
    if result is None:
        return {"status": "skipped"}

    summary = {"status": "completed"}
    for name in ("file", "storage_type", "rasterized", "total_pages", "duration", "skipped"):
        if hasattr(result, name):
            summary[name] = getattr(result, name)
    if hasattr(result, "page_ids"):
        summary["page_ids"] = [str(page_id) for page_id in result.page_ids]
    return summary


async def _run(name: str, handler, payload: PipelinePayload) -> Dict[str, Any]:
    start = time.time()
    activity.logger.info(f"Starting {name} for version {payload.version_id}", extra=payload.log_context())
    try:
        result = await handler(payload, HeartbeatProgress())
    except Exception as e:
        activity.logger.error(
            f"{name} failed for version {payload.version_id}: {str(e)}",
            exc_info=True,
            extra=payload.log_context(),
        )
        raise

    activity.logger.info(
        f"{name} finished in {time.time() - start:.2f}s",
        extra=payload.log_context(),
    )
    return summarize(result)


@activity.defn
async def convert_office_to_pdf(payload: PipelinePayload) -> Dict[str, Any]:
    return await _run("convert_office_to_pdf", tasks.convert_office_to_pdf, payload)


@activity.defn
async def convert_cad_to_pdf(payload: PipelinePayload) -> Dict[str, Any]:
    return await _run("convert_cad_to_pdf", tasks.convert_cad_to_pdf, payload)


@activity.defn
async def optimize_video(payload: PipelinePayload) -> Dict[str, Any]:
    return await _run("optimize_video", tasks.optimize_video, payload)


@activity.defn
async def convert_pdf_to_image(payload: PipelinePayload) -> Dict[str, Any]:
    return await _run("convert_pdf_to_image", tasks.convert_pdf_to_image, payload)


ALL_ACTIVITIES = [
    convert_office_to_pdf,
    convert_cad_to_pdf,
    optimize_video,
    convert_pdf_to_image,
]
