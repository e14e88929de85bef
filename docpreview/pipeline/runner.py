"""In-process launcher running pipeline tasks as detached asyncio tasks."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from docpreview.pipeline.tasks import TASK_HANDLERS, TaskHandler
from docpreview.pipeline.types import PipelinePayload, PipelineTask
from docpreview.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BackgroundTaskRunner:
    """Runs tasks on the current event loop without awaiting them.

    Strong references are held until a task finishes; failures are reported to
    the log from a done-callback and never reach the caller.
    """

    def __init__(self, handlers: Optional[Dict[PipelineTask, TaskHandler]] = None):
        self.handlers = handlers if handlers is not None else TASK_HANDLERS
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def launch(self, task: PipelineTask, payload: PipelinePayload) -> None:
        handler = self.handlers[task]
        self._spawn(handler(payload, None), name=f"{task.value}-{payload.version_id}", payload=payload)

    def schedule(
        self,
        task_fn: Callable[[PipelinePayload], Awaitable[Any]],
        payload: PipelinePayload,
        delay_ms: int = 0,
    ) -> asyncio.Task:
        """Run ``task_fn(payload)`` after ``delay_ms`` milliseconds."""

        async def delayed():
            if delay_ms > 0:
                await asyncio.sleep(delay_ms / 1000)
            return await task_fn(payload)

        name = f"{getattr(task_fn, '__name__', 'task')}-{payload.version_id}"
        return self._spawn(delayed(), name=name, payload=payload)

    async def shutdown(self) -> None:
        """Cancel in-flight tasks and wait for them to unwind."""
        tasks = list(self._tasks)
        if not tasks:
            return
        LOGGER.info(f"Cancelling {len(tasks)} pipeline tasks")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    def _spawn(self, coro: Awaitable[Any], name: str, payload: PipelinePayload) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(t, payload))
        return task

    def _on_done(self, task: asyncio.Task, payload: PipelinePayload) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            LOGGER.warning(f"Pipeline task {task.get_name()} cancelled", extra=payload.log_context())
            return

        error = task.exception()
        if error is not None:
            LOGGER.error(
                f"Pipeline task {task.get_name()} failed: {str(error)}",
                exc_info=error,
                extra=payload.log_context(),
            )
        else:
            LOGGER.info(f"Pipeline task {task.get_name()} finished", extra=payload.log_context())
