"""Best-effort progress reporting for pipeline stages."""

import math
from typing import Optional, Protocol

from temporalio import activity

from docpreview.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ProgressReporter(Protocol):
    """Observer receiving coarse ``(percentage, message)`` updates."""

    def __call__(self, percentage: int, message: str) -> None:
        ...


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (``round`` rounds to even)."""
    return int(math.floor(value + 0.5))


def percent_of(current: int, total: int) -> int:
    if total <= 0:
        return 0
    return round_half_up(current / total * 100)


class ProgressTracker:
    """Per-run progress state wrapping an optional observer.

    Percentages are clamped to 0..100 and never move backwards within a run.
    Observer failures are logged and dropped; the pipeline never depends on an
    update being delivered.
    """

    def __init__(self, stage: str, observer: Optional[ProgressReporter] = None):
        self.stage = stage
        self.observer = observer
        self.percentage = 0
        self.message = ""

    def update(self, percentage: int, message: str) -> None:
        percentage = max(self.percentage, min(100, max(0, int(percentage))))
        self.percentage = percentage
        self.message = message

        LOGGER.info(f"{self.stage} progress ({percentage}%): {message}")

        if self.observer is None:
            return
        try:
            self.observer(percentage, message)
        except Exception as e:
            LOGGER.warning(
                f"Progress observer failed for {self.stage}",
                extra={"stage": self.stage, "error": str(e)},
            )

    __call__ = update


class HeartbeatProgress:
    """Forward progress updates as Temporal activity heartbeats."""

    def __call__(self, percentage: int, message: str) -> None:
        if activity.in_activity():
            activity.heartbeat({"percentage": percentage, "message": message})
