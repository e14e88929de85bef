"""Temporal client configuration and connection management."""

from typing import Optional

from temporalio.client import Client as TemporalClient

from docpreview.config import settings
from docpreview.utils.logging import get_logger

LOGGER = get_logger(__name__)


class TemporalClientManager:
    """Manages a lazily connected Temporal client."""

    def __init__(self):
        self._client: Optional[TemporalClient] = None

    async def get_client(self) -> TemporalClient:
        """Get or create the Temporal client.

        Returns:
            TemporalClient: Connected Temporal client
        """
        if self._client is None:
            LOGGER.info(f"Connecting to Temporal at {settings.temporal_target}")
            self._client = await TemporalClient.connect(
                settings.temporal_target,
                namespace=settings.temporal.namespace,
            )
        return self._client


_temporal_manager = TemporalClientManager()


async def get_temporal_client() -> TemporalClient:
    return await _temporal_manager.get_client()
