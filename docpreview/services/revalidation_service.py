"""Best-effort cache invalidation for documents whose pages changed."""

from typing import Optional
from uuid import UUID

import httpx

from docpreview.config import settings
from docpreview.utils.logging import get_logger

LOGGER = get_logger(__name__)


class RevalidationService:
    """Tell the viewer front end to drop cached links for a document."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.revalidation.base_url).rstrip("/")
        self.token = token if token is not None else settings.revalidation.token
        self.timeout = timeout or settings.http_timeout

    async def revalidate(self, document_id: UUID) -> bool:
        """Fire the revalidation hook. Never raises.

        Returns:
            True if the hook answered with a success status
        """
        if not self.base_url:
            LOGGER.debug("Revalidation disabled, no base URL configured")
            return False

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    f"{self.base_url}/api/revalidate",
                    params={"secret": self.token, "documentId": str(document_id)},
                )
        except httpx.HTTPError as e:
            LOGGER.warning(
                "Revalidation request failed",
                extra={"document_id": str(document_id), "error": str(e)},
            )
            return False

        if response.is_success:
            return True

        LOGGER.warning(
            "Revalidation hook returned an error",
            extra={"document_id": str(document_id), "status_code": response.status_code},
        )
        return False
