"""Shared conversion flow for converters that produce a canonical PDF.

Init -> FetchSource -> SubmitConversion (retried) -> SaveResult -> TriggerRasterization
"""

import asyncio
import os
from abc import abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from docpreview.config import settings
from docpreview.core.exceptions import AppError, NotFoundError, ValidationError
from docpreview.core.progress import ProgressReporter, ProgressTracker
from docpreview.core.retry import RetryPolicy
from docpreview.repositories.document_repository import DocumentRepository
from docpreview.repositories.version_repository import DocumentVersionRepository
from docpreview.services.base_service import BaseService
from docpreview.services.rasterization.rasterizer import RasterizationService
from docpreview.services.storage_service import StorageService, extract_document_key
from docpreview.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class SourceFile:
    """The uploaded original a converter works from."""
    name: str
    reference: str
    storage_type: str
    content_type: str


@dataclass
class ConversionResult:
    file: str
    storage_type: str
    rasterized: bool


class BaseConverter(BaseService):
    """Template for office and CAD conversion.

    Subclasses implement ``produce_pdf`` and ``output_name``. A successful
    conversion is durable: when the follow-up rasterization fails the version
    stays converted to PDF, just without pages.
    """

    stage_name = "Conversion"

    def __init__(
        self,
        session: AsyncSession,
        storage: Optional[StorageService] = None,
        rasterizer: Optional[RasterizationService] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        super().__init__()
        self.document_repo = DocumentRepository(session)
        self.version_repo = DocumentVersionRepository(session)
        self.storage = storage or StorageService()
        self.rasterizer = rasterizer or RasterizationService(session, storage=self.storage)
        self.retry_policy = retry_policy or RetryPolicy.from_settings(settings.conversion)
        self.sleep = sleep

    async def convert(
        self,
        document_id: UUID,
        version_id: UUID,
        team_id: str,
        progress: Optional[ProgressReporter] = None,
    ) -> Optional[ConversionResult]:
        """Convert a version's original file to PDF and rasterize it.

        Returns:
            ConversionResult, or None when the document, version or source is missing

        Raises:
            ConversionFailedError: When the converter rejects the file or retries run out
        """
        return await self.execute(
            document_id=document_id,
            version_id=version_id,
            team_id=team_id,
            progress=progress,
        )

    def validate(self, document_id=None, version_id=None, team_id=None, progress=None):
        if not document_id or not version_id or not team_id:
            raise ValidationError("document_id, version_id and team_id are required")

    async def run(
        self,
        document_id: UUID,
        version_id: UUID,
        team_id: str,
        progress: Optional[ProgressReporter] = None,
    ) -> Optional[ConversionResult]:
        tracker = ProgressTracker(self.stage_name, progress)
        context = {
            "document_id": str(document_id),
            "version_id": str(version_id),
            "team_id": team_id,
        }
        tracker(0, "Initializing...")

        found = await self.document_repo.get_with_version(document_id, version_id)
        if found is None or not found[1].original_file or not found[1].content_type:
            LOGGER.error("Document not found", extra=context)
            tracker(0, "Document not found")
            return None

        document, version = found
        source = SourceFile(
            name=document.name,
            reference=version.original_file,
            storage_type=version.storage_type,
            content_type=version.content_type,
        )

        tracker(10, "Retrieving file...")

        try:
            source_url = await self.storage.get_read_url(source.storage_type, source.reference)
            pdf_data = await self.produce_pdf(source, source_url, tracker, context)
        except NotFoundError:
            LOGGER.error("Source file not found", extra={**context, "reference": source.reference})
            tracker(0, "Document not found")
            return None
        except AppError as e:
            LOGGER.error(f"{self.stage_name} failed: {str(e)}", extra=context)
            tracker(0, "Conversion failed")
            raise

        tracker(70, "Conversion complete, saving result...")

        stored = await self.storage.put_object(
            team_id=team_id,
            file_name=self.output_name(source.name),
            content_type="application/pdf",
            content=pdf_data,
            document_key=extract_document_key(source.reference),
        )
        await self.version_repo.update_file(
            version_id,
            file=stored.reference,
            storage_type=stored.storage_type,
            type="pdf",
        )
        LOGGER.info("Document converted", extra={**context, "file": stored.reference})

        tracker(80, "Generating page previews...")

        try:
            result = await self.rasterizer.convert_pdf_to_images(
                document_id=document_id,
                version_id=version_id,
                team_id=team_id,
                progress=progress,
            )
            rasterized = result is not None
        except Exception as e:
            # The conversion stays; the version is simply left without pages
            rasterized = False
            LOGGER.error(
                f"Error converting PDF to images: {str(e)}",
                exc_info=True,
                extra=context,
            )

        tracker(100, "Conversion complete")
        return ConversionResult(
            file=stored.reference,
            storage_type=stored.storage_type,
            rasterized=rasterized,
        )

    @abstractmethod
    async def produce_pdf(
        self,
        source: SourceFile,
        source_url: str,
        tracker: ProgressTracker,
        context: Dict[str, Any],
    ) -> bytes:
        """Run the external conversion and return the PDF bytes."""
        pass

    @abstractmethod
    def output_name(self, document_name: str) -> str:
        pass


def strip_extension(name: str) -> str:
    return os.path.splitext(name)[0]
