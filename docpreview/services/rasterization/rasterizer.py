"""Render every page of a version's canonical PDF into stored page images."""

import asyncio
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from docpreview.core.exceptions import NotFoundError, RasterizationError, ValidationError
from docpreview.core.progress import ProgressReporter, ProgressTracker, percent_of
from docpreview.database.models import DocumentPage
from docpreview.repositories.page_repository import DocumentPageRepository
from docpreview.repositories.version_repository import DocumentVersionRepository
from docpreview.services.base_service import BaseService
from docpreview.services.rasterization.pdf_renderer import PdfRenderer
from docpreview.services.revalidation_service import RevalidationService
from docpreview.services.storage_service import StorageService, extract_document_key
from docpreview.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class RasterizationResult:
    total_pages: int
    page_ids: List[UUID] = field(default_factory=list)


class RasterizationService(BaseService):
    """Turns a canonical PDF into one DocumentPage per page.

    Pages are processed strictly in order. The first failing page stops the
    run; pages already stored are kept and the version is left with
    ``has_pages = False``. Only a fully successful run records the page count,
    promotes the version to primary and demotes its siblings.
    """

    def __init__(
        self,
        session: AsyncSession,
        storage: Optional[StorageService] = None,
        revalidation: Optional[RevalidationService] = None,
        renderer_factory: Callable[[Path], PdfRenderer] = PdfRenderer,
    ):
        super().__init__()
        self.version_repo = DocumentVersionRepository(session)
        self.page_repo = DocumentPageRepository(session)
        self.storage = storage or StorageService()
        self.revalidation = revalidation or RevalidationService()
        self.renderer_factory = renderer_factory

    async def convert_pdf_to_images(
        self,
        document_id: UUID,
        version_id: UUID,
        team_id: str,
        progress: Optional[ProgressReporter] = None,
    ) -> Optional[RasterizationResult]:
        """Rasterize all pages of a version.

        Returns:
            RasterizationResult, or None when the version or its file is missing

        Raises:
            RasterizationError: If the page count cannot be determined or a page fails
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
    ) -> Optional[RasterizationResult]:
        tracker = ProgressTracker("PDF to image", progress)
        context = {
            "document_id": str(document_id),
            "version_id": str(version_id),
            "team_id": team_id,
        }
        tracker(0, "Initializing...")

        version = await self.version_repo.get_by_id(version_id)
        if version is None or version.document_id != document_id:
            LOGGER.error("Document version not found", extra=context)
            tracker(0, "Document not found")
            return None

        # Copy what we need: a rollback inside the page loop expires ORM state
        storage_type = version.storage_type
        file_reference = version.file
        num_pages = version.num_pages
        document_key = extract_document_key(file_reference)

        tracker(10, "Retrieving file...")

        with tempfile.TemporaryDirectory(prefix="rasterize_") as temp_dir:
            pdf_path = Path(temp_dir) / "document.pdf"
            try:
                signed_url = await self.storage.get_read_url(storage_type, file_reference)
                await self.storage.download_to_file(signed_url, pdf_path)
            except NotFoundError:
                LOGGER.error("Failed to retrieve document file", extra=context)
                tracker(0, "Failed to retrieve document")
                return None

            renderer = self.renderer_factory(pdf_path)
            await asyncio.to_thread(renderer.open)
            try:
                # Uploads record 1 when they could not count pages, so re-probe it
                if not num_pages or num_pages == 1:
                    num_pages = await asyncio.to_thread(renderer.page_count)
                    LOGGER.info(f"Probed page count: {num_pages}", extra=context)
                    if num_pages < 1:
                        tracker(0, "Failed to get number of pages")
                        raise RasterizationError(f"PDF for version {version_id} has no pages")

                tracker(20, "Converting document...")

                page_ids = []
                for page_number in range(1, num_pages + 1):
                    try:
                        page = await self._convert_page(
                            renderer,
                            version_id=version_id,
                            team_id=team_id,
                            page_number=page_number,
                            document_key=document_key,
                        )
                    except Exception as e:
                        LOGGER.error(
                            f"Failed to convert page {page_number}: {str(e)}",
                            exc_info=True,
                            extra={**context, "page_number": page_number},
                        )
                        tracker(
                            percent_of(page_number - 1, num_pages),
                            f"Error processing page {page_number} of {num_pages}",
                        )
                        raise RasterizationError(
                            f"Failed to convert page {page_number} of {num_pages}",
                            original_error=e,
                        ) from e

                    page_ids.append(page.id)
                    tracker(
                        percent_of(page_number, num_pages),
                        f"{page_number} / {num_pages} pages processed",
                    )
            finally:
                await asyncio.to_thread(renderer.close)

        await self.version_repo.mark_pages_ready(version_id, num_pages)
        await self.version_repo.demote_other_versions(document_id, version_id)

        await self.revalidation.revalidate(document_id)
        tracker(100, "Processing complete")

        LOGGER.info(f"Rasterized {num_pages} pages", extra=context)
        return RasterizationResult(total_pages=num_pages, page_ids=page_ids)

    async def _convert_page(
        self,
        renderer: PdfRenderer,
        version_id: UUID,
        team_id: str,
        page_number: int,
        document_key: Optional[str],
    ) -> DocumentPage:
        rendered = await asyncio.to_thread(renderer.render_page, page_number)

        if page_number == 1:
            await self.version_repo.set_orientation(version_id, rendered.is_vertical)

        LOGGER.debug(
            f"Page {page_number}: scale {rendered.scale_factor}, {rendered.image.format} "
            f"({rendered.image.size} bytes), {len(rendered.links)} links"
        )

        stored = await self.storage.put_object(
            team_id=team_id,
            file_name=f"page-{page_number}.{rendered.image.format}",
            content_type=rendered.image.content_type,
            content=rendered.image.data,
            document_key=document_key,
        )

        return await self.page_repo.get_or_create_page(
            version_id=version_id,
            page_number=page_number,
            file=stored.reference,
            storage_type=stored.storage_type,
            page_links=[link.to_dict() for link in rendered.links],
            page_metadata=rendered.metadata,
        )
