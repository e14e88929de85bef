from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from docpreview.database.models import DocumentPage
from docpreview.repositories.base_repository import BaseRepository
from docpreview.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DocumentPageRepository(BaseRepository[DocumentPage]):
    """Create-once access to rendered pages, unique on (version_id, page_number)."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DocumentPage)

    async def find_page(self, version_id: UUID, page_number: int) -> Optional[DocumentPage]:
        result = await self.session.execute(
            select(DocumentPage).where(
                DocumentPage.version_id == version_id,
                DocumentPage.page_number == page_number,
            )
        )
        return result.scalar_one_or_none()

    async def get_or_create_page(
        self,
        version_id: UUID,
        page_number: int,
        file: str,
        storage_type: str,
        page_links: List[Dict[str, str]],
        page_metadata: Dict[str, Any],
    ) -> DocumentPage:
        """Return the page at ``(version_id, page_number)``, creating it if absent.

        An existing row is returned unchanged. When a concurrent run inserts the
        same page between the lookup and the insert, the unique constraint
        rejects the second insert and the winner's row is returned instead.
        """
        existing = await self.find_page(version_id, page_number)
        if existing is not None:
            LOGGER.info(
                f"Page {page_number} already exists, keeping existing record",
                extra={"version_id": str(version_id), "page_id": str(existing.id)},
            )
            return existing

        try:
            return await self.create(
                version_id=version_id,
                page_number=page_number,
                file=file,
                storage_type=storage_type,
                page_links=page_links,
                page_metadata=page_metadata,
            )
        except IntegrityError:
            # create() already rolled back
            winner = await self.find_page(version_id, page_number)
            if winner is None:
                raise
            LOGGER.warning(
                f"Concurrent insert of page {page_number} detected, using existing record",
                extra={"version_id": str(version_id), "page_id": str(winner.id)},
            )
            return winner

    async def list_pages(self, version_id: UUID) -> List[DocumentPage]:
        result = await self.session.execute(
            select(DocumentPage)
            .where(DocumentPage.version_id == version_id)
            .order_by(DocumentPage.page_number)
        )
        return list(result.scalars().all())
