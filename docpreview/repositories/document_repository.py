from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from docpreview.database.models import Document, DocumentVersion
from docpreview.repositories.base_repository import BaseRepository
from docpreview.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DocumentRepository(BaseRepository[Document]):
    """Read access to documents and their versions."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Document)

    async def get_with_version(
        self,
        document_id: UUID,
        version_id: UUID,
    ) -> Optional[Tuple[Document, DocumentVersion]]:
        """Fetch a document together with one of its versions.

        Args:
            document_id: Document ID
            version_id: Version ID, must belong to the document

        Returns:
            ``(document, version)`` or None when either is missing
        """
        result = await self.session.execute(
            select(Document, DocumentVersion)
            .join(DocumentVersion, DocumentVersion.document_id == Document.id)
            .where(Document.id == document_id, DocumentVersion.id == version_id)
        )
        row = result.first()
        if row is None:
            LOGGER.warning(
                "Document version not found",
                extra={"document_id": str(document_id), "version_id": str(version_id)},
            )
            return None
        return row[0], row[1]

    async def latest_version_number(self, document_id: UUID) -> int:
        """Highest version number of a document, 0 when it has none."""
        result = await self.session.execute(
            select(func.max(DocumentVersion.version_number)).where(
                DocumentVersion.document_id == document_id
            )
        )
        return result.scalar_one_or_none() or 0
