from typing import Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from docpreview.database.models import DocumentVersion
from docpreview.repositories.base_repository import BaseRepository
from docpreview.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DocumentVersionRepository(BaseRepository[DocumentVersion]):
    """Typed writes on document versions. No business rules live here."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DocumentVersion)

    async def create_version(
        self,
        document_id: UUID,
        file: str,
        type: str,
        storage_type: str,
        version_number: int,
        num_pages: Optional[int] = None,
        content_type: Optional[str] = None,
        file_size: Optional[int] = None,
        is_primary: bool = True,
    ) -> DocumentVersion:
        """Create a version whose current and original file are the upload."""
        return await self.create(
            document_id=document_id,
            file=file,
            original_file=file,
            type=type,
            storage_type=storage_type,
            version_number=version_number,
            num_pages=num_pages,
            content_type=content_type,
            file_size=file_size,
            is_primary=is_primary,
            has_pages=False,
        )

    async def update_file(
        self,
        version_id: UUID,
        file: str,
        storage_type: Optional[str] = None,
        type: Optional[str] = None,
    ) -> Optional[DocumentVersion]:
        """Point the version at a new stored file."""
        fields = {"file": file}
        if storage_type is not None:
            fields["storage_type"] = storage_type
        if type is not None:
            fields["type"] = type
        return await self.update(version_id, **fields)

    async def set_orientation(self, version_id: UUID, is_vertical: bool) -> Optional[DocumentVersion]:
        return await self.update(version_id, is_vertical=is_vertical)

    async def set_length(self, version_id: UUID, length: int) -> Optional[DocumentVersion]:
        return await self.update(version_id, length=length)

    async def mark_pages_ready(self, version_id: UUID, num_pages: int) -> Optional[DocumentVersion]:
        """Record the page count and make the version the primary one."""
        return await self.update(
            version_id,
            num_pages=num_pages,
            has_pages=True,
            is_primary=True,
        )

    async def demote_other_versions(self, document_id: UUID, keep_version_id: UUID) -> int:
        """Clear ``is_primary`` on every version of the document except one.

        Returns:
            Number of rows updated
        """
        try:
            result = await self.session.execute(
                update(DocumentVersion)
                .where(
                    DocumentVersion.document_id == document_id,
                    DocumentVersion.id != keep_version_id,
                )
                .values(is_primary=False)
            )
            await self.session.commit()
            LOGGER.debug(
                "Demoted sibling versions",
                extra={
                    "document_id": str(document_id),
                    "version_id": str(keep_version_id),
                    "rows": result.rowcount,
                },
            )
            return result.rowcount
        except SQLAlchemyError as e:
            await self.session.rollback()
            LOGGER.error(
                f"Error demoting versions of document {document_id}: {str(e)}",
                exc_info=True,
            )
            raise
