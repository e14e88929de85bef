"""Registering new document versions."""

from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from docpreview.core.exceptions import ConflictError, NotFoundError, ValidationError
from docpreview.database.models import DocumentVersion
from docpreview.repositories.document_repository import DocumentRepository
from docpreview.repositories.version_repository import DocumentVersionRepository
from docpreview.services.base_service import BaseService
from docpreview.utils.logging import get_logger

LOGGER = get_logger(__name__)


class VersionService(BaseService):
    """Creates the next version of a document and makes it the primary one."""

    def __init__(self, session: AsyncSession):
        super().__init__()
        self.document_repo = DocumentRepository(session)
        self.version_repo = DocumentVersionRepository(session)

    async def create_version(
        self,
        document_id: UUID,
        team_id: str,
        file: str,
        type: str,
        storage_type: str,
        num_pages: Optional[int] = None,
        content_type: Optional[str] = None,
        file_size: Optional[int] = None,
    ) -> DocumentVersion:
        """Create version ``latest + 1`` and demote the document's other versions.

        Raises:
            NotFoundError: If the document does not exist for the team
        """
        return await self.execute(
            document_id=document_id,
            team_id=team_id,
            file=file,
            type=type,
            storage_type=storage_type,
            num_pages=num_pages,
            content_type=content_type,
            file_size=file_size,
        )

    def validate(self, document_id=None, team_id=None, file=None, type=None, storage_type=None, **kwargs):
        if not file:
            raise ValidationError("file is required")
        if not type:
            raise ValidationError("type is required")

    async def run(
        self,
        document_id: UUID,
        team_id: str,
        file: str,
        type: str,
        storage_type: str,
        num_pages: Optional[int] = None,
        content_type: Optional[str] = None,
        file_size: Optional[int] = None,
    ) -> DocumentVersion:
        document = await self.document_repo.get_by_id(document_id)
        if document is None or document.team_id != team_id:
            raise NotFoundError(f"Document {document_id} not found")

        latest = await self.document_repo.latest_version_number(document_id)
        try:
            version = await self.version_repo.create_version(
                document_id=document_id,
                file=file,
                type=type,
                storage_type=storage_type,
                version_number=latest + 1,
                num_pages=num_pages,
                content_type=content_type,
                file_size=file_size,
                is_primary=True,
            )
        except IntegrityError as e:
            raise ConflictError(
                f"Version {latest + 1} of document {document_id} already exists",
                original_error=e,
            ) from e
        await self.version_repo.demote_other_versions(document_id, version.id)

        LOGGER.info(
            f"Created version {version.version_number}",
            extra={"document_id": str(document_id), "version_id": str(version.id), "team_id": team_id},
        )
        return version
