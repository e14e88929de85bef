"""Repositories over the relational metadata store."""

from docpreview.repositories.document_repository import DocumentRepository
from docpreview.repositories.page_repository import DocumentPageRepository
from docpreview.repositories.version_repository import DocumentVersionRepository

__all__ = [
    "DocumentRepository",
    "DocumentVersionRepository",
    "DocumentPageRepository",
]
