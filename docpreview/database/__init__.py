"""Database module for SQLAlchemy models and session management."""

from docpreview.database.base import Base, async_session_maker, engine
from docpreview.database.models import Document, DocumentPage, DocumentVersion
from docpreview.database.session import get_async_session

__all__ = [
    "Base",
    "engine",
    "async_session_maker",
    "get_async_session",
    "Document",
    "DocumentVersion",
    "DocumentPage",
]
