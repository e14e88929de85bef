"""SQLAlchemy models for documents, versions and rendered pages."""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    ForeignKey,
    Integer,
    String,
    TIMESTAMP,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docpreview.database.base import Base

# JSONB on Postgres, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Document(Base):
    """Uploaded document; owns an ordered list of versions."""

    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    team_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )

    versions: Mapped[list["DocumentVersion"]] = relationship(
        "DocumentVersion",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="DocumentVersion.version_number",
    )


class DocumentVersion(Base):
    """One uploaded or converted revision of a document's content."""

    __tablename__ = "document_versions"
    __table_args__ = (
        UniqueConstraint("document_id", "version_number", name="uq_document_versions_document_version"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    file: Mapped[str] = mapped_column(String, nullable=False)
    original_file: Mapped[str | None] = mapped_column(String, nullable=True)
    type: Mapped[str | None] = mapped_column(String, nullable=True)  # pdf | docs | slides | video | sheet | cad ...
    storage_type: Mapped[str] = mapped_column(String, nullable=False)
    num_pages: Mapped[int | None] = mapped_column(Integer, nullable=True)
    has_pages: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    version_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_vertical: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    length: Mapped[int | None] = mapped_column(Integer, nullable=True)  # seconds
    content_type: Mapped[str | None] = mapped_column(String, nullable=True)
    file_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    document: Mapped["Document"] = relationship("Document", back_populates="versions")
    pages: Mapped[list["DocumentPage"]] = relationship(
        "DocumentPage",
        back_populates="version",
        cascade="all, delete-orphan",
        order_by="DocumentPage.page_number",
    )


class DocumentPage(Base):
    """Rendered page image plus link hot-zones; written once, never mutated."""

    __tablename__ = "document_pages"
    __table_args__ = (
        UniqueConstraint("version_id", "page_number", name="uq_document_pages_version_page"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    version_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("document_versions.id", ondelete="CASCADE"), nullable=False
    )
    page_number: Mapped[int] = mapped_column(Integer, nullable=False)
    file: Mapped[str] = mapped_column(String, nullable=False)
    storage_type: Mapped[str] = mapped_column(String, nullable=False)
    page_links: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    # "metadata" is reserved on declarative classes
    page_metadata: Mapped[dict | None] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )

    version: Mapped["DocumentVersion"] = relationship("DocumentVersion", back_populates="pages")
