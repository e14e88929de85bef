"""Pytest configuration and shared fixtures."""

import threading
import uuid
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from docpreview.database.models import Document, DocumentPage, DocumentVersion
from docpreview.main import app
from docpreview.services.rasterization.pdf_renderer import EncodedImage, PageLink, RenderedPage
from docpreview.services.storage_service import STORAGE_TYPE, StoredObject, build_object_key

TEAM_ID = "team_1"


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


class ProgressRecorder:
    """Progress observer that remembers every update."""

    def __init__(self):
        self.updates = []

    def __call__(self, percentage: int, message: str) -> None:
        self.updates.append((percentage, message))

    @property
    def percentages(self) -> List[int]:
        return [percentage for percentage, _ in self.updates]

    @property
    def last(self):
        return self.updates[-1]


class FakeStorage:
    """In-memory stand-in for StorageService."""

    def __init__(self, missing: Optional[set] = None, source_bytes: bytes = b"%PDF-1.7 source"):
        self.missing = missing or set()
        self.source_bytes = source_bytes
        self.uploads: Dict[str, dict] = {}
        self.downloads: List[str] = []

    async def get_read_url(self, storage_type: str, reference: str, expires_in: Optional[int] = None) -> str:
        from docpreview.core.exceptions import NotFoundError

        if reference in self.missing:
            raise NotFoundError(f"Object not found: {reference}")
        return f"https://storage.test/signed/{reference}"

    async def put_object(self, team_id, file_name, content_type, content, document_key=None) -> StoredObject:
        if not isinstance(content, bytes):
            content = b"".join([chunk async for chunk in content])
        key = build_object_key(team_id, file_name, document_key)
        self.uploads[key] = {"content_type": content_type, "content": content}
        return StoredObject(storage_type=STORAGE_TYPE, reference=key)

    async def download_to_file(self, url: str, destination) -> int:
        self.downloads.append(url)
        with open(destination, "wb") as handle:
            handle.write(self.source_bytes)
        return len(self.source_bytes)


class InMemoryVersionRepository:
    """Version repository keeping rows in a dict."""

    def __init__(self, versions: Optional[List[DocumentVersion]] = None):
        self.rows: Dict[uuid.UUID, DocumentVersion] = {v.id: v for v in versions or []}

    def add(self, version: DocumentVersion) -> DocumentVersion:
        self.rows[version.id] = version
        return version

    async def get_by_id(self, id):
        return self.rows.get(id)

    async def update(self, id, **fields):
        version = self.rows.get(id)
        if version is None:
            return None
        for key, value in fields.items():
            setattr(version, key, value)
        return version

    async def update_file(self, version_id, file, storage_type=None, type=None):
        fields = {"file": file}
        if storage_type is not None:
            fields["storage_type"] = storage_type
        if type is not None:
            fields["type"] = type
        return await self.update(version_id, **fields)

    async def set_orientation(self, version_id, is_vertical):
        return await self.update(version_id, is_vertical=is_vertical)

    async def set_length(self, version_id, length):
        return await self.update(version_id, length=length)

    async def mark_pages_ready(self, version_id, num_pages):
        return await self.update(version_id, num_pages=num_pages, has_pages=True, is_primary=True)

    async def demote_other_versions(self, document_id, keep_version_id):
        demoted = 0
        for version in self.rows.values():
            if version.document_id == document_id and version.id != keep_version_id:
                version.is_primary = False
                demoted += 1
        return demoted


class InMemoryPageRepository:
    """Page repository enforcing (version_id, page_number) uniqueness."""

    def __init__(self):
        self.rows: Dict[tuple, DocumentPage] = {}

    async def find_page(self, version_id, page_number):
        return self.rows.get((version_id, page_number))

    async def get_or_create_page(self, version_id, page_number, file, storage_type, page_links, page_metadata):
        existing = self.rows.get((version_id, page_number))
        if existing is not None:
            return existing
        page = DocumentPage(
            id=uuid.uuid4(),
            version_id=version_id,
            page_number=page_number,
            file=file,
            storage_type=storage_type,
            page_links=page_links,
            page_metadata=page_metadata,
        )
        self.rows[(version_id, page_number)] = page
        return page

    async def list_pages(self, version_id):
        return sorted(
            (page for (vid, _), page in self.rows.items() if vid == version_id),
            key=lambda page: page.page_number,
        )


class FakeRenderer:
    """PdfRenderer stand-in producing tiny encoded pages."""

    def __init__(self, page_count: int, fail_on: Optional[int] = None, width: float = 612, height: float = 792):
        self._page_count = page_count
        self.fail_on = fail_on
        self.width = width
        self.height = height
        self.rendered: List[int] = []
        self.threads = {}
        self.closed = False

    def open(self):
        self.threads["open"] = threading.get_ident()
        return self

    def close(self):
        self.threads["close"] = threading.get_ident()
        self.closed = True

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def page_count(self) -> int:
        self.threads["page_count"] = threading.get_ident()
        return self._page_count

    def render_page(self, page_number: int) -> RenderedPage:
        if page_number == self.fail_on:
            raise RuntimeError(f"corrupt page {page_number}")
        self.rendered.append(page_number)
        return RenderedPage(
            page_number=page_number,
            width=self.width,
            height=self.height,
            scale_factor=3,
            image=EncodedImage(data=f"page-{page_number}".encode(), format="png"),
            links=[PageLink(uri="https://example.com", bounding_box=(10, 20, 110, 40))],
        )


def build_document(name: str = "Quarterly Report.docx", team_id: str = TEAM_ID) -> Document:
    return Document(id=uuid.uuid4(), team_id=team_id, name=name)


def build_version(document_id: uuid.UUID, **overrides) -> DocumentVersion:
    fields = dict(
        id=uuid.uuid4(),
        document_id=document_id,
        file=f"{TEAM_ID}/doc_abc123/quarterly-report.pdf",
        original_file=f"{TEAM_ID}/doc_abc123/quarterly-report.pdf",
        type="pdf",
        storage_type=STORAGE_TYPE,
        num_pages=None,
        has_pages=False,
        is_primary=True,
        version_number=1,
        is_vertical=None,
        length=None,
        content_type="application/pdf",
        file_size=1024,
    )
    fields.update(overrides)
    return DocumentVersion(**fields)


@pytest.fixture
def progress_recorder() -> ProgressRecorder:
    return ProgressRecorder()


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def version_store() -> InMemoryVersionRepository:
    return InMemoryVersionRepository()


@pytest.fixture
def page_store() -> InMemoryPageRepository:
    return InMemoryPageRepository()


@pytest.fixture
def make_document():
    return build_document


@pytest.fixture
def document() -> Document:
    return build_document()


@pytest.fixture
def make_version(version_store, document):
    """Create a version of ``document`` and register it in ``version_store``."""

    def _make(**overrides) -> DocumentVersion:
        overrides.setdefault("document_id", document.id)
        return version_store.add(build_version(**overrides))

    return _make


@pytest.fixture
def make_renderer():
    """Build a renderer factory; the created renderers are kept on ``factory.renderers``."""

    def _make(page_count: int, fail_on: Optional[int] = None, **kwargs):
        def factory(path):
            renderer = FakeRenderer(page_count, fail_on=fail_on, **kwargs)
            factory.renderers.append(renderer)
            return renderer

        factory.renderers = []
        return factory

    return _make
