"""Tests for DocumentPageRepository.get_or_create_page."""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from docpreview.database.models import DocumentPage
from docpreview.repositories.page_repository import DocumentPageRepository


class MockSession:
    """Async session double whose flush can simulate a unique-constraint loss."""

    def __init__(self, flush_error=None):
        self.added = []
        self.flush_error = flush_error
        self.commit = AsyncMock()
        self.rollback = AsyncMock()
        self.execute = AsyncMock()

    def add(self, instance):
        self.added.append(instance)

    async def flush(self):
        if self.flush_error is not None:
            raise self.flush_error


def lookup_result(page):
    result = MagicMock()
    result.scalar_one_or_none.return_value = page
    return result


def make_page(version_id, page_number=1):
    return DocumentPage(
        id=uuid.uuid4(),
        version_id=version_id,
        page_number=page_number,
        file="team_1/doc_1/page-1.png",
        storage_type="SUPABASE_PATH",
        page_links=[],
        page_metadata={},
    )


PAGE_FIELDS = dict(
    page_number=1,
    file="team_1/doc_1/page-1.png",
    storage_type="SUPABASE_PATH",
    page_links=[{"uri": "https://example.com", "boundingBox": "0,0,10,10"}],
    page_metadata={"scaleFactor": 3},
)


class TestGetOrCreatePage:

    @pytest.mark.asyncio
    async def test_existing_page_is_returned_unchanged(self):
        version_id = uuid.uuid4()
        existing = make_page(version_id)
        session = MockSession()
        session.execute.return_value = lookup_result(existing)
        repo = DocumentPageRepository(session)

        page = await repo.get_or_create_page(version_id=version_id, **PAGE_FIELDS)

        assert page is existing
        assert page.page_links == []
        assert session.added == []
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_creates_missing_page(self):
        version_id = uuid.uuid4()
        session = MockSession()
        session.execute.return_value = lookup_result(None)
        repo = DocumentPageRepository(session)

        page = await repo.get_or_create_page(version_id=version_id, **PAGE_FIELDS)

        assert session.added == [page]
        assert page.version_id == version_id
        assert page.page_metadata == {"scaleFactor": 3}
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lost_insert_race_returns_winner(self):
        version_id = uuid.uuid4()
        winner = make_page(version_id)
        session = MockSession(flush_error=IntegrityError("INSERT", {}, Exception("duplicate key")))
        session.execute.side_effect = [lookup_result(None), lookup_result(winner)]
        repo = DocumentPageRepository(session)

        page = await repo.get_or_create_page(version_id=version_id, **PAGE_FIELDS)

        assert page is winner
        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_integrity_error_without_winner_propagates(self):
        version_id = uuid.uuid4()
        session = MockSession(flush_error=IntegrityError("INSERT", {}, Exception("fk violation")))
        session.execute.side_effect = [lookup_result(None), lookup_result(None)]
        repo = DocumentPageRepository(session)

        with pytest.raises(IntegrityError):
            await repo.get_or_create_page(version_id=version_id, **PAGE_FIELDS)
