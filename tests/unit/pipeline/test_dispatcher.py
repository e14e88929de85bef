"""Tests for PipelineDispatcher routing."""

from unittest.mock import AsyncMock

import pytest

from docpreview.pipeline.dispatcher import PipelineDispatcher, task_for_type
from docpreview.pipeline.types import PipelinePayload, PipelineTask


@pytest.fixture
def launcher():
    launcher = AsyncMock()
    launcher.launch = AsyncMock()
    return launcher


class TestTaskForType:

    @pytest.mark.parametrize(
        "document_type, expected",
        [
            ("docs", PipelineTask.CONVERT_OFFICE),
            ("slides", PipelineTask.CONVERT_OFFICE),
            ("cad", PipelineTask.CONVERT_CAD),
            ("dwg", PipelineTask.CONVERT_CAD),
            ("DXF", PipelineTask.CONVERT_CAD),
            ("video", PipelineTask.OPTIMIZE_VIDEO),
            ("pdf", PipelineTask.RASTERIZE),
            ("sheet", None),
            ("notion", None),
            (None, None),
        ],
    )
    def test_mapping(self, document_type, expected):
        assert task_for_type(document_type) is expected


class TestPipelineDispatcher:

    @pytest.mark.asyncio
    async def test_launches_exactly_one_task(self, launcher, make_version, document):
        version = make_version(type="video", version_number=4, file_size=42)

        task = await PipelineDispatcher(launcher).dispatch(version, "team_1")

        assert task is PipelineTask.OPTIMIZE_VIDEO
        launcher.launch.assert_awaited_once_with(
            PipelineTask.OPTIMIZE_VIDEO,
            PipelinePayload(
                document_id=str(document.id),
                version_id=str(version.id),
                team_id="team_1",
                file_size=42,
            ),
        )

    @pytest.mark.asyncio
    async def test_pdf_goes_straight_to_rasterization(self, launcher, make_version):
        version = make_version(type="pdf")

        assert await PipelineDispatcher(launcher).dispatch(version, "team_1") is PipelineTask.RASTERIZE

    @pytest.mark.asyncio
    async def test_unprocessed_types_are_skipped(self, launcher, make_version):
        version = make_version(type="sheet")

        assert await PipelineDispatcher(launcher).dispatch(version, "team_1") is None
        launcher.launch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_launch_failure_is_swallowed(self, launcher, make_version):
        launcher.launch.side_effect = ConnectionError("temporal unreachable")
        version = make_version(type="docs")

        assert await PipelineDispatcher(launcher).dispatch(version, "team_1") is None
        assert version.has_pages is False
