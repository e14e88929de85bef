"""Tests for the CAD-to-PDF converter."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from docpreview.core.exceptions import ConfigurationError, ConversionFailedError, PermanentExternalError
from docpreview.core.retry import RetryPolicy
from docpreview.services.conversion.cad_converter import (
    CadConverter,
    build_task_graph,
    extension_from_content_type,
)
from docpreview.services.rasterization.rasterizer import RasterizationResult

API_URL = "https://convert.test/v2/jobs"
_REAL_ASYNC_CLIENT = httpx.AsyncClient


def mock_transport(handler):
    def factory(*args, **kwargs):
        return _REAL_ASYNC_CLIENT(*args, transport=httpx.MockTransport(handler), **kwargs)

    return patch("httpx.AsyncClient", side_effect=factory)


@pytest.fixture
def cad_document(make_document):
    return make_document(name="Site Plan.dwg")


@pytest.fixture
def cad_version(make_version, cad_document):
    return make_version(
        document_id=cad_document.id,
        file="team_1/doc_cad42/site-plan.dwg",
        original_file="team_1/doc_cad42/site-plan.dwg",
        type="dwg",
        content_type="image/vnd.dwg",
    )


@pytest.fixture
def rasterizer():
    rasterizer = MagicMock()
    rasterizer.convert_pdf_to_images = AsyncMock(return_value=RasterizationResult(total_pages=1))
    return rasterizer


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def converter(cad_document, cad_version, version_store, fake_storage, rasterizer, sleep):
    converter = CadConverter(
        MagicMock(),
        api_url=API_URL,
        api_key="secret-key",
        storage=fake_storage,
        rasterizer=rasterizer,
        retry_policy=RetryPolicy(),
        sleep=sleep,
    )
    converter.document_repo = MagicMock()
    converter.document_repo.get_with_version = AsyncMock(return_value=(cad_document, cad_version))
    converter.version_repo = version_store
    return converter


class TestTaskGraph:

    def test_extension_from_content_type(self):
        assert extension_from_content_type("image/vnd.dwg") == "dwg"
        assert extension_from_content_type("application/dxf; charset=binary") == "dxf"
        assert extension_from_content_type("application/octet-stream", "plan.DXF") == "dxf"

    def test_unknown_content_type(self):
        with pytest.raises(PermanentExternalError):
            extension_from_content_type("application/octet-stream", "plan")

    def test_build_task_graph(self):
        graph = build_task_graph("https://storage.test/signed/plan", "Site Plan.dwg", "dwg")

        tasks = graph["tasks"]
        assert graph["redirect"] is True
        assert tasks["import-file-v1"] == {
            "operation": "import/url",
            "url": "https://storage.test/signed/plan",
            "filename": "Site Plan.dwg",
        }
        convert = tasks["convert-file-v1"]
        assert convert["input"] == ["import-file-v1"]
        assert convert["input_format"] == "dwg"
        assert convert["output_format"] == "pdf"
        assert convert["engine"] == "cadconverter"
        assert convert["all_layouts"] is True
        assert convert["auto_zoom"] is False
        assert tasks["export-file-v1"]["operation"] == "export/url"
        assert tasks["export-file-v1"]["input"] == ["convert-file-v1"]


class TestCadConverter:

    @pytest.mark.asyncio
    async def test_converts_with_redirect(
        self, converter, cad_document, cad_version, fake_storage, progress_recorder
    ):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.host == "convert.test":
                return httpx.Response(302, headers={"Location": "https://export.test/result.pdf"})
            return httpx.Response(200, content=b"%PDF-1.5 cad")

        with mock_transport(handler):
            result = await converter.convert(
                cad_document.id, cad_version.id, "team_1", progress=progress_recorder
            )

        submit = requests[0]
        assert submit.method == "POST"
        assert submit.headers["authorization"] == "Bearer secret-key"
        body = json.loads(submit.content)
        assert body["tasks"]["import-file-v1"]["url"] == "https://storage.test/signed/team_1/doc_cad42/site-plan.dwg"
        assert body["tasks"]["convert-file-v1"]["input_format"] == "dwg"

        assert result.file == "team_1/doc_cad42/site-plan-dwg.pdf"
        assert fake_storage.uploads[result.file]["content"] == b"%PDF-1.5 cad"
        assert cad_version.type == "pdf"
        assert cad_version.file == result.file
        assert progress_recorder.percentages == [0, 10, 20, 40, 70, 80, 100]

    @pytest.mark.asyncio
    async def test_server_errors_exhaust_retries(self, converter, cad_document, cad_version, sleep):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(502, text="bad gateway")

        with mock_transport(handler):
            with pytest.raises(ConversionFailedError) as exc_info:
                await converter.convert(cad_document.id, cad_version.id, "team_1")

        assert len(calls) == 3
        assert exc_info.value.attempts == 3
        assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0]
        assert cad_version.type == "dwg"

    @pytest.mark.asyncio
    async def test_client_error_fails_immediately(self, converter, cad_document, cad_version, sleep):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(422, json={"message": "unsupported drawing"})

        with mock_transport(handler):
            with pytest.raises(PermanentExternalError):
                await converter.convert(cad_document.id, cad_version.id, "team_1")

        assert len(calls) == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_converter_not_found_raises(
        self, converter, cad_document, cad_version, rasterizer, sleep, progress_recorder
    ):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(404, json={"message": "no such endpoint"})

        with mock_transport(handler):
            with pytest.raises(PermanentExternalError) as exc_info:
                await converter.convert(cad_document.id, cad_version.id, "team_1", progress=progress_recorder)

        assert "404" in str(exc_info.value)
        assert len(calls) == 1
        sleep.assert_not_awaited()
        assert cad_version.type == "dwg"
        assert progress_recorder.last == (20, "Conversion failed")
        rasterizer.convert_pdf_to_images.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_api_url(self, converter, cad_document, cad_version):
        converter.api_url = ""

        with pytest.raises(ConfigurationError):
            await converter.convert(cad_document.id, cad_version.id, "team_1")

    def test_output_name_keeps_extension(self, converter):
        assert converter.output_name("Site Plan.dwg") == "Site Plan.dwg.pdf"
