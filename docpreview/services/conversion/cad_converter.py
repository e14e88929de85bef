"""CAD drawings (dwg, dxf) to PDF through a task-graph conversion API."""

from typing import Any, Dict, Optional

import httpx

from docpreview.config import settings
from docpreview.core.exceptions import ConfigurationError, PermanentExternalError
from docpreview.core.progress import ProgressTracker
from docpreview.core.retry import call_with_retry, raise_for_conversion_status
from docpreview.services.conversion.base_converter import BaseConverter, SourceFile
from docpreview.utils.logging import get_logger

LOGGER = get_logger(__name__)

CAD_CONTENT_TYPE_EXTENSIONS = {
    "image/vnd.dwg": "dwg",
    "image/x-dwg": "dwg",
    "application/acad": "dwg",
    "application/dwg": "dwg",
    "image/vnd.dxf": "dxf",
    "image/x-dxf": "dxf",
    "application/dxf": "dxf",
}


def extension_from_content_type(content_type: str, file_name: str = "") -> str:
    """Input format for the converter, from the MIME type or the file name."""
    extension = CAD_CONTENT_TYPE_EXTENSIONS.get(content_type.split(";")[0].strip().lower())
    if extension:
        return extension
    if "." in file_name:
        return file_name.rsplit(".", 1)[1].lower()
    raise PermanentExternalError(f"Unsupported CAD content type: {content_type}")


def build_task_graph(source_url: str, file_name: str, input_format: str) -> Dict[str, Any]:
    """Import from URL, convert every layout to PDF, export by redirect."""
    return {
        "tasks": {
            "import-file-v1": {
                "operation": "import/url",
                "url": source_url,
                "filename": file_name,
            },
            "convert-file-v1": {
                "operation": "convert",
                "input": ["import-file-v1"],
                "input_format": input_format,
                "output_format": "pdf",
                "engine": "cadconverter",
                "all_layouts": True,
                "auto_zoom": False,
            },
            "export-file-v1": {
                "operation": "export/url",
                "input": ["convert-file-v1"],
                "inline": False,
                "archive_multiple_files": False,
            },
        },
        "redirect": True,
    }


class CadConverter(BaseConverter):
    """Converts CAD drawings to PDF."""

    stage_name = "CAD to PDF"

    def __init__(
        self,
        session,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(session, **kwargs)
        self.api_url = api_url if api_url is not None else settings.conversion.convert_api_url
        self.api_key = api_key if api_key is not None else settings.conversion.convert_api_key
        self.timeout = timeout or settings.http_timeout

    def output_name(self, document_name: str) -> str:
        return f"{document_name}.pdf"

    async def produce_pdf(
        self,
        source: SourceFile,
        source_url: str,
        tracker: ProgressTracker,
        context: Dict[str, Any],
    ) -> bytes:
        if not self.api_url:
            raise ConfigurationError("CONVERT_API_URL is not configured")

        payload = build_task_graph(
            source_url,
            source.name,
            extension_from_content_type(source.content_type, source.name),
        )

        tracker(20, "Converting document...")
        pdf_data = await call_with_retry(
            lambda: self._submit(payload),
            self.retry_policy,
            description="CAD conversion",
            context=context,
            sleep=self.sleep,
        )

        tracker(40, "Processing converted document...")
        LOGGER.info(f"CAD conversion returned {len(pdf_data)} bytes", extra=context)
        return pdf_data

    async def _submit(self, payload: Dict[str, Any]) -> bytes:
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            response = await client.post(
                self.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        if response.is_error:
            LOGGER.warning(
                f"Conversion API responded {response.status_code}",
                extra={"status_code": response.status_code, "body": response.text[:500]},
            )
        raise_for_conversion_status(response, "CAD conversion API")
        return response.content
