"""Office documents (docs, slides) to PDF."""

import asyncio
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import httpx

from docpreview.config import settings
from docpreview.core.exceptions import ConfigurationError, LocalProcessingError, PermanentExternalError
from docpreview.core.progress import ProgressTracker
from docpreview.core.retry import call_with_retry, raise_for_conversion_status
from docpreview.services.conversion.base_converter import BaseConverter, SourceFile, strip_extension
from docpreview.utils.logging import get_logger

LOGGER = get_logger(__name__)

OFFICE_CONTENT_TYPE_EXTENSIONS = {
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": ".pptx",
    "application/vnd.ms-powerpoint": ".ppt",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
    "application/vnd.ms-excel": ".xls",
    "application/vnd.oasis.opendocument.text": ".odt",
    "application/vnd.oasis.opendocument.presentation": ".odp",
    "application/vnd.oasis.opendocument.spreadsheet": ".ods",
    "application/rtf": ".rtf",
    "text/plain": ".txt",
    "text/csv": ".csv",
}


def office_input_name(document_name: str, content_type: str) -> str:
    """File name handed to the renderer, which picks its import filter by extension.

    A name without an extension gets one derived from the content type.
    """
    name = Path(document_name).name or "source"
    if Path(name).suffix:
        return name
    extension = OFFICE_CONTENT_TYPE_EXTENSIONS.get(content_type.split(";")[0].strip().lower(), "")
    return f"{name}{extension}"


class OfficeRenderer(Protocol):
    """Batch office-to-PDF renderer."""

    async def convert(self, input_path: Path, work_dir: Path) -> bytes:
        ...


class GotenbergOfficeRenderer:
    """Render through a Gotenberg instance's LibreOffice route."""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[int] = None):
        self.base_url = (base_url or settings.conversion.gotenberg_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout

    async def convert(self, input_path: Path, work_dir: Path) -> bytes:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            with open(input_path, "rb") as handle:
                response = await client.post(
                    f"{self.base_url}/forms/libreoffice/convert",
                    files={"files": (input_path.name, handle)},
                )
        raise_for_conversion_status(response, "Office renderer")

        if not response.content.startswith(b"%PDF"):
            raise PermanentExternalError("Office renderer returned a response that is not a PDF")
        return response.content


class LibreOfficeRenderer:
    """Render with a local headless LibreOffice."""

    def __init__(self, binary: Optional[str] = None):
        self.binary = binary or settings.conversion.libreoffice_binary

    async def convert(self, input_path: Path, work_dir: Path) -> bytes:
        out_dir = work_dir / "out"
        out_dir.mkdir(exist_ok=True)

        # A private profile lets several conversions run side by side
        process = await asyncio.create_subprocess_exec(
            self.binary,
            f"-env:UserInstallation={(work_dir / 'profile').as_uri()}",
            "--headless",
            "--convert-to",
            "pdf",
            "--outdir",
            str(out_dir),
            str(input_path),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await process.communicate()

        if process.returncode != 0:
            raise LocalProcessingError(
                f"LibreOffice exited with {process.returncode}: {stderr.decode(errors='replace')[:500]}"
            )

        output = out_dir / f"{input_path.stem}.pdf"
        if not output.exists():
            raise LocalProcessingError(f"LibreOffice produced no output for {input_path.name}")
        return output.read_bytes()


def build_office_renderer(backend: Optional[str] = None) -> OfficeRenderer:
    backend = backend or settings.conversion.office_backend
    if backend == "gotenberg":
        return GotenbergOfficeRenderer()
    if backend == "libreoffice":
        return LibreOfficeRenderer()
    raise ConfigurationError(f"Unknown office conversion backend: {backend}")


class OfficeConverter(BaseConverter):
    """Converts docs and slides to PDF."""

    stage_name = "Office to PDF"

    def __init__(self, session, renderer: Optional[OfficeRenderer] = None, **kwargs):
        super().__init__(session, **kwargs)
        self.renderer = renderer or build_office_renderer()

    def output_name(self, document_name: str) -> str:
        return f"{strip_extension(document_name)}.pdf"

    async def produce_pdf(
        self,
        source: SourceFile,
        source_url: str,
        tracker: ProgressTracker,
        context: Dict[str, Any],
    ) -> bytes:
        with tempfile.TemporaryDirectory(prefix="office_conversion_") as temp_dir:
            work_dir = Path(temp_dir)
            input_path = work_dir / office_input_name(source.name, source.content_type)

            tracker(20, "Downloading file...")
            await call_with_retry(
                lambda: self.storage.download_to_file(source_url, input_path),
                self.retry_policy,
                description="source download",
                context=context,
                sleep=self.sleep,
            )

            tracker(30, "Converting document...")
            pdf_data = await call_with_retry(
                lambda: self.renderer.convert(input_path, work_dir),
                self.retry_policy,
                description="office conversion",
                context=context,
                sleep=self.sleep,
            )

        LOGGER.info(f"Conversion successful, {len(pdf_data)} bytes", extra=context)
        return pdf_data
