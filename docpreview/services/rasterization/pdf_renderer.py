"""PDF page rendering, encoding selection and link extraction.

Rendering uses pypdfium2, encoding uses Pillow and link annotations are read
with pypdf. PDFium is not thread-safe, so every call into it holds a
process-wide lock; callers may run ``open``, ``page_count`` and
``render_page`` in a worker thread.
"""

import io
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import pypdfium2 as pdfium
from PIL import Image
from pypdf import PdfReader
from pypdf.generic import ArrayObject, DictionaryObject, IndirectObject

# Pages at least this wide (in points) are rendered at 2x, narrower ones at 3x
WIDE_PAGE_THRESHOLD = 1600
WIDE_PAGE_SCALE = 2
DEFAULT_SCALE = 3
JPEG_QUALITY = 80

_PDFIUM_LOCK = threading.Lock()


def select_scale_factor(width_points: float) -> int:
    return WIDE_PAGE_SCALE if width_points >= WIDE_PAGE_THRESHOLD else DEFAULT_SCALE


@dataclass(frozen=True)
class EncodedImage:
    data: bytes
    format: str  # png | jpeg

    @property
    def content_type(self) -> str:
        return f"image/{self.format}"

    @property
    def size(self) -> int:
        return len(self.data)


def select_encoding(png_data: bytes, jpeg_data: bytes) -> EncodedImage:
    """Pick the smaller encoding; PNG wins ties."""
    if len(png_data) <= len(jpeg_data):
        return EncodedImage(data=png_data, format="png")
    return EncodedImage(data=jpeg_data, format="jpeg")


def encode_smallest(image: Image.Image, quality: int = JPEG_QUALITY) -> EncodedImage:
    """Encode an image as both PNG and JPEG and keep the smaller one."""
    if image.mode != "RGB":
        image = image.convert("RGB")

    png_buffer = io.BytesIO()
    image.save(png_buffer, format="PNG")

    jpeg_buffer = io.BytesIO()
    image.save(jpeg_buffer, format="JPEG", quality=quality)

    return select_encoding(png_buffer.getvalue(), jpeg_buffer.getvalue())


def format_coordinate(value: float) -> str:
    """Render a coordinate without a trailing ``.0`` for whole numbers."""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


@dataclass(frozen=True)
class PageLink:
    uri: str
    bounding_box: Tuple[float, float, float, float]

    def to_dict(self) -> Dict[str, str]:
        return {
            "uri": self.uri,
            "boundingBox": ",".join(format_coordinate(v) for v in self.bounding_box),
        }


@dataclass
class RenderedPage:
    page_number: int
    width: float
    height: float
    scale_factor: int
    image: EncodedImage
    links: List[PageLink] = field(default_factory=list)

    @property
    def is_vertical(self) -> bool:
        return self.height > self.width

    @property
    def metadata(self) -> Dict[str, float]:
        return {
            "originalWidth": self.width,
            "originalHeight": self.height,
            "renderedWidth": self.width * self.scale_factor,
            "renderedHeight": self.height * self.scale_factor,
            "scaleFactor": self.scale_factor,
        }


class PdfRenderer:
    """Open a PDF file once and render its pages on demand.

    Use as a context manager, or call ``open`` and ``close`` explicitly;
    page numbers are 1-based.
    """

    def __init__(self, path: Union[str, Path], jpeg_quality: int = JPEG_QUALITY):
        self.path = Path(path)
        self.jpeg_quality = jpeg_quality
        self._pdf = None
        self._reader = None
        self._page_ids = None

    def open(self) -> "PdfRenderer":
        """Parse the file with both PDFium and pypdf; blocking."""
        with _PDFIUM_LOCK:
            self._pdf = pdfium.PdfDocument(str(self.path))
        self._reader = PdfReader(str(self.path))
        return self

    def close(self) -> None:
        if self._pdf is not None:
            with _PDFIUM_LOCK:
                self._pdf.close()
            self._pdf = None
        self._reader = None
        self._page_ids = None

    def __enter__(self) -> "PdfRenderer":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def page_count(self) -> int:
        with _PDFIUM_LOCK:
            return len(self._pdf)

    def render_page(self, page_number: int) -> RenderedPage:
        """Render one page at its deterministic scale and encode it."""
        with _PDFIUM_LOCK:
            page = self._pdf[page_number - 1]
            try:
                width, height = page.get_size()
                width, height = abs(width), abs(height)
                scale_factor = select_scale_factor(width)
                bitmap = page.render(scale=scale_factor)
                try:
                    image = bitmap.to_pil()
                finally:
                    bitmap.close()
            finally:
                page.close()

        encoded = encode_smallest(image, quality=self.jpeg_quality)
        image.close()

        return RenderedPage(
            page_number=page_number,
            width=width,
            height=height,
            scale_factor=scale_factor,
            image=encoded,
            links=self.extract_links(page_number),
        )

    def extract_links(self, page_number: int) -> List[PageLink]:
        """Return link annotations in top-left-origin page coordinates.

        External links carry their URI; links to another page of the same
        document are reported as ``#page=<n>`` (1-based).
        """
        page = self._reader.pages[page_number - 1]
        annotations = page.get("/Annots")
        if annotations is None:
            return []

        box = page.cropbox
        left, top = float(box.left), float(box.top)

        links = []
        for reference in annotations.get_object():
            annotation = reference.get_object()
            if annotation.get("/Subtype") != "/Link":
                continue
            uri = self._link_target(annotation)
            if uri is None:
                continue

            x0, y0, x1, y1 = (float(v) for v in annotation["/Rect"])
            x0, x1 = sorted((x0, x1))
            y0, y1 = sorted((y0, y1))
            links.append(
                PageLink(
                    uri=uri,
                    bounding_box=(x0 - left, top - y1, x1 - left, top - y0),
                )
            )
        return links

    def _link_target(self, annotation) -> Optional[str]:
        action = annotation.get("/A")
        if action is None:
            return self._internal_target(annotation.get("/Dest"))

        action = action.get_object()
        uri = action.get("/URI")
        if uri is not None:
            if isinstance(uri, bytes):
                uri = uri.decode("utf-8", errors="replace")
            return str(uri)
        if action.get("/S") == "/GoTo":
            return self._internal_target(action.get("/D"))
        return None

    def _internal_target(self, destination) -> Optional[str]:
        if destination is None:
            return None
        destination = destination.get_object()
        if isinstance(destination, DictionaryObject):
            destination = destination.get("/D")

        page_index = None
        if isinstance(destination, ArrayObject):
            if destination:
                page_index = self._page_index(destination[0])
        elif isinstance(destination, (str, bytes)):
            name = destination.decode("utf-8", errors="replace") if isinstance(destination, bytes) else str(destination)
            named = self._reader.named_destinations.get(name)
            if named is not None:
                page_index = self._reader.get_destination_page_number(named)

        if page_index is None or not 0 <= page_index < len(self._reader.pages):
            return None
        return f"#page={page_index + 1}"

    def _page_index(self, page_reference) -> Optional[int]:
        # Explicit destinations point at a page object, or at a 0-based index
        if isinstance(page_reference, IndirectObject):
            if self._page_ids is None:
                self._page_ids = {
                    page.indirect_reference.idnum: index
                    for index, page in enumerate(self._reader.pages)
                    if page.indirect_reference is not None
                }
            return self._page_ids.get(page_reference.idnum)
        if isinstance(page_reference, int):
            return int(page_reference)
        return None
