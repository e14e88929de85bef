"""PDF page rasterization."""

from docpreview.services.rasterization.pdf_renderer import (
    PdfRenderer,
    RenderedPage,
    encode_smallest,
    select_encoding,
    select_scale_factor,
)
from docpreview.services.rasterization.rasterizer import RasterizationResult, RasterizationService

__all__ = [
    "PdfRenderer",
    "RenderedPage",
    "RasterizationResult",
    "RasterizationService",
    "encode_smallest",
    "select_encoding",
    "select_scale_factor",
]
