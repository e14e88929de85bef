"""Format converters producing a canonical PDF or optimized media."""

from docpreview.services.conversion.base_converter import BaseConverter, ConversionResult, SourceFile
from docpreview.services.conversion.cad_converter import CadConverter
from docpreview.services.conversion.office_converter import OfficeConverter, build_office_renderer
from docpreview.services.conversion.video_optimizer import (
    FfmpegClient,
    VideoMetadata,
    VideoOptimizationResult,
    VideoOptimizer,
    build_encoding_args,
)

__all__ = [
    "BaseConverter",
    "CadConverter",
    "ConversionResult",
    "FfmpegClient",
    "OfficeConverter",
    "SourceFile",
    "VideoMetadata",
    "VideoOptimizationResult",
    "VideoOptimizer",
    "build_encoding_args",
    "build_office_renderer",
]
