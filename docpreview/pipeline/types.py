"""Task identifiers and payloads shared by the API, the runners and Temporal.

Kept free of database and service imports so workflow code can load it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class PipelineTask(str, Enum):
    CONVERT_OFFICE = "convert-office-to-pdf"
    CONVERT_CAD = "convert-cad-to-pdf"
    OPTIMIZE_VIDEO = "optimize-video"
    RASTERIZE = "convert-pdf-to-image"


@dataclass
class PipelinePayload:
    """Identifiers a pipeline task needs; ids travel as strings."""
    document_id: str
    version_id: str
    team_id: str
    file_size: Optional[int] = None

    def log_context(self) -> dict:
        return {
            "document_id": self.document_id,
            "version_id": self.version_id,
            "team_id": self.team_id,
        }
