"""Request and response models for the HTTP API."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CreateVersionRequest(BaseModel):
    """A new upload registered as the next version of a document."""

    model_config = ConfigDict(populate_by_name=True)

    url: str = Field(..., description="Storage reference of the uploaded file")
    type: str = Field(..., description="Declared document type", examples=["pdf", "docs", "video"])
    num_pages: Optional[int] = Field(default=None, alias="numPages", ge=1)
    storage_type: str = Field(..., alias="storageType", examples=["SUPABASE_PATH"])
    content_type: Optional[str] = Field(default=None, alias="contentType")
    file_size: Optional[int] = Field(default=None, alias="fileSize", ge=0)


class VersionCreatedResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: UUID = Field(..., description="Document ID")
    version_id: UUID = Field(..., alias="versionId", description="ID of the new version")


class HealthCheckResponse(BaseModel):
    """Health check response model.

    Attributes:
        status: Service status
        version: Application version
        service: Service name
    """

    status: str = Field(default="healthy", examples=["healthy", "unhealthy"])
    version: str
    service: str
