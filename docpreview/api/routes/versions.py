"""Document version endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from docpreview.api.dependencies import get_dispatcher, get_version_service
from docpreview.api.schemas import CreateVersionRequest, VersionCreatedResponse
from docpreview.core.exceptions import ConflictError, NotFoundError, ValidationError
from docpreview.pipeline.dispatcher import PipelineDispatcher
from docpreview.services.version_service import VersionService


router = APIRouter()


@router.post(
    "/teams/{team_id}/documents/{document_id}/versions",
    response_model=VersionCreatedResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
    summary="Add a new version to a document",
    description=(
        "Registers an uploaded file as the document's next primary version and "
        "starts its conversion or rasterization in the background."
    ),
    operation_id="create_document_version",
)
async def create_version(
    team_id: str,
    document_id: UUID,
    request: CreateVersionRequest,
    version_service: Annotated[VersionService, Depends(get_version_service)],
    dispatcher: Annotated[PipelineDispatcher, Depends(get_dispatcher)],
) -> VersionCreatedResponse:
    try:
        version = await version_service.create_version(
            document_id=document_id,
            team_id=team_id,
            file=request.url,
            type=request.type,
            storage_type=request.storage_type,
            num_pages=request.num_pages,
            content_type=request.content_type,
            file_size=request.file_size,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    # Launch problems are logged by the dispatcher and never fail the request
    await dispatcher.dispatch(version, team_id)

    return VersionCreatedResponse(id=document_id, version_id=version.id)
