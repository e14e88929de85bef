"""Health check endpoint."""

from fastapi import APIRouter

from docpreview.api.schemas import HealthCheckResponse
from docpreview.config import settings

router = APIRouter()


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    tags=["Health"],
    summary="Health check endpoint",
    operation_id="get_service_health_status",
)
async def health_check() -> HealthCheckResponse:
    return HealthCheckResponse(
        status="healthy",
        version=settings.app_version,
        service=settings.app_name,
    )
