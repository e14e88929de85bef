from fastapi import APIRouter

from docpreview.api.routes import versions

api_router = APIRouter()

api_router.include_router(versions.router, prefix="", tags=["Versions"])
