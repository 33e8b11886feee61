from __future__ import annotations

from fastapi import APIRouter, Depends

from vidcore.api.deps import get_app_settings
from vidcore.core.config import Settings

from .schemas import HealthResponse


router = APIRouter(tags=["system"])


@router.get("/health", response_model=HealthResponse, summary="Service liveness and version")
async def health(settings: Settings = Depends(get_app_settings)) -> HealthResponse:
    return HealthResponse(service=settings.app_name, version=settings.version)


__all__ = ["router"]
