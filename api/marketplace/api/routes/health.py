from fastapi import APIRouter, Depends

from marketplace.api.deps import get_app_settings
from marketplace.core.config import Settings

router = APIRouter()
api_router = APIRouter()


@router.get("/")
async def root() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@api_router.get("/health")
async def api_health(settings: Settings = Depends(get_app_settings)) -> dict[str, object]:
    return {"success": True, "status": "healthy", "environment": settings.environment}
