from fastapi import APIRouter

from config import settings
from .catalog_router import router as catalog_router
from .events_router import router as events_router
from .history_router import router as history_router
from .irrigation_router import router as irrigation_router
from .monitor_router import router as monitor_router
from .weather_router import router as weather_router

router = APIRouter(prefix="/api/v1", tags=["v1"])
router.include_router(catalog_router)
router.include_router(irrigation_router)
router.include_router(monitor_router)
router.include_router(history_router)
router.include_router(weather_router)
router.include_router(events_router)


@router.get("/health")
async def health():
    return {"status": "ok", "version": settings.app_version}


@router.get("/info")
async def info():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "debug": settings.debug,
        "cors_origins": settings.cors_origins,
        "simulation_enabled": settings.simulation_enabled,
        "default_region": settings.default_region,
        "weather_configured": bool(settings.openweather_api_key),
    }
