from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import logging, time

from config import settings
from api.v1.router import router as v1_router
from services.alerts import alerts_service
from services.irrigation_hub import irrigation_hub
from services.weather import weather_service

logger = logging.getLogger("irrigation.hub")
if not logger.handlers:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name, version=settings.app_version)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        dur_ms = (time.perf_counter() - start) * 1000.0
        logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, dur_ms)
        return response

    @app.get("/", tags=["meta"])
    async def root():
        return {"name": settings.app_name, "version": settings.app_version}

    @app.get("/health", tags=["meta"])
    async def health():
        return JSONResponse({"status": "ok", "version": settings.app_version})

    app.include_router(v1_router)

    @app.on_event("startup")
    async def _startup():
        await irrigation_hub.initialize()
        if settings.simulation_enabled:
            logger.info("Simulation enabled; starting sensor, tank and auto-evaluation loops...")
            await irrigation_hub.start()
        else:
            logger.info("Simulation disabled (set SIMULATION_ENABLED=true to enable).")
        if not settings.openweather_api_key:
            logger.warning("OPENWEATHER_API_KEY not set; weather will use simulated fallback data")

    @app.on_event("shutdown")
    async def _shutdown():
        await irrigation_hub.stop()
        await weather_service.close()
        await alerts_service.close()

    return app

app = create_app()
