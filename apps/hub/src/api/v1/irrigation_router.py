from __future__ import annotations

from typing import Any, Literal, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from config import settings
from services.irrigation_hub import irrigation_hub
from services.pump import PumpDecision
from services.weather import WeatherSnapshot

from .dependencies import ENGINE_ERRORS, to_http_error

router = APIRouter(prefix="/irrigation", tags=["irrigation"])


class WeatherOverrideModel(BaseModel):
    temperature: float = Field(..., ge=-60.0, le=70.0)
    humidity: float = Field(default=60.0, ge=0.0, le=100.0)
    condition: Literal["sunny", "cloudy", "rainy", "other"] = "sunny"
    rain_forecast: bool = False
    description: str = ""

    def to_snapshot(self, region: str) -> WeatherSnapshot:
        return WeatherSnapshot(
            temperature=self.temperature,
            humidity=self.humidity,
            condition=self.condition,
            rain_forecast=self.rain_forecast,
            description=self.description,
            region=region,
            source="request",
        )


class RecommendationRequest(BaseModel):
    region: str = Field(..., min_length=1, max_length=64)
    soil: str = Field(..., min_length=1, max_length=64)
    weather: Optional[WeatherOverrideModel] = Field(
        default=None,
        description="Use these conditions instead of fetching the region's current weather.",
    )


class EvaluateRequest(BaseModel):
    region: Optional[str] = Field(default=None, max_length=64)
    soil: Optional[str] = Field(default=None, max_length=64)
    threshold: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    weather: Optional[WeatherOverrideModel] = None


class PumpStartRequest(BaseModel):
    duration: Optional[float] = Field(default=None, description="Seconds to run; defaults to the recommendation or 10 s")
    region: Optional[str] = Field(default=None, max_length=64)
    soil: Optional[str] = Field(default=None, max_length=64)


def _decision_payload(decision: PumpDecision, pump: dict[str, object]) -> dict[str, Any]:
    return {
        "started": decision.started,
        "reason": decision.reason,
        "pump": pump,
        "entry": decision.entry.to_dict() if decision.entry is not None else None,
    }


@router.post("/recommendation")
async def get_recommendation(payload: RecommendationRequest) -> dict[str, Any]:
    weather = payload.weather.to_snapshot(payload.region.strip().lower()) if payload.weather else None
    try:
        result = await irrigation_hub.recommend(payload.region, payload.soil, weather=weather)
    except ENGINE_ERRORS as exc:
        raise to_http_error(exc) from exc
    return result.to_dict()


@router.post("/evaluate")
async def evaluate(payload: EvaluateRequest) -> dict[str, Any]:
    weather = None
    if payload.weather is not None:
        weather = payload.weather.to_snapshot((payload.region or settings.default_region).strip().lower())
    try:
        result, decision = await irrigation_hub.evaluate(
            payload.region,
            payload.soil,
            threshold=payload.threshold,
            weather=weather,
        )
    except ENGINE_ERRORS as exc:
        raise to_http_error(exc) from exc
    status = await irrigation_hub.pump.status()
    body = _decision_payload(decision, status.to_dict())
    body["recommendation"] = result.to_dict()
    return body


@router.get("/pump")
async def get_pump_status() -> dict[str, object]:
    status = await irrigation_hub.pump.status()
    return status.to_dict()


@router.post("/pump/start")
async def start_pump(payload: Optional[PumpStartRequest] = None) -> dict[str, Any]:
    request = payload or PumpStartRequest()
    try:
        decision = await irrigation_hub.start_manual(
            request.duration,
            region_id=request.region,
            soil_type_id=request.soil,
        )
    except ENGINE_ERRORS as exc:
        raise to_http_error(exc) from exc
    status = await irrigation_hub.pump.status()
    return _decision_payload(decision, status.to_dict())


@router.post("/pump/stop")
async def stop_pump() -> dict[str, Any]:
    entry = await irrigation_hub.stop_manual()
    status = await irrigation_hub.pump.status()
    return {
        "stopped": entry is not None,
        "pump": status.to_dict(),
        "entry": entry.to_dict() if entry is not None else None,
    }


__all__ = ["router"]
