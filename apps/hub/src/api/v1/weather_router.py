from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from config import settings
from services.soil_catalog import UnknownRegionError, soil_catalog
from services.weather import UpstreamUnavailable, WeatherSnapshot, weather_service

router = APIRouter(prefix="/weather", tags=["weather"])


class WeatherResponse(BaseModel):
	region: str
	city: str
	temperature: float
	humidity: float
	condition: str
	description: str
	rainForecast: bool
	source: str
	fetchedAt: datetime


def _invalid_region_detail() -> str:
	names = soil_catalog.region_ids()
	if len(names) > 1:
		listed = ", ".join(names[:-1]) + f", or {names[-1]}"
	else:
		listed = "".join(names)
	return f"Invalid region. Please use: {listed}"


def _to_response(snapshot: WeatherSnapshot) -> WeatherResponse:
	return WeatherResponse(
		region=snapshot.region,
		city=snapshot.city,
		temperature=snapshot.temperature,
		humidity=snapshot.humidity,
		condition=snapshot.condition,
		description=snapshot.description,
		rainForecast=snapshot.rain_forecast,
		source=snapshot.source,
		fetchedAt=snapshot.fetched_at,
	)


@router.get("", response_model=list[WeatherResponse])
async def get_all_weather() -> list[WeatherResponse]:
	try:
		snapshots = await weather_service.fetch_all(allow_fallback=settings.weather_relay_fallback)
	except UpstreamUnavailable as exc:
		raise HTTPException(status_code=500, detail=f"Failed to fetch weather data: {exc}") from exc
	return [_to_response(snapshot) for snapshot in snapshots]


@router.get("/{region}", response_model=WeatherResponse)
async def get_region_weather(region: str) -> WeatherResponse:
	try:
		snapshot = await weather_service.fetch(region, allow_fallback=settings.weather_relay_fallback)
	except UnknownRegionError as exc:
		raise HTTPException(status_code=400, detail=_invalid_region_detail()) from exc
	except UpstreamUnavailable as exc:
		raise HTTPException(status_code=500, detail=f"Failed to fetch weather data: {exc}") from exc
	return _to_response(snapshot)


__all__ = ["router"]
