from __future__ import annotations

import asyncio
import logging
import time as time_utils
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Literal, Optional, Protocol

import httpx

from config import settings
from services.soil_catalog import Region, SoilCatalog, soil_catalog

logger = logging.getLogger("irrigation.hub.weather")

WeatherCondition = Literal["sunny", "cloudy", "rainy", "other"]

CURRENT_WEATHER_PATH = "/weather"
_CONDITION_MAP: dict[str, WeatherCondition] = {
    "clear": "sunny",
    "sunny": "sunny",
    "clouds": "cloudy",
    "cloudy": "cloudy",
    "rain": "rainy",
    "rainy": "rainy",
    "drizzle": "rainy",
    "thunderstorm": "rainy",
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: datetime) -> str:
    iso = value.astimezone(timezone.utc).isoformat(timespec="seconds")
    if iso.endswith("+00:00"):
        return iso[:-6] + "Z"
    return iso


class UpstreamUnavailable(RuntimeError):
    """Raised when the weather provider cannot produce a snapshot."""


@dataclass(frozen=True, slots=True)
class WeatherSnapshot:
    temperature: float
    humidity: float
    condition: WeatherCondition
    rain_forecast: bool
    description: str = ""
    city: str = ""
    region: str = ""
    source: str = "openweathermap"
    fetched_at: datetime = field(default_factory=_utc_now)

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        current = now or _utc_now()
        return max(0.0, (current - self.fetched_at).total_seconds())

    def is_stale(self, max_age_seconds: float, now: Optional[datetime] = None) -> bool:
        return self.age_seconds(now) > max_age_seconds

    def to_dict(self) -> dict[str, object]:
        return {
            "temperature": self.temperature,
            "humidity": self.humidity,
            "condition": self.condition,
            "description": self.description,
            "rainForecast": self.rain_forecast,
            "city": self.city,
            "region": self.region,
            "source": self.source,
            "fetchedAt": _isoformat(self.fetched_at),
        }


class WeatherSource(Protocol):
    async def fetch(self, region: Region) -> WeatherSnapshot:
        ...


def normalize_condition(value: Any) -> WeatherCondition:
    if not isinstance(value, str):
        return "other"
    return _CONDITION_MAP.get(value.strip().lower(), "other")


class OpenWeatherSource:
    """Current-weather client for the OpenWeatherMap REST API."""

    def __init__(self) -> None:
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=settings.weather_base_url,
                headers={"Accept": "application/json"},
                timeout=settings.weather_request_timeout,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, region: Region) -> WeatherSnapshot:
        if not settings.openweather_api_key:
            raise UpstreamUnavailable("OpenWeatherMap API key is not configured")
        client = await self._get_client()
        params = {
            "lat": region.lat,
            "lon": region.lon,
            "appid": settings.openweather_api_key,
            "units": "metric",
        }
        logger.debug("Fetching current weather for %s", region.id)
        try:
            response = await client.get(CURRENT_WEATHER_PATH, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise UpstreamUnavailable(
                f"Weather provider returned HTTP {exc.response.status_code} for {region.id}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamUnavailable(f"Weather provider request failed for {region.id}: {exc}") from exc
        return self.parse(payload, region)

    @staticmethod
    def parse(payload: Any, region: Region) -> WeatherSnapshot:
        if not isinstance(payload, dict):
            raise UpstreamUnavailable("Weather provider returned an unexpected payload")
        main = payload.get("main")
        conditions = payload.get("weather")
        if not isinstance(main, dict) or not isinstance(conditions, list) or not conditions:
            raise UpstreamUnavailable("Weather provider payload is missing main/weather blocks")
        primary = conditions[0] if isinstance(conditions[0], dict) else {}
        try:
            temperature = float(main["temp"])
            humidity = float(main["humidity"])
        except (KeyError, TypeError, ValueError) as exc:
            raise UpstreamUnavailable("Weather provider payload is missing temperature or humidity") from exc
        return WeatherSnapshot(
            temperature=temperature,
            humidity=humidity,
            condition=normalize_condition(primary.get("main")),
            rain_forecast=bool(payload.get("rain")),
            description=str(primary.get("description") or ""),
            city=str(payload.get("name") or region.name),
            region=region.id,
            source="openweathermap",
        )


@dataclass
class CachedWeather:
    snapshot: WeatherSnapshot
    expires_at: float


class WeatherService:
    """Region weather gateway with caching and a local fallback policy."""

    def __init__(
        self,
        source: Optional[WeatherSource] = None,
        fallback: Optional[WeatherSource] = None,
        catalog: SoilCatalog = soil_catalog,
    ) -> None:
        if fallback is None:
            from mock.weather import SimulatedWeatherSource  # lazy import to avoid circular dependency

            fallback = SimulatedWeatherSource(seed=settings.simulation_seed)
        self._source: WeatherSource = source or OpenWeatherSource()
        self._fallback: WeatherSource = fallback
        self._catalog = catalog
        self._cache: dict[str, CachedWeather] = {}
        self._last_good: dict[str, WeatherSnapshot] = {}

    @property
    def source(self) -> WeatherSource:
        return self._source

    def use_source(self, source: WeatherSource, fallback: Optional[WeatherSource] = None) -> None:
        self._source = source
        if fallback is not None:
            self._fallback = fallback
        self.clear()

    def clear(self) -> None:
        self._cache.clear()
        self._last_good.clear()

    async def close(self) -> None:
        close = getattr(self._source, "close", None)
        if close is not None:
            await close()

    async def fetch(self, region_id: str, *, allow_fallback: bool = True) -> WeatherSnapshot:
        """Return weather for a region, falling back to last-known-good or simulated data."""
        region = self._catalog.get_region(region_id)
        ttl = settings.weather_cache_ttl
        now = time_utils.monotonic()
        if ttl > 0:
            cached = self._cache.get(region.id)
            if cached and cached.expires_at > now:
                return cached.snapshot

        try:
            snapshot = await asyncio.wait_for(
                self._source.fetch(region),
                timeout=settings.weather_request_timeout,
            )
        except asyncio.TimeoutError:
            error = UpstreamUnavailable(f"Weather provider timed out for {region.id}")
        except UpstreamUnavailable as exc:
            error = exc
        else:
            self._last_good[region.id] = snapshot
            if ttl > 0:
                self._cache[region.id] = CachedWeather(snapshot=snapshot, expires_at=now + ttl)
            return snapshot

        if not allow_fallback:
            logger.error("Weather fetch failed for %s: %s", region.id, error)
            raise error

        last_good = self._last_good.get(region.id)
        if last_good is not None:
            logger.warning("Weather fetch failed for %s (%s); using last known snapshot", region.id, error)
            return replace(last_good, source="cache")
        logger.warning("Weather fetch failed for %s (%s); using simulated snapshot", region.id, error)
        return await self._fallback.fetch(region)

    async def fetch_all(self, *, allow_fallback: bool = True) -> list[WeatherSnapshot]:
        tasks = [self.fetch(region_id, allow_fallback=allow_fallback) for region_id in self._catalog.region_ids()]
        return list(await asyncio.gather(*tasks))


weather_service = WeatherService()

__all__ = [
    "OpenWeatherSource",
    "UpstreamUnavailable",
    "WeatherCondition",
    "WeatherService",
    "WeatherSnapshot",
    "WeatherSource",
    "normalize_condition",
    "weather_service",
]
