import asyncio
import sys
from pathlib import Path
from typing import Any, Callable, Dict

ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

import pytest
from fastapi.testclient import TestClient

from config import settings
from main import create_app
from services.alerts import alerts_service
from services.irrigation_hub import irrigation_hub
from services.soil_catalog import Region
from services.weather import UpstreamUnavailable, WeatherSnapshot, weather_service

_TEST_SETTINGS: Dict[str, Any] = {
    "simulation_enabled": False,
    "simulation_seed": 7,
    "pump_countdown_enabled": False,
    "openweather_api_key": None,
    "weather_relay_fallback": True,
    "notifications": True,
    "activity_event_log": None,
    "alerts_event_log": None,
    "alerts_webhook_url": None,
    "default_region": "nagpur",
    "moisture_threshold": 60.0,
}


class StubWeatherSource:
    """Weather source returning a fixed snapshot, or failing on demand."""

    def __init__(
        self,
        *,
        temperature: float = 30.0,
        humidity: float = 60.0,
        condition: str = "sunny",
        rain_forecast: bool = False,
    ) -> None:
        self.temperature = temperature
        self.humidity = humidity
        self.condition = condition
        self.rain_forecast = rain_forecast
        self.error: Exception | None = None
        self.calls: list[str] = []

    async def fetch(self, region: Region) -> WeatherSnapshot:
        self.calls.append(region.id)
        if self.error is not None:
            raise self.error
        return WeatherSnapshot(
            temperature=self.temperature,
            humidity=self.humidity,
            condition=self.condition,  # type: ignore[arg-type]
            rain_forecast=self.rain_forecast,
            description="stubbed conditions",
            city=region.name,
            region=region.id,
        )

    def fail(self, message: str = "provider down") -> None:
        self.error = UpstreamUnavailable(message)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def weather_stub() -> StubWeatherSource:
    original = weather_service.source
    stub = StubWeatherSource()
    weather_service.use_source(stub)
    yield stub
    weather_service.use_source(original)


@pytest.fixture(autouse=True)
def _reset_irrigation_services(weather_stub: StubWeatherSource) -> None:
    original = {key: getattr(settings, key) for key in _TEST_SETTINGS}
    for key, value in _TEST_SETTINGS.items():
        setattr(settings, key, value)
    asyncio.run(irrigation_hub.reset())
    asyncio.run(alerts_service.clear())
    yield
    asyncio.run(irrigation_hub.reset())
    asyncio.run(alerts_service.clear())
    for key, value in original.items():
        setattr(settings, key, value)


@pytest.fixture
def settings_override() -> Callable[..., None]:
    original: Dict[str, Any] = {}

    def _apply(**overrides: Any) -> None:
        for key, value in overrides.items():
            if key not in original:
                original[key] = getattr(settings, key)
            setattr(settings, key, value)

    yield _apply

    for key, value in original.items():
        setattr(settings, key, value)


@pytest.fixture
def client() -> TestClient:
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
