from __future__ import annotations

import random
from typing import Optional

from services.soil_catalog import Region
from services.weather import WeatherCondition, WeatherSnapshot

FALLBACK_CONDITIONS: tuple[WeatherCondition, ...] = ("sunny", "cloudy", "rainy")


class SimulatedWeatherSource:
    """Generates plausible local weather when the provider is unreachable."""

    def __init__(self, *, seed: int | None = None, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random(seed)

    def generate(self, region: Region) -> WeatherSnapshot:
        condition = self._rng.choice(FALLBACK_CONDITIONS)
        # 25-39 C, 50-79 %
        temperature = float(self._rng.randrange(25, 40))
        humidity = float(self._rng.randrange(50, 80))
        rainy = condition == "rainy"
        return WeatherSnapshot(
            temperature=temperature,
            humidity=humidity,
            condition=condition,
            rain_forecast=rainy,
            description="Light rain expected" if rainy else "Clear skies",
            city=region.id[:1].upper() + region.id[1:],
            region=region.id,
            source="fallback",
        )

    async def fetch(self, region: Region) -> WeatherSnapshot:
        return self.generate(region)


__all__ = ["FALLBACK_CONDITIONS", "SimulatedWeatherSource"]
