from __future__ import annotations

import random
from datetime import datetime, timezone
from typing import Callable, Optional

from services.sensor import (
    MOISTURE_MAX,
    MOISTURE_MIN,
    SOIL_TEMPERATURE_MAX,
    SOIL_TEMPERATURE_MIN,
    SensorReading,
    clamp,
)

MOISTURE_STEP = 2.5
TEMPERATURE_STEP = 1.0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SimulatedMoistureSensor:
    """Bounded random walk standing in for a soil moisture probe."""

    def __init__(
        self,
        *,
        seed: int | None = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._rng = rng or random.Random(seed)
        self._clock = clock

    def tick(self, previous: SensorReading) -> SensorReading:
        moisture = previous.moisture_level + self._rng.uniform(-MOISTURE_STEP, MOISTURE_STEP)
        temperature = previous.temperature + self._rng.uniform(-TEMPERATURE_STEP, TEMPERATURE_STEP)
        return SensorReading(
            moisture_level=clamp(moisture, MOISTURE_MIN, MOISTURE_MAX),
            temperature=clamp(temperature, SOIL_TEMPERATURE_MIN, SOIL_TEMPERATURE_MAX),
            timestamp=self._clock(),
        )


__all__ = ["MOISTURE_STEP", "TEMPERATURE_STEP", "SimulatedMoistureSensor"]
