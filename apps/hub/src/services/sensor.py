from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Protocol

logger = logging.getLogger("irrigation.hub.sensor")

MOISTURE_MIN = 0.0
MOISTURE_MAX = 100.0
SOIL_TEMPERATURE_MIN = 20.0
SOIL_TEMPERATURE_MAX = 40.0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: datetime) -> str:
    iso = value.astimezone(timezone.utc).isoformat(timespec="seconds")
    if iso.endswith("+00:00"):
        return iso[:-6] + "Z"
    return iso


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True, slots=True)
class SensorReading:
    moisture_level: float
    temperature: float
    timestamp: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "moistureLevel": round(self.moisture_level, 1),
            "temperature": round(self.temperature, 1),
            "timestamp": _isoformat(self.timestamp),
        }


class SensorSource(Protocol):
    """Anything that produces the next soil reading from the previous one."""

    def tick(self, previous: SensorReading) -> SensorReading:
        ...


def needs_watering(reading: SensorReading, threshold: float) -> bool:
    return reading.moisture_level < threshold


class SoilSensorFeed:
    """Holds the most recent soil reading and advances it through a sensor source."""

    def __init__(self, source: SensorSource, initial: SensorReading) -> None:
        self._source = source
        self._latest = initial
        self._lock = asyncio.Lock()

    @property
    def source(self) -> SensorSource:
        return self._source

    async def latest(self) -> SensorReading:
        async with self._lock:
            return self._latest

    async def advance(self) -> SensorReading:
        async with self._lock:
            self._latest = self._source.tick(self._latest)
            reading = self._latest
        logger.debug("Soil reading moisture=%.1f temperature=%.1f", reading.moisture_level, reading.temperature)
        return reading

    async def reset(self, reading: Optional[SensorReading] = None, *, source: Optional[SensorSource] = None) -> None:
        async with self._lock:
            if source is not None:
                self._source = source
            if reading is not None:
                self._latest = reading


__all__ = [
    "MOISTURE_MAX",
    "MOISTURE_MIN",
    "SOIL_TEMPERATURE_MAX",
    "SOIL_TEMPERATURE_MIN",
    "SensorReading",
    "SensorSource",
    "SoilSensorFeed",
    "clamp",
    "needs_watering",
]
