"""Watering recommendation rules.

Turns a soil watering multiplier and a weather snapshot into a watering
duration, an intensity tier and a human readable rationale.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Literal

from services.weather import WeatherSnapshot

WateringTier = Literal["skip", "light", "moderate", "heavy"]

BASE_DURATION_SECONDS = 10
RAIN_FACTOR = 0.3
HEAT_FACTOR = 1.3
HEAT_THRESHOLD_C = 35.0
LIGHT_MAX_SECONDS = 5.0
MODERATE_MAX_SECONDS = 12.0

RAIN_RATIONALE = "Rain expected - irrigation suppressed to avoid overwatering"
ZERO_DURATION_RATIONALE = "No watering needed - computed duration is zero"


class InvalidInput(ValueError):
    """Raised when soil or weather inputs are missing or malformed."""


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


@dataclass(frozen=True, slots=True)
class WateringRecommendation:
    multiplier: float
    adjusted_duration_seconds: float
    tier: WateringTier
    rationale: str
    rain_adjusted: bool = False
    heat_adjusted: bool = False
    base_duration_seconds: int = BASE_DURATION_SECONDS

    @property
    def display_seconds(self) -> int:
        """Whole seconds used for countdowns."""
        return int(round_half_up(self.adjusted_duration_seconds))

    @property
    def is_skip(self) -> bool:
        return self.tier == "skip"

    def to_dict(self) -> dict[str, object]:
        return {
            "baseDurationSeconds": self.base_duration_seconds,
            "multiplier": self.multiplier,
            "adjustedDurationSeconds": self.adjusted_duration_seconds,
            "displaySeconds": self.display_seconds,
            "tier": self.tier,
            "rationale": self.rationale,
            "rainAdjusted": self.rain_adjusted,
            "heatAdjusted": self.heat_adjusted,
        }


def recommend(multiplier: Any, weather: WeatherSnapshot | None) -> WateringRecommendation:
    m = _validate_multiplier(multiplier)
    if weather is None:
        raise InvalidInput("Weather snapshot is required")
    temperature = _validate_temperature(weather.temperature)

    adjusted = BASE_DURATION_SECONDS * m
    rain = bool(weather.rain_forecast)
    heat = False
    if rain:
        adjusted *= RAIN_FACTOR
    elif temperature > HEAT_THRESHOLD_C:
        adjusted *= HEAT_FACTOR
        heat = True

    tier, rationale = _classify(adjusted, rain=rain, heat=heat)
    return WateringRecommendation(
        multiplier=m,
        adjusted_duration_seconds=round_half_up(adjusted, 1),
        tier=tier,
        rationale=rationale,
        rain_adjusted=rain,
        heat_adjusted=heat,
    )


def _classify(adjusted: float, *, rain: bool, heat: bool) -> tuple[WateringTier, str]:
    if rain:
        return "skip", RAIN_RATIONALE
    if adjusted <= 0:
        return "skip", ZERO_DURATION_RATIONALE
    shown = f"{round_half_up(adjusted, 1):.1f}"
    if adjusted <= LIGHT_MAX_SECONDS:
        return "light", f"Light watering for {shown} seconds"
    if adjusted <= MODERATE_MAX_SECONDS:
        return "moderate", f"Moderate watering for {shown} seconds"
    if heat:
        return "heavy", f"Extended watering for {shown} seconds due to soil type and hot weather"
    return "heavy", f"Extended watering for {shown} seconds due to soil type"


def _validate_multiplier(multiplier: Any) -> float:
    if multiplier is None:
        raise InvalidInput("Soil watering multiplier is required")
    if isinstance(multiplier, bool) or not isinstance(multiplier, (int, float)):
        raise InvalidInput(f"Soil watering multiplier must be numeric, got {multiplier!r}")
    value = float(multiplier)
    if not math.isfinite(value) or value < 0:
        raise InvalidInput(f"Soil watering multiplier must be a non-negative number, got {multiplier!r}")
    return value


def _validate_temperature(temperature: Any) -> float:
    if isinstance(temperature, bool) or not isinstance(temperature, (int, float)):
        raise InvalidInput(f"Weather temperature must be numeric, got {temperature!r}")
    value = float(temperature)
    if not math.isfinite(value):
        raise InvalidInput("Weather temperature must be finite")
    return value


__all__ = [
    "BASE_DURATION_SECONDS",
    "InvalidInput",
    "WateringRecommendation",
    "WateringTier",
    "recommend",
    "round_half_up",
]
