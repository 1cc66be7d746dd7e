import math

import pytest

from services.watering import (
    RAIN_RATIONALE,
    InvalidInput,
    WateringRecommendation,
    recommend,
    round_half_up,
)
from services.weather import WeatherSnapshot


def _weather(temperature: float = 30.0, *, rain: bool = False) -> WeatherSnapshot:
    return WeatherSnapshot(
        temperature=temperature,
        humidity=60.0,
        condition="rainy" if rain else "sunny",
        rain_forecast=rain,
    )


def test_sandy_soil_on_a_mild_day_is_heavy() -> None:
    result = recommend(1.5, _weather(30.0))
    assert result.adjusted_duration_seconds == 15.0
    assert result.tier == "heavy"
    assert result.display_seconds == 15
    assert "soil type" in result.rationale
    assert not result.rain_adjusted and not result.heat_adjusted


def test_rain_forecast_skips_but_keeps_reduced_duration() -> None:
    result = recommend(0.7, _weather(30.0, rain=True))
    assert result.tier == "skip"
    assert result.adjusted_duration_seconds == 2.1
    assert result.rationale == RAIN_RATIONALE
    assert result.rain_adjusted
    assert result.is_skip


def test_rain_suppresses_heat_boost() -> None:
    result = recommend(1.0, _weather(38.0, rain=True))
    assert result.adjusted_duration_seconds == 3.0
    assert result.tier == "skip"
    assert not result.heat_adjusted


def test_heat_boost_applies_strictly_above_35() -> None:
    hot = recommend(1.0, _weather(35.1))
    assert hot.adjusted_duration_seconds == 13.0
    assert hot.tier == "heavy"
    assert hot.heat_adjusted
    assert "hot weather" in hot.rationale

    boundary = recommend(1.0, _weather(35.0))
    assert boundary.adjusted_duration_seconds == 10.0
    assert boundary.tier == "moderate"
    assert not boundary.heat_adjusted


@pytest.mark.parametrize(
    ("multiplier", "tier"),
    [
        (0.5, "light"),
        (0.51, "moderate"),
        (1.2, "moderate"),
        (1.21, "heavy"),
    ],
)
def test_tier_boundaries(multiplier: float, tier: str) -> None:
    assert recommend(multiplier, _weather()).tier == tier


def test_clay_soil_heat_gives_moderate_9_1_seconds() -> None:
    result = recommend(0.7, _weather(36.0))
    assert result.adjusted_duration_seconds == 9.1
    assert result.display_seconds == 9
    assert result.tier == "moderate"


def test_zero_multiplier_is_an_implicit_skip() -> None:
    result = recommend(0, _weather())
    assert result.adjusted_duration_seconds == 0.0
    assert result.tier == "skip"
    assert result.display_seconds == 0


@pytest.mark.parametrize("bad", [None, "1.5", -0.1, math.nan, math.inf, True])
def test_invalid_multiplier_rejected(bad: object) -> None:
    with pytest.raises(InvalidInput):
        recommend(bad, _weather())


def test_missing_weather_rejected() -> None:
    with pytest.raises(InvalidInput):
        recommend(1.0, None)


def test_recommend_is_deterministic() -> None:
    weather = _weather(36.5)
    assert recommend(1.5, weather) == recommend(1.5, weather)


def test_rounding_is_half_up() -> None:
    assert round_half_up(2.25, 1) == 2.3
    assert round_half_up(12.5) == 13.0
    assert round_half_up(0.45, 1) == 0.5


def test_display_seconds_rounds_half_up() -> None:
    recommendation = WateringRecommendation(
        multiplier=1.0,
        adjusted_duration_seconds=4.5,
        tier="light",
        rationale="Light watering for 4.5 seconds",
    )
    assert recommendation.display_seconds == 5


def test_to_dict_uses_camel_case_keys() -> None:
    payload = recommend(1.0, _weather()).to_dict()
    assert payload["baseDurationSeconds"] == 10
    assert payload["adjustedDurationSeconds"] == 10.0
    assert payload["displaySeconds"] == 10
    assert payload["tier"] == "moderate"
    assert payload["rainAdjusted"] is False
