import asyncio
from typing import Callable

import pytest

from services.alerts import alerts_service
from services.event_bus import event_bus
from services.irrigation_hub import DEFAULT_MANUAL_SECONDS, IrrigationHub, irrigation_hub
from services.pump import AlreadyRunning, TankEmpty
from services.soil_catalog import UnknownSoilTypeError
from services.weather import WeatherSnapshot


@pytest.mark.anyio
async def test_reset_observes_initial_tank_level() -> None:
    state = await irrigation_hub.tank.state()
    assert state.level_percent == 75.0
    assert state.band == "normal"
    reading = await irrigation_hub.sensor.latest()
    assert (reading.moisture_level, reading.temperature) == (45.0, 28.0)


@pytest.mark.anyio
async def test_recommend_uses_catalog_and_weather(weather_stub) -> None:
    weather_stub.temperature = 37.0
    result = await irrigation_hub.recommend("Amravati", "sandy")
    assert result.region.id == "amravati"
    assert result.soil.watering_multiplier == 1.5
    assert result.recommendation.adjusted_duration_seconds == 19.5
    assert result.recommendation.tier == "heavy"
    assert weather_stub.calls == ["amravati"]


@pytest.mark.anyio
async def test_recommend_unknown_soil() -> None:
    with pytest.raises(UnknownSoilTypeError):
        await irrigation_hub.recommend("nagpur", "peat")


@pytest.mark.anyio
async def test_evaluate_starts_auto_cycle_when_soil_is_dry() -> None:
    result, decision = await irrigation_hub.evaluate("nagpur", "loamy")
    assert result.recommendation.tier == "moderate"
    assert decision.started
    status = await irrigation_hub.pump.status()
    assert status.mode == "auto"
    assert status.total_duration_seconds == 10


@pytest.mark.anyio
async def test_evaluate_skips_with_threshold_below_moisture() -> None:
    _, decision = await irrigation_hub.evaluate("nagpur", "loamy", threshold=40)
    assert not decision.started
    assert decision.entry is not None and decision.entry.action == "skipped"


@pytest.mark.anyio
async def test_evaluate_with_explicit_weather_skips_for_rain(weather_stub) -> None:
    rainy = WeatherSnapshot(temperature=29.0, humidity=85.0, condition="rainy", rain_forecast=True)
    _, decision = await irrigation_hub.evaluate("yavatmal", "clay", weather=rainy)
    assert not decision.started
    assert weather_stub.calls == []


@pytest.mark.anyio
async def test_evaluate_while_running_raises() -> None:
    await irrigation_hub.start_manual(10)
    with pytest.raises(AlreadyRunning):
        await irrigation_hub.evaluate()


@pytest.mark.anyio
async def test_manual_start_defaults() -> None:
    decision = await irrigation_hub.start_manual()
    assert decision.run is not None
    assert decision.run.total_duration_seconds == DEFAULT_MANUAL_SECONDS
    await irrigation_hub.stop_manual()

    decision = await irrigation_hub.start_manual(region_id="nagpur", soil_type_id="sandy")
    assert decision.run is not None
    assert decision.run.total_duration_seconds == 15
    assert decision.run.weather_condition == "sunny"


@pytest.mark.anyio
async def test_manual_start_with_rain_recommendation_falls_back_to_default(weather_stub) -> None:
    weather_stub.rain_forecast = True
    weather_stub.condition = "rainy"
    decision = await irrigation_hub.start_manual(region_id="nagpur", soil_type_id="clay")
    assert decision.run is not None
    assert decision.run.total_duration_seconds == 2


@pytest.mark.anyio
async def test_tank_alerts_are_forwarded_once() -> None:
    for level in [30, 25, 18, 15, 22]:
        await irrigation_hub.observe_tank(level)
    events = await alerts_service.list_events()
    assert [event.kind for event in events] == ["tank.empty", "tank.empty.recovered"]
    assert await alerts_service.active() == []


@pytest.mark.anyio
async def test_empty_tank_blocks_manual_start() -> None:
    await irrigation_hub.observe_tank(10)
    with pytest.raises(TankEmpty):
        await irrigation_hub.start_manual(5)


@pytest.mark.anyio
async def test_sample_tank_drains_while_pumping() -> None:
    await irrigation_hub.start_manual(10)
    transition = await irrigation_hub.sample_tank()
    state = await irrigation_hub.tank.state()
    assert state.level_percent == 73.5
    assert transition.alert is None


@pytest.mark.anyio
async def test_state_changes_are_published() -> None:
    subscription = await event_bus.subscribe(["pump", "activity"])
    try:
        await irrigation_hub.start_manual(2)
        await irrigation_hub.tick_pump()
        await irrigation_hub.tick_pump()
        types = []
        while True:
            try:
                types.append(subscription.get_nowait().type)
            except asyncio.QueueEmpty:
                break
    finally:
        await subscription.close()
    assert types == ["pump", "pump", "pump", "activity"]


@pytest.mark.anyio
async def test_background_countdown_completes_run(settings_override: Callable[..., None]) -> None:
    settings_override(pump_countdown_enabled=True, pump_tick_seconds=0.01)
    hub = IrrigationHub()
    await hub.initialize()
    decision = await hub.start_manual(3)
    assert decision.started
    for _ in range(100):
        if not await hub.pump.is_running():
            break
        await asyncio.sleep(0.01)
    assert not await hub.pump.is_running()
    entries = await hub.activity.recent()
    assert [(entry.action, entry.duration_seconds) for entry in entries] == [("watered", 3)]
    await hub.stop()


@pytest.mark.anyio
async def test_stop_cancels_background_countdown(settings_override: Callable[..., None]) -> None:
    settings_override(pump_countdown_enabled=True, pump_tick_seconds=0.01)
    hub = IrrigationHub()
    await hub.initialize()
    await hub.start_manual(50)
    await asyncio.sleep(0.05)
    entry = await hub.stop_manual()
    assert entry is not None and entry.action == "manual"
    await asyncio.sleep(0.05)
    assert [e.action for e in await hub.activity.recent()] == ["manual"]


@pytest.mark.anyio
async def test_simulation_loops_start_and_stop(settings_override: Callable[..., None]) -> None:
    settings_override(sensor_interval_seconds=0.01, tank_interval_seconds=0.01, auto_evaluate_seconds=0)
    hub = IrrigationHub()
    before = await hub.sensor.latest()
    await hub.start()
    assert hub.running
    await asyncio.sleep(0.05)
    await hub.stop()
    assert not hub.running
    assert await hub.sensor.latest() != before
    assert (await hub.tank.state()).level_percent is not None


def test_profile_reflects_settings(settings_override: Callable[..., None]) -> None:
    settings_override(default_region="yavatmal", moisture_threshold=45.0, notifications=False)
    assert irrigation_hub.profile().to_dict() == {
        "defaultRegion": "yavatmal",
        "moistureThreshold": 45.0,
        "notifications": False,
    }
