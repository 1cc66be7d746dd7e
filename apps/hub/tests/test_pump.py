import asyncio

import pytest

from services.activity_log import ActivityLog
from services.pump import (
    REASON_TANK_EMPTY,
    AlreadyRunning,
    InvalidDuration,
    PumpController,
    TankEmpty,
)
from services.sensor import SensorReading
from services.tank import TankMonitor
from services.watering import RAIN_RATIONALE, recommend
from services.weather import WeatherSnapshot

DRY = SensorReading(moisture_level=40.0, temperature=28.0)
WET = SensorReading(moisture_level=72.0, temperature=28.0)


def _weather(temperature: float = 30.0, *, rain: bool = False) -> WeatherSnapshot:
    return WeatherSnapshot(
        temperature=temperature,
        humidity=60.0,
        condition="rainy" if rain else "sunny",
        rain_forecast=rain,
    )


async def _controller(tank_level: float = 75.0) -> tuple[PumpController, ActivityLog, TankMonitor]:
    log = ActivityLog()
    tank = TankMonitor()
    await tank.observe(tank_level)
    return PumpController(log, tank), log, tank


@pytest.mark.anyio
async def test_auto_cycle_runs_to_completion_and_logs_once() -> None:
    pump, log, _ = await _controller()
    recommendation = recommend(1.0, _weather())
    decision = await pump.auto_evaluate(recommendation, DRY, threshold=60, weather_condition="sunny")
    assert decision.started
    status = await pump.status()
    assert status.is_running
    assert status.mode == "auto"
    assert status.total_duration_seconds == 10
    assert status.time_remaining_seconds == 10

    completed = None
    for _ in range(10):
        completed = await pump.tick()
    assert completed is not None
    assert not (await pump.status()).is_running

    entries = await log.recent()
    assert len(entries) == 1
    assert entries[0].action == "watered"
    assert entries[0].duration_seconds == 10
    assert entries[0].weather_condition_at_event == "sunny"
    assert entries[0].moisture_level_at_event == 40.0


@pytest.mark.anyio
async def test_tick_counts_down_one_second_at_a_time() -> None:
    pump, _, _ = await _controller()
    await pump.start_manual(3)
    assert await pump.tick() is None
    assert (await pump.status()).time_remaining_seconds == 2
    assert await pump.tick() is None
    assert (await pump.status()).time_remaining_seconds == 1
    entry = await pump.tick()
    assert entry is not None and entry.action == "watered"
    assert entry.duration_seconds == 3


@pytest.mark.anyio
async def test_tick_while_idle_is_noop() -> None:
    pump, log, _ = await _controller()
    assert await pump.tick() is None
    assert await log.count() == 0


@pytest.mark.anyio
async def test_manual_start_rejected_while_running() -> None:
    pump, _, _ = await _controller()
    await pump.start_manual(10)
    with pytest.raises(AlreadyRunning):
        await pump.start_manual(5)
    with pytest.raises(AlreadyRunning):
        await pump.auto_evaluate(recommend(1.0, _weather()), DRY, threshold=60)
    assert (await pump.status()).total_duration_seconds == 10


@pytest.mark.anyio
async def test_manual_start_rejected_when_tank_empty() -> None:
    pump, log, _ = await _controller(tank_level=15)
    with pytest.raises(TankEmpty) as excinfo:
        await pump.start_manual(10)
    assert excinfo.value.reason == REASON_TANK_EMPTY
    assert not (await pump.status()).is_running
    assert await log.count() == 0


@pytest.mark.anyio
@pytest.mark.parametrize("bad", [-1, float("nan"), "ten", None])
async def test_invalid_duration_rejected(bad: object) -> None:
    pump, _, _ = await _controller()
    with pytest.raises(InvalidDuration):
        await pump.start_manual(bad)  # type: ignore[arg-type]


@pytest.mark.anyio
async def test_zero_duration_is_noop_with_skip_entry() -> None:
    pump, log, _ = await _controller()
    decision = await pump.start_manual(0)
    assert not decision.started
    assert not (await pump.status()).is_running
    entries = await log.recent()
    assert [entry.action for entry in entries] == ["skipped"]


@pytest.mark.anyio
async def test_fractional_duration_rounds_half_up() -> None:
    pump, _, _ = await _controller()
    await pump.start_manual(2.5)
    assert (await pump.status()).total_duration_seconds == 3


@pytest.mark.anyio
async def test_stop_logs_elapsed_time() -> None:
    pump, log, _ = await _controller()
    await pump.start_manual(10)
    for _ in range(4):
        await pump.tick()
    entry = await pump.stop_manual()
    assert entry is not None
    assert entry.action == "manual"
    assert entry.duration_seconds == 4
    assert not (await pump.status()).is_running
    assert await log.count() == 1


@pytest.mark.anyio
async def test_stop_while_idle_returns_none() -> None:
    pump, log, _ = await _controller()
    assert await pump.stop_manual() is None
    assert await log.count() == 0


@pytest.mark.anyio
async def test_stale_tick_cannot_touch_later_run() -> None:
    pump, log, _ = await _controller()
    first = await pump.start_manual(5)
    await pump.stop_manual()
    second = await pump.start_manual(5)
    assert first.run is not None and second.run is not None
    assert await pump.tick(first.run.run_id) is None
    assert (await pump.status()).time_remaining_seconds == 5
    assert await log.count() == 1


@pytest.mark.anyio
async def test_tick_queued_behind_stop_sees_idle() -> None:
    pump, log, _ = await _controller()
    await pump.start_manual(1)
    stop_result, tick_result = await asyncio.gather(pump.stop_manual(), pump.tick())
    assert stop_result is not None
    assert tick_result is None
    entries = await log.recent()
    assert [entry.action for entry in entries] == ["manual"]


@pytest.mark.anyio
async def test_auto_skips_for_rain() -> None:
    pump, log, _ = await _controller()
    decision = await pump.auto_evaluate(recommend(1.0, _weather(rain=True)), DRY, threshold=60)
    assert not decision.started
    assert decision.reason == RAIN_RATIONALE
    entries = await log.recent()
    assert len(entries) == 1
    assert entries[0].action == "skipped"
    assert entries[0].duration_seconds == 0


@pytest.mark.anyio
async def test_tank_empty_takes_precedence_over_rain() -> None:
    pump, _, _ = await _controller(tank_level=10)
    decision = await pump.auto_evaluate(recommend(1.0, _weather(rain=True)), DRY, threshold=60)
    assert decision.reason == REASON_TANK_EMPTY


@pytest.mark.anyio
async def test_auto_skips_when_soil_is_moist() -> None:
    pump, _, _ = await _controller()
    decision = await pump.auto_evaluate(recommend(1.0, _weather()), WET, threshold=60)
    assert not decision.started
    assert decision.reason.startswith("Soil moisture adequate")
    assert not (await pump.status()).is_running


@pytest.mark.anyio
async def test_auto_skips_zero_duration() -> None:
    pump, log, _ = await _controller()
    decision = await pump.auto_evaluate(recommend(0, _weather()), DRY, threshold=60)
    assert not decision.started
    assert await log.count() == 1


@pytest.mark.anyio
async def test_status_payload() -> None:
    pump, _, _ = await _controller()
    assert (await pump.status()).to_dict() == {"isRunning": False, "timeRemaining": 0, "totalDuration": 0}
    await pump.start_manual(8)
    payload = (await pump.status()).to_dict()
    assert payload["isRunning"] is True
    assert payload["mode"] == "manual"
    assert payload["timeRemaining"] == 8
