from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from config import settings
from mock.sensors import SimulatedMoistureSensor
from mock.tank import SimulatedTankLevel
from services.activity_log import ActivityEntry, ActivityLog
from services.alerts import AlertService, alerts_service
from services.event_bus import EventBus, event_bus
from services.pump import PumpController, PumpDecision, PumpStatus
from services.sensor import SensorReading, SensorSource, SoilSensorFeed
from services.soil_catalog import Region, SoilCatalog, SoilType, soil_catalog
from services.tank import TankLevelSource, TankMonitor, TankState, TankTransition
from services.watering import WateringRecommendation, recommend
from services.weather import WeatherService, WeatherSnapshot, weather_service

logger = logging.getLogger("irrigation.hub.engine")

DEFAULT_MANUAL_SECONDS = 10


@dataclass(frozen=True, slots=True)
class IrrigationProfile:
    default_region: str
    moisture_threshold: float
    notifications: bool

    @classmethod
    def from_settings(cls) -> "IrrigationProfile":
        return cls(
            default_region=settings.default_region,
            moisture_threshold=settings.moisture_threshold,
            notifications=settings.notifications,
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "defaultRegion": self.default_region,
            "moistureThreshold": self.moisture_threshold,
            "notifications": self.notifications,
        }


@dataclass(frozen=True, slots=True)
class RecommendationResult:
    region: Region
    soil: SoilType
    weather: WeatherSnapshot
    recommendation: WateringRecommendation

    def to_dict(self) -> Dict[str, object]:
        return {
            "region": self.region.to_dict(),
            "soil": self.soil.to_dict(),
            "weather": self.weather.to_dict(),
            "recommendation": self.recommendation.to_dict(),
        }


def _initial_reading() -> SensorReading:
    return SensorReading(
        moisture_level=settings.sensor_initial_moisture,
        temperature=settings.sensor_initial_temperature,
    )


class IrrigationHub:
    """Wires the decision engine, pump, tank, sensor and history for one deployment."""

    def __init__(
        self,
        *,
        catalog: SoilCatalog = soil_catalog,
        weather: WeatherService = weather_service,
        alerts: AlertService = alerts_service,
        bus: EventBus = event_bus,
        sensor_source: Optional[SensorSource] = None,
        tank_source: Optional[TankLevelSource] = None,
    ) -> None:
        self.catalog = catalog
        self.weather = weather
        self.alerts = alerts
        self.bus = bus
        self.activity = ActivityLog()
        self.tank = TankMonitor(
            empty_threshold=settings.tank_empty_threshold,
            full_threshold=settings.tank_full_threshold,
        )
        self.pump = PumpController(self.activity, self.tank)
        self.sensor = SoilSensorFeed(
            sensor_source or SimulatedMoistureSensor(seed=settings.simulation_seed),
            _initial_reading(),
        )
        self.tank_source: TankLevelSource = tank_source or SimulatedTankLevel(seed=settings.simulation_seed)
        self._loops: list[asyncio.Task[None]] = []
        self._countdown: Optional[asyncio.Task[None]] = None

    def profile(self) -> IrrigationProfile:
        return IrrigationProfile.from_settings()

    # ------------------------------------------------------------------ decisions

    async def recommend(
        self,
        region_id: str,
        soil_type_id: str,
        *,
        weather: Optional[WeatherSnapshot] = None,
    ) -> RecommendationResult:
        region = self.catalog.get_region(region_id)
        soil = self.catalog.get_soil_type(region.id, soil_type_id)
        snapshot = weather if weather is not None else await self.weather.fetch(region.id)
        return RecommendationResult(
            region=region,
            soil=soil,
            weather=snapshot,
            recommendation=recommend(soil.watering_multiplier, snapshot),
        )

    async def evaluate(
        self,
        region_id: Optional[str] = None,
        soil_type_id: Optional[str] = None,
        *,
        threshold: Optional[float] = None,
        weather: Optional[WeatherSnapshot] = None,
    ) -> tuple[RecommendationResult, PumpDecision]:
        """Run one auto-mode evaluation and start the pump when it qualifies."""
        result = await self.recommend(
            region_id or settings.default_region,
            soil_type_id or settings.auto_soil_type,
            weather=weather,
        )
        reading = await self.sensor.latest()
        decision = await self.pump.auto_evaluate(
            result.recommendation,
            reading,
            threshold=threshold if threshold is not None else settings.moisture_threshold,
            weather_condition=result.weather.condition,
        )
        await self._after_decision(decision)
        return result, decision

    async def start_manual(
        self,
        duration_seconds: Optional[float] = None,
        *,
        region_id: Optional[str] = None,
        soil_type_id: Optional[str] = None,
    ) -> PumpDecision:
        weather_condition: Optional[str] = None
        duration = duration_seconds
        if region_id and soil_type_id:
            result = await self.recommend(region_id, soil_type_id)
            weather_condition = result.weather.condition
            if duration is None:
                duration = result.recommendation.display_seconds or DEFAULT_MANUAL_SECONDS
        if duration is None:
            duration = DEFAULT_MANUAL_SECONDS
        reading = await self.sensor.latest()
        decision = await self.pump.start_manual(
            duration,
            moisture_level=reading.moisture_level,
            weather_condition=weather_condition,
        )
        await self._after_decision(decision)
        return decision

    async def stop_manual(self) -> Optional[ActivityEntry]:
        entry = await self.pump.stop_manual()
        self._cancel_countdown()
        if entry is not None:
            await self._publish_pump()
            await self.bus.publish("activity", entry.to_dict())
        return entry

    async def tick_pump(self, run_id: Optional[int] = None) -> Optional[ActivityEntry]:
        entry = await self.pump.tick(run_id)
        await self._publish_pump()
        if entry is not None:
            await self.bus.publish("activity", entry.to_dict())
        return entry

    # ------------------------------------------------------------------ sensors

    async def advance_sensor(self) -> SensorReading:
        reading = await self.sensor.advance()
        await self.bus.publish("sensor", reading.to_dict())
        return reading

    async def observe_tank(self, level_percent: float) -> TankTransition:
        transition = await self.tank.observe_transition(level_percent)
        state = await self.tank.state()
        await self.bus.publish("tank", state.to_dict())
        await self._forward_tank_alerts(transition, level_percent)
        return transition

    async def sample_tank(self) -> TankTransition:
        state = await self.tank.state()
        previous = state.level_percent if state.level_percent is not None else settings.tank_initial_level
        level = self.tank_source.read(previous, pump_running=await self.pump.is_running())
        return await self.observe_tank(level)

    async def _forward_tank_alerts(self, transition: TankTransition, level_percent: float) -> None:
        context = {"levelPercent": level_percent}
        if transition.previous != "normal" and transition.previous != transition.current:
            event = await self.alerts.clear_condition(
                f"tank.{transition.previous}",
                message=f"Tank level back to {transition.current} ({level_percent:.0f}%)",
                context=context,
            )
            if event is not None:
                await self.bus.publish("alert", event.to_dict())
        alert = transition.alert
        if alert is None:
            return
        event = await self.alerts.raise_condition(
            f"tank.{alert.kind}",
            kind=f"tank.{alert.kind}",
            severity="critical" if alert.kind == "empty" else "warning",
            message=alert.message,
            context=context,
        )
        if event is not None:
            await self.bus.publish("alert", event.to_dict())

    # ------------------------------------------------------------------ state

    async def snapshot(self) -> Dict[str, object]:
        pump_status: PumpStatus = await self.pump.status()
        tank_state: TankState = await self.tank.state()
        reading = await self.sensor.latest()
        return {
            "pump": pump_status.to_dict(),
            "tank": tank_state.to_dict(),
            "sensor": reading.to_dict(),
            "profile": self.profile().to_dict(),
        }

    async def initialize(self) -> None:
        state = await self.tank.state()
        if state.level_percent is None:
            await self.tank.observe(settings.tank_initial_level)

    async def reset(self) -> None:
        self._cancel_countdown()
        await self.pump.reset()
        await self.activity.clear()
        await self.tank.reset()
        await self.sensor.reset(_initial_reading(), source=SimulatedMoistureSensor(seed=settings.simulation_seed))
        await self.initialize()

    # ------------------------------------------------------------------ background tasks

    @property
    def running(self) -> bool:
        return bool(self._loops)

    async def start(self) -> None:
        await self.initialize()
        if self._loops:
            return
        self._loops = [
            asyncio.create_task(
                self._periodic("sensor", settings.sensor_interval_seconds, self.advance_sensor),
                name="irrigation-sensor",
            ),
            asyncio.create_task(
                self._periodic("tank", settings.tank_interval_seconds, self.sample_tank),
                name="irrigation-tank",
            ),
        ]
        if settings.auto_evaluate_seconds > 0:
            self._loops.append(
                asyncio.create_task(
                    self._periodic("auto", settings.auto_evaluate_seconds, self._auto_evaluate_once),
                    name="irrigation-auto",
                )
            )
        logger.info("Irrigation simulation loops started (%d tasks)", len(self._loops))

    async def stop(self) -> None:
        tasks = self._loops
        self._loops = []
        if self._countdown is not None:
            tasks = [*tasks, self._countdown]
            self._countdown = None
        if not tasks:
            return
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception) and not isinstance(result, asyncio.CancelledError):
                logger.warning("Irrigation task stopped with error: %s", result)
        logger.info("Irrigation loops stopped")

    async def _periodic(self, name: str, interval: float, action: Callable[[], Awaitable[object]]) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await action()
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001 - keep the loop alive
                logger.warning("%s loop iteration failed: %s", name, exc)

    async def _auto_evaluate_once(self) -> None:
        if await self.pump.is_running():
            return
        await self.evaluate()

    async def _after_decision(self, decision: PumpDecision) -> None:
        if decision.entry is not None:
            await self.bus.publish("activity", decision.entry.to_dict())
        if decision.run is None:
            return
        await self._publish_pump()
        if settings.pump_countdown_enabled:
            self._cancel_countdown()
            self._countdown = asyncio.create_task(
                self._run_countdown(decision.run.run_id),
                name=f"pump-countdown-{decision.run.run_id}",
            )

    async def _run_countdown(self, run_id: int) -> None:
        while True:
            await asyncio.sleep(settings.pump_tick_seconds)
            status = await self.pump.status()
            if status.run_id != run_id:
                return
            try:
                entry = await self.tick_pump(run_id)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001 - keep counting down
                logger.warning("Pump countdown tick failed: %s", exc)
                continue
            if entry is not None:
                return

    def _cancel_countdown(self) -> None:
        task = self._countdown
        self._countdown = None
        if task is None or task.done():
            return
        try:
            task.cancel()
        except RuntimeError:  # pragma: no cover - loop already closed
            logger.debug("Countdown task belongs to a closed loop")

    async def _publish_pump(self) -> None:
        status = await self.pump.status()
        await self.bus.publish("pump", status.to_dict())


irrigation_hub = IrrigationHub()

__all__ = ["DEFAULT_MANUAL_SECONDS", "IrrigationHub", "IrrigationProfile", "RecommendationResult", "irrigation_hub"]
