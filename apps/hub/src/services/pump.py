from __future__ import annotations

import asyncio
import itertools
import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, Literal, Optional

from services.activity_log import ActivityEntry, ActivityLog
from services.sensor import SensorReading, needs_watering
from services.tank import TankMonitor, TankState
from services.watering import WateringRecommendation, round_half_up

logger = logging.getLogger("irrigation.hub.pump")

PumpMode = Literal["auto", "manual"]

REASON_ALREADY_RUNNING = "Pump is already running - stop the current cycle first"
REASON_TANK_EMPTY = "Tank empty - refill the reservoir before watering"
REASON_MOISTURE_ADEQUATE = "Soil moisture adequate - no watering needed"
REASON_ZERO_DURATION = "Requested watering duration is zero - nothing to do"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: datetime) -> str:
    iso = value.astimezone(timezone.utc).isoformat(timespec="seconds")
    if iso.endswith("+00:00"):
        return iso[:-6] + "Z"
    return iso


class PumpControlError(RuntimeError):
    """Raised when a pump start request is rejected."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class AlreadyRunning(PumpControlError):
    def __init__(self) -> None:
        super().__init__(REASON_ALREADY_RUNNING)


class TankEmpty(PumpControlError):
    def __init__(self) -> None:
        super().__init__(REASON_TANK_EMPTY)


class InvalidDuration(ValueError):
    """Raised for negative or non-numeric watering durations."""


@dataclass(frozen=True, slots=True)
class PumpRun:
    run_id: int
    mode: PumpMode
    total_duration_seconds: int
    time_remaining_seconds: int
    reason: str
    moisture_level: Optional[float] = None
    weather_condition: Optional[str] = None
    started_at: datetime = field(default_factory=_utc_now)

    @property
    def elapsed_seconds(self) -> int:
        return self.total_duration_seconds - self.time_remaining_seconds


@dataclass(frozen=True, slots=True)
class PumpStatus:
    is_running: bool
    time_remaining_seconds: int = 0
    total_duration_seconds: int = 0
    mode: Optional[PumpMode] = None
    run_id: Optional[int] = None
    started_at: Optional[datetime] = None

    @classmethod
    def from_run(cls, run: Optional[PumpRun]) -> "PumpStatus":
        if run is None:
            return cls(is_running=False)
        return cls(
            is_running=True,
            time_remaining_seconds=run.time_remaining_seconds,
            total_duration_seconds=run.total_duration_seconds,
            mode=run.mode,
            run_id=run.run_id,
            started_at=run.started_at,
        )

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "isRunning": self.is_running,
            "timeRemaining": self.time_remaining_seconds,
            "totalDuration": self.total_duration_seconds,
        }
        if self.mode is not None:
            payload["mode"] = self.mode
        if self.run_id is not None:
            payload["runId"] = self.run_id
        if self.started_at is not None:
            payload["startedAt"] = _isoformat(self.started_at)
        return payload


@dataclass(frozen=True, slots=True)
class PumpDecision:
    started: bool
    reason: str
    run: Optional[PumpRun] = None
    entry: Optional[ActivityEntry] = None


class PumpController:
    """Single-pump run/idle state machine.

    Every transition runs under one lock, so a countdown tick queued behind a
    manual stop sees the idle state and does nothing. Each terminal transition
    and each auto-evaluation skip appends exactly one activity entry.
    """

    def __init__(self, activity_log: ActivityLog, tank_monitor: TankMonitor) -> None:
        self._activity = activity_log
        self._tank = tank_monitor
        self._run: Optional[PumpRun] = None
        self._lock = asyncio.Lock()
        self._run_ids = itertools.count(1)

    async def status(self) -> PumpStatus:
        async with self._lock:
            return PumpStatus.from_run(self._run)

    async def is_running(self) -> bool:
        async with self._lock:
            return self._run is not None

    async def start_manual(
        self,
        duration_seconds: float,
        *,
        moisture_level: Optional[float] = None,
        weather_condition: Optional[str] = None,
    ) -> PumpDecision:
        duration = _validate_duration(duration_seconds)
        async with self._lock:
            if self._run is not None:
                raise AlreadyRunning()
            tank_state = await self._tank.state()
            if tank_state.is_empty:
                logger.info("Manual start refused: tank empty")
                raise TankEmpty()
            if duration == 0:
                entry = await self._activity.record(
                    "skipped",
                    duration_seconds=0,
                    reason=REASON_ZERO_DURATION,
                    moisture_level=moisture_level,
                    weather_condition=weather_condition,
                )
                return PumpDecision(started=False, reason=REASON_ZERO_DURATION, entry=entry)
            run = self._begin_locked(
                "manual",
                duration,
                reason="Manual override by user",
                moisture_level=moisture_level,
                weather_condition=weather_condition,
            )
        return PumpDecision(started=True, reason=run.reason, run=run)

    async def auto_evaluate(
        self,
        recommendation: WateringRecommendation,
        reading: SensorReading,
        *,
        threshold: float,
        tank_state: Optional[TankState] = None,
        weather_condition: Optional[str] = None,
    ) -> PumpDecision:
        """Start an auto cycle when the recommendation, soil and tank all allow it."""
        async with self._lock:
            if self._run is not None:
                raise AlreadyRunning()
            tank = tank_state if tank_state is not None else await self._tank.state()
            duration = recommendation.display_seconds
            if tank.is_empty:
                reason = REASON_TANK_EMPTY
            elif recommendation.is_skip:
                reason = recommendation.rationale
            elif duration <= 0:
                reason = f"Recommended duration rounds to zero seconds ({recommendation.adjusted_duration_seconds}s)"
            elif not needs_watering(reading, threshold):
                reason = f"{REASON_MOISTURE_ADEQUATE} ({reading.moisture_level:.1f}% >= {threshold:.0f}%)"
            else:
                run = self._begin_locked(
                    "auto",
                    duration,
                    reason=(
                        f"Soil moisture {reading.moisture_level:.1f}% below {threshold:.0f}% threshold; "
                        f"{recommendation.rationale}"
                    ),
                    moisture_level=reading.moisture_level,
                    weather_condition=weather_condition,
                )
                return PumpDecision(started=True, reason=run.reason, run=run)

            entry = await self._activity.record(
                "skipped",
                duration_seconds=0,
                reason=reason,
                moisture_level=reading.moisture_level,
                weather_condition=weather_condition,
            )
        logger.info("Auto watering skipped: %s", reason)
        return PumpDecision(started=False, reason=reason, entry=entry)

    async def tick(self, run_id: Optional[int] = None) -> Optional[ActivityEntry]:
        """Advance the countdown by one second; return the entry logged on completion."""
        async with self._lock:
            run = self._run
            if run is None or (run_id is not None and run.run_id != run_id):
                return None
            if run.time_remaining_seconds > 1:
                self._run = replace(run, time_remaining_seconds=run.time_remaining_seconds - 1)
                return None
            self._run = None
            label = "Auto" if run.mode == "auto" else "Manual"
            entry = await self._activity.record(
                "watered",
                duration_seconds=run.total_duration_seconds,
                reason=f"{label} watering completed - {run.reason}",
                moisture_level=run.moisture_level,
                weather_condition=run.weather_condition,
            )
        logger.info("Pump run %s completed after %ss", run.run_id, run.total_duration_seconds)
        return entry

    async def stop_manual(self) -> Optional[ActivityEntry]:
        async with self._lock:
            run = self._run
            if run is None:
                return None
            self._run = None
            elapsed = run.elapsed_seconds
            entry = await self._activity.record(
                "manual",
                duration_seconds=elapsed,
                reason=f"Stopped manually after {elapsed}s of {run.total_duration_seconds}s ({run.mode} cycle)",
                moisture_level=run.moisture_level,
                weather_condition=run.weather_condition,
            )
        logger.info("Pump run %s stopped manually after %ss", run.run_id, elapsed)
        return entry

    async def reset(self) -> None:
        async with self._lock:
            self._run = None

    def _begin_locked(
        self,
        mode: PumpMode,
        duration: int,
        *,
        reason: str,
        moisture_level: Optional[float],
        weather_condition: Optional[str],
    ) -> PumpRun:
        run = PumpRun(
            run_id=next(self._run_ids),
            mode=mode,
            total_duration_seconds=duration,
            time_remaining_seconds=duration,
            reason=reason,
            moisture_level=moisture_level,
            weather_condition=weather_condition,
        )
        self._run = run
        logger.info("Pump run %s started (%s, %ss)", run.run_id, mode, duration)
        return run


def _validate_duration(duration_seconds: object) -> int:
    if isinstance(duration_seconds, bool) or not isinstance(duration_seconds, (int, float)):
        raise InvalidDuration(f"Watering duration must be numeric, got {duration_seconds!r}")
    if not math.isfinite(duration_seconds) or duration_seconds < 0:
        raise InvalidDuration(f"Watering duration must be zero or positive, got {duration_seconds!r}")
    return int(round_half_up(float(duration_seconds)))


__all__ = [
    "AlreadyRunning",
    "InvalidDuration",
    "PumpControlError",
    "PumpController",
    "PumpDecision",
    "PumpMode",
    "PumpRun",
    "PumpStatus",
    "TankEmpty",
]
