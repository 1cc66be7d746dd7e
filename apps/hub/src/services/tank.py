from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal, Optional, Protocol

logger = logging.getLogger("irrigation.hub.tank")

TankBand = Literal["normal", "empty", "full"]
TankAlertKind = Literal["empty", "full"]
LastAlert = Literal["none", "empty", "full"]

DEFAULT_EMPTY_THRESHOLD = 20.0
DEFAULT_FULL_THRESHOLD = 95.0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: datetime) -> str:
    iso = value.astimezone(timezone.utc).isoformat(timespec="seconds")
    if iso.endswith("+00:00"):
        return iso[:-6] + "Z"
    return iso


class OutOfRange(ValueError):
    """Raised when a tank level reading falls outside 0-100 %."""

    def __init__(self, level: object) -> None:
        self.level = level
        super().__init__(f"Tank level {level!r} is outside the 0-100% range")


class TankLevelSource(Protocol):
    def read(self, previous_level: float, *, pump_running: bool) -> float:
        ...


@dataclass(frozen=True, slots=True)
class TankAlert:
    kind: TankAlertKind
    level_percent: float
    timestamp: datetime = field(default_factory=_utc_now)

    @property
    def message(self) -> str:
        if self.kind == "empty":
            return f"Water tank nearly empty ({self.level_percent:.0f}%)"
        return f"Water tank full ({self.level_percent:.0f}%)"

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind,
            "levelPercent": self.level_percent,
            "message": self.message,
            "timestamp": _isoformat(self.timestamp),
        }


@dataclass(frozen=True, slots=True)
class TankState:
    level_percent: Optional[float] = None
    last_alert: LastAlert = "none"
    band: TankBand = "normal"
    updated_at: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return self.band == "empty"

    def to_dict(self) -> dict[str, object]:
        return {
            "levelPercent": self.level_percent,
            "lastAlert": self.last_alert,
            "band": self.band,
            "updatedAt": _isoformat(self.updated_at) if self.updated_at else None,
        }


@dataclass(frozen=True, slots=True)
class TankTransition:
    previous: TankBand
    current: TankBand
    alert: Optional[TankAlert]

    @property
    def recovered(self) -> bool:
        return self.current == "normal" and self.previous != "normal"


class TankMonitor:
    """Watches reservoir readings and fires one alert per threshold excursion."""

    def __init__(
        self,
        *,
        empty_threshold: float = DEFAULT_EMPTY_THRESHOLD,
        full_threshold: float = DEFAULT_FULL_THRESHOLD,
    ) -> None:
        if not 0.0 <= empty_threshold < full_threshold <= 100.0:
            raise ValueError("empty_threshold must be below full_threshold and both within 0-100")
        self._empty_threshold = empty_threshold
        self._full_threshold = full_threshold
        self._state = TankState()
        self._lock = asyncio.Lock()

    @property
    def empty_threshold(self) -> float:
        return self._empty_threshold

    @property
    def full_threshold(self) -> float:
        return self._full_threshold

    def classify(self, level_percent: float) -> TankBand:
        if level_percent <= self._empty_threshold:
            return "empty"
        if level_percent >= self._full_threshold:
            return "full"
        return "normal"

    async def observe(self, level_percent: float) -> Optional[TankAlert]:
        """Record a reading; return an alert only when it enters the empty or full band."""
        transition = await self.observe_transition(level_percent)
        return transition.alert

    async def observe_transition(self, level_percent: float) -> TankTransition:
        level = _validate_level(level_percent)
        band = self.classify(level)
        now = _utc_now()
        async with self._lock:
            previous = self._state.band
            alert: Optional[TankAlert] = None
            if band == "normal":
                last_alert: LastAlert = "none"
            else:
                last_alert = band
                if previous != band:
                    alert = TankAlert(kind=band, level_percent=level, timestamp=now)
            self._state = TankState(level_percent=level, last_alert=last_alert, band=band, updated_at=now)

        if alert is not None:
            logger.warning("Tank %s alert at %.1f%%", alert.kind, level)
        elif band == "normal" and previous != "normal":
            logger.info("Tank level back to normal at %.1f%%", level)
        return TankTransition(previous=previous, current=band, alert=alert)

    async def state(self) -> TankState:
        async with self._lock:
            return self._state

    async def reset(self) -> None:
        async with self._lock:
            self._state = TankState()


def _validate_level(level_percent: object) -> float:
    if isinstance(level_percent, bool) or not isinstance(level_percent, (int, float)):
        raise OutOfRange(level_percent)
    level = float(level_percent)
    if math.isnan(level) or level < 0.0 or level > 100.0:
        raise OutOfRange(level_percent)
    return level


__all__ = [
    "LastAlert",
    "OutOfRange",
    "TankAlert",
    "TankAlertKind",
    "TankBand",
    "TankLevelSource",
    "TankMonitor",
    "TankState",
    "TankTransition",
]
