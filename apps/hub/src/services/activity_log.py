from __future__ import annotations

import asyncio
import itertools
import json
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Deque, Dict, List, Literal, Optional

from config import settings

logger = logging.getLogger("irrigation.hub.activity")

ActivityAction = Literal["watered", "skipped", "manual"]
ACTIVITY_ACTIONS: tuple[str, ...] = ("watered", "skipped", "manual")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: datetime) -> str:
    iso = value.astimezone(timezone.utc).isoformat(timespec="seconds")
    if iso.endswith("+00:00"):
        return iso[:-6] + "Z"
    return iso


@dataclass(frozen=True, slots=True)
class ActivityEntry:
    id: str
    action: ActivityAction
    duration_seconds: int
    reason: str
    moisture_level_at_event: Optional[float] = None
    weather_condition_at_event: Optional[str] = None
    timestamp: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "timestamp": _isoformat(self.timestamp),
            "action": self.action,
            "durationSeconds": self.duration_seconds,
            "reason": self.reason,
            "moistureLevel": (
                round(self.moisture_level_at_event, 1) if self.moisture_level_at_event is not None else None
            ),
            "weatherCondition": self.weather_condition_at_event,
        }


class ActivityLog:
    """Append-only irrigation history; the oldest entries are evicted past the configured limit."""

    def __init__(self) -> None:
        self._history_limit = 500
        self._entries: Deque[ActivityEntry] = deque(maxlen=self._history_limit)
        self._ids: set[str] = set()
        self._lock = asyncio.Lock()
        self._counter = itertools.count(1)
        self._log_path: Path | None = None
        self._apply_settings()

    def _apply_settings(self) -> None:
        history_limit = max(10, settings.activity_history_limit)
        if history_limit != self._history_limit:
            snapshot = list(self._entries)[-history_limit:]
            self._entries = deque(snapshot, maxlen=history_limit)
            self._ids = {entry.id for entry in snapshot}
            self._history_limit = history_limit
        self._log_path = (
            Path(settings.activity_event_log).expanduser().resolve() if settings.activity_event_log else None
        )

    def new_entry(
        self,
        action: ActivityAction,
        *,
        duration_seconds: int,
        reason: str,
        moisture_level: Optional[float] = None,
        weather_condition: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> ActivityEntry:
        if action not in ACTIVITY_ACTIONS:
            raise ValueError(f"Unknown activity action {action!r}")
        return ActivityEntry(
            id=str(next(self._counter)),
            action=action,
            duration_seconds=max(0, int(duration_seconds)),
            reason=reason,
            moisture_level_at_event=moisture_level,
            weather_condition_at_event=weather_condition,
            timestamp=timestamp or _utc_now(),
        )

    async def append(self, entry: ActivityEntry) -> ActivityEntry:
        self._apply_settings()
        async with self._lock:
            if entry.id in self._ids:
                raise ValueError(f"Activity entry {entry.id} already recorded")
            if len(self._entries) == self._entries.maxlen:
                self._ids.discard(self._entries[0].id)
            self._entries.append(entry)
            self._ids.add(entry.id)
        logger.info("Activity %s (%ss): %s", entry.action, entry.duration_seconds, entry.reason)
        await self._persist_entry(entry)
        return entry

    async def record(
        self,
        action: ActivityAction,
        *,
        duration_seconds: int,
        reason: str,
        moisture_level: Optional[float] = None,
        weather_condition: Optional[str] = None,
    ) -> ActivityEntry:
        entry = self.new_entry(
            action,
            duration_seconds=duration_seconds,
            reason=reason,
            moisture_level=moisture_level,
            weather_condition=weather_condition,
        )
        return await self.append(entry)

    async def recent(self, limit: int = 50) -> List[ActivityEntry]:
        """Return up to ``limit`` entries, newest first."""
        async with self._lock:
            snapshot = list(reversed(self._entries))
        # stable sort keeps later appends first among equal timestamps
        snapshot.sort(key=lambda entry: entry.timestamp, reverse=True)
        if limit > 0:
            snapshot = snapshot[:limit]
        return snapshot

    async def count(self) -> int:
        async with self._lock:
            return len(self._entries)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
            self._ids.clear()

    async def _persist_entry(self, entry: ActivityEntry) -> None:
        path = self._log_path
        if path is None:
            return
        payload = json.dumps(entry.to_dict(), separators=(",", ":"))
        try:
            await asyncio.to_thread(self._append_log_entry, path, payload)
        except OSError as exc:  # pragma: no cover - persistence failures are non-fatal
            logger.debug("Activity log append failed: %s", exc)

    @staticmethod
    def _append_log_entry(path: Path, payload: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(payload + "\n")


__all__ = ["ACTIVITY_ACTIONS", "ActivityAction", "ActivityEntry", "ActivityLog"]
