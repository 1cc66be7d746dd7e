from __future__ import annotations

import asyncio
import itertools
import json
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Deque, Dict, Iterable, List, Literal, Optional

import httpx

from config import settings

logger = logging.getLogger("irrigation.hub.alerts")

AlertSeverity = Literal["info", "warning", "critical"]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: datetime) -> str:
    iso = value.astimezone(timezone.utc).isoformat(timespec="seconds")
    if iso.endswith("+00:00"):
        return iso[:-6] + "Z"
    return iso


@dataclass(frozen=True, slots=True)
class AlertEvent:
    id: int
    kind: str
    severity: AlertSeverity
    message: str
    key: Optional[str] = None
    recovered: bool = False
    context: Dict[str, object] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "kind": self.kind,
            "severity": self.severity,
            "message": self.message,
            "key": self.key,
            "recovered": self.recovered,
            "context": dict(self.context),
            "timestamp": _isoformat(self.timestamp),
        }


class AlertService:
    """Keeps recent alerts plus the set of conditions that are currently raised.

    A condition key (``tank.empty``) alerts once when raised and once more when
    cleared; repeats in between are ignored. Events go to an optional JSONL file
    and, while notifications are on, to an optional webhook.
    """

    def __init__(self) -> None:
        self._history_limit = max(50, settings.alerts_history_limit)
        self._history: Deque[AlertEvent] = deque(maxlen=self._history_limit)
        self._active: Dict[str, AlertEvent] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()
        self._client: Optional[httpx.AsyncClient] = None

    def _resize_history(self) -> None:
        limit = max(50, settings.alerts_history_limit)
        if limit != self._history_limit:
            self._history = deque(list(self._history)[-limit:], maxlen=limit)
            self._history_limit = limit

    def _build(
        self,
        kind: str,
        severity: AlertSeverity,
        message: str,
        *,
        key: Optional[str],
        recovered: bool,
        context: Optional[Dict[str, object]],
    ) -> AlertEvent:
        return AlertEvent(
            id=next(self._ids),
            kind=kind,
            severity=severity,
            message=message,
            key=key,
            recovered=recovered,
            context=dict(context or {}),
        )

    async def emit(
        self,
        kind: str,
        *,
        severity: AlertSeverity,
        message: str,
        context: Optional[Dict[str, object]] = None,
        notify: bool = True,
    ) -> AlertEvent:
        """Record a one-off alert that is not tied to a condition."""
        async with self._lock:
            self._resize_history()
            event = self._build(kind, severity, message, key=None, recovered=False, context=context)
            self._history.append(event)
        await self._publish(event, notify=notify)
        return event

    async def raise_condition(
        self,
        key: str,
        *,
        kind: str,
        severity: AlertSeverity,
        message: str,
        context: Optional[Dict[str, object]] = None,
    ) -> Optional[AlertEvent]:
        async with self._lock:
            if key in self._active:
                return None
            self._resize_history()
            event = self._build(kind, severity, message, key=key, recovered=False, context=context)
            self._active[key] = event
            self._history.append(event)
        logger.warning("Alert raised [%s]: %s", key, message)
        await self._publish(event, notify=True)
        return event

    async def clear_condition(
        self,
        key: str,
        *,
        message: str,
        context: Optional[Dict[str, object]] = None,
        notify: bool = False,
    ) -> Optional[AlertEvent]:
        async with self._lock:
            raised = self._active.pop(key, None)
            if raised is None:
                return None
            self._resize_history()
            event = self._build(
                f"{raised.kind}.recovered",
                "info",
                message,
                key=key,
                recovered=True,
                context=context,
            )
            self._history.append(event)
        logger.info("Alert cleared [%s]: %s", key, message)
        await self._publish(event, notify=notify)
        return event

    async def active(self) -> List[AlertEvent]:
        async with self._lock:
            return sorted(self._active.values(), key=lambda event: event.id)

    async def list_events(
        self,
        *,
        limit: int = 50,
        severity: Optional[str] = None,
        kinds: Optional[Iterable[str]] = None,
    ) -> List[AlertEvent]:
        """Return recent alerts, oldest first."""
        async with self._lock:
            events = list(self._history)
        if severity:
            events = [event for event in events if event.severity == severity.lower()]
        if kinds:
            wanted = {kind.lower() for kind in kinds}
            events = [event for event in events if event.kind in wanted]
        if limit > 0:
            events = events[-limit:]
        return events

    async def clear(self) -> None:
        async with self._lock:
            self._history.clear()
            self._active.clear()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _publish(self, event: AlertEvent, *, notify: bool) -> None:
        if settings.alerts_event_log:
            await self._append_jsonl(Path(settings.alerts_event_log).expanduser(), event)
        if not notify:
            return
        if not settings.notifications:
            logger.debug("Notifications off; %s kept local", event.kind)
            return
        if settings.alerts_webhook_url:
            try:
                await self._post_webhook(settings.alerts_webhook_url, event)
            except httpx.HTTPError as exc:
                logger.warning("Alert webhook delivery failed: %s", exc)

    async def _append_jsonl(self, path: Path, event: AlertEvent) -> None:
        line = json.dumps(event.to_dict(), separators=(",", ":"))

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            logger.debug("Alert log append failed: %s", exc)

    async def _post_webhook(self, url: str, event: AlertEvent) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=10.0)
        response = await self._client.post(url, json=event.to_dict())
        response.raise_for_status()


alerts_service = AlertService()

__all__ = ["AlertEvent", "AlertService", "AlertSeverity", "alerts_service"]
