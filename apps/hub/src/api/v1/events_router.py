from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from fastapi import APIRouter, Query
from fastapi.responses import StreamingResponse

from services.alerts import alerts_service
from services.event_bus import HUB_TOPICS, EventMessage, event_bus
from services.irrigation_hub import irrigation_hub

logger = logging.getLogger("irrigation.hub.events")

router = APIRouter(prefix="/events", tags=["events"])

INITIAL_ACTIVITY_LIMIT = 20
INITIAL_ALERT_LIMIT = 50
KEEPALIVE_SECONDS = 20.0


@router.get(
    "/stream",
    response_class=StreamingResponse,
    summary="Server-sent events stream for pump, tank, sensor and activity updates",
)
async def stream_events(
    topics: str | None = Query(default=None, description="Comma-separated topics, e.g. pump,tank"),
) -> StreamingResponse:
    wanted = _parse_topics(topics)

    async def _event_source() -> AsyncIterator[bytes]:
        subscription = await event_bus.subscribe(wanted)
        try:
            snapshot = await _build_initial_snapshot()
            yield EventMessage(type="init", data=snapshot).to_sse()
            while True:
                try:
                    message = await asyncio.wait_for(subscription.get(), timeout=KEEPALIVE_SECONDS)
                    yield message.to_sse()
                except asyncio.TimeoutError:
                    yield b": keep-alive\n\n"
        except asyncio.CancelledError:  # pragma: no cover - server shutdown
            raise
        finally:
            await subscription.close()

    headers = {
        "Cache-Control": "no-cache",
        "X-Accel-Buffering": "no",
    }
    return StreamingResponse(_event_source(), media_type="text/event-stream", headers=headers)


def _parse_topics(raw: str | None) -> list[str] | None:
    if not raw:
        return None
    topics = [item.strip().lower() for item in raw.split(",") if item.strip()]
    unknown = sorted(set(topics) - HUB_TOPICS)
    if unknown:
        logger.debug("Ignoring unknown event topics: %s", ", ".join(unknown))
    return topics


async def _build_initial_snapshot() -> dict[str, object]:
    state_task = asyncio.create_task(irrigation_hub.snapshot())
    activity_task = asyncio.create_task(irrigation_hub.activity.recent(INITIAL_ACTIVITY_LIMIT))
    alerts_task = asyncio.create_task(alerts_service.list_events(limit=INITIAL_ALERT_LIMIT))

    state, activity, alerts = await asyncio.gather(state_task, activity_task, alerts_task)
    snapshot: dict[str, object] = dict(state)
    snapshot["activity"] = [entry.to_dict() for entry in activity]
    snapshot["alerts"] = [event.to_dict() for event in alerts]
    return snapshot


__all__ = ["router"]
