from __future__ import annotations

from fastapi import APIRouter, Query

from services.alerts import alerts_service
from services.irrigation_hub import irrigation_hub

router = APIRouter(tags=["history"])


@router.get("/activity")
async def list_activity(limit: int = Query(default=50, ge=1, le=500)) -> list[dict[str, object]]:
    entries = await irrigation_hub.activity.recent(limit)
    return [entry.to_dict() for entry in entries]


@router.get("/alerts")
async def list_alerts(
    limit: int = Query(default=50, ge=1, le=500),
    severity: str | None = Query(default=None, max_length=16),
    active: bool = Query(default=False, description="Only conditions that are currently raised"),
) -> list[dict[str, object]]:
    if active:
        events = await alerts_service.active()
    else:
        events = await alerts_service.list_events(limit=limit, severity=severity)
    return [event.to_dict() for event in events]


__all__ = ["router"]
