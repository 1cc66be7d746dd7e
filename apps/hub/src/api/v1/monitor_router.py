from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel, Field

from services.irrigation_hub import irrigation_hub
from services.tank import OutOfRange

from .dependencies import to_http_error

router = APIRouter(tags=["monitor"])


class TankLevelRequest(BaseModel):
    level: float = Field(..., description="Tank fill level in percent (0-100)")


@router.get("/sensor")
async def get_sensor_reading() -> dict[str, object]:
    reading = await irrigation_hub.sensor.latest()
    return reading.to_dict()


@router.post("/sensor/tick")
async def tick_sensor() -> dict[str, object]:
    reading = await irrigation_hub.advance_sensor()
    return reading.to_dict()


@router.get("/tank")
async def get_tank_state() -> dict[str, object]:
    state = await irrigation_hub.tank.state()
    return state.to_dict()


@router.post("/tank/level")
async def report_tank_level(payload: TankLevelRequest) -> dict[str, object]:
    try:
        transition = await irrigation_hub.observe_tank(payload.level)
    except OutOfRange as exc:
        raise to_http_error(exc) from exc
    state = await irrigation_hub.tank.state()
    return {
        "tank": state.to_dict(),
        "alert": transition.alert.to_dict() if transition.alert is not None else None,
        "recovered": transition.recovered,
    }


__all__ = ["router"]
