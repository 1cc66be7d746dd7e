from __future__ import annotations

from fastapi import APIRouter

from services.irrigation_hub import irrigation_hub
from services.soil_catalog import soil_catalog

from .dependencies import get_region_or_404

router = APIRouter(tags=["catalog"])


@router.get("/regions")
async def list_regions() -> list[dict[str, object]]:
    return [region.to_dict() for region in soil_catalog.list_regions()]


@router.get("/regions/{region}/soils")
async def list_region_soils(region: str) -> dict[str, object]:
    match = get_region_or_404(region)
    return {
        "region": match.id,
        "soils": [soil.to_dict() for soil in soil_catalog.soil_types(match.id)],
    }


@router.get("/profile")
async def get_profile() -> dict[str, object]:
    return irrigation_hub.profile().to_dict()


__all__ = ["router"]
