from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence


class UnknownRegionError(LookupError):
    """Raised when a region identifier is not part of the configured catalog."""

    def __init__(self, region: str, known: Sequence[str]) -> None:
        self.region = region
        self.known = list(known)
        super().__init__(f"Region {region!r} not found")


class UnknownSoilTypeError(LookupError):
    """Raised when a soil type is not offered for the requested region."""

    def __init__(self, region: str, soil_type: str) -> None:
        self.region = region
        self.soil_type = soil_type
        super().__init__(f"Soil type {soil_type!r} not available for region {region!r}")


@dataclass(frozen=True, slots=True)
class SoilType:
    id: str
    name: str
    description: str
    watering_multiplier: float

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "wateringMultiplier": self.watering_multiplier,
        }


@dataclass(frozen=True, slots=True)
class Region:
    id: str
    name: str
    lat: float
    lon: float

    def to_dict(self) -> Dict[str, object]:
        return {"id": self.id, "name": self.name, "lat": self.lat, "lon": self.lon}


SANDY = SoilType("sandy", "Sandy Soil", "Drains quickly, needs frequent watering", 1.5)
CLAY = SoilType("clay", "Clay Soil", "Retains water well, less frequent watering", 0.7)
LOAMY = SoilType("loamy", "Loamy Soil", "Perfect balance, moderate watering", 1.0)

DEFAULT_SOIL_TYPES: tuple[SoilType, ...] = (SANDY, CLAY, LOAMY)

DEFAULT_REGIONS: tuple[Region, ...] = (
    Region("nagpur", "Nagpur", 21.1458, 79.0882),
    Region("amravati", "Amravati", 20.9374, 77.7796),
    Region("yavatmal", "Yavatmal", 20.3888, 78.1204),
)


def _normalize(value: str | None) -> str:
    return (value or "").strip().lower()


class SoilCatalog:
    """Static region and soil catalog; soil types may differ per region."""

    def __init__(
        self,
        regions: Iterable[Region] = DEFAULT_REGIONS,
        soils: Optional[Mapping[str, Sequence[SoilType]]] = None,
    ) -> None:
        self._regions: Dict[str, Region] = {region.id: region for region in regions}
        self._soils: Dict[str, Dict[str, SoilType]] = {}
        for region_id in self._regions:
            entries = soils.get(region_id, DEFAULT_SOIL_TYPES) if soils is not None else DEFAULT_SOIL_TYPES
            self._soils[region_id] = {soil.id: soil for soil in entries}

    def region_ids(self) -> List[str]:
        return list(self._regions)

    def list_regions(self) -> List[Region]:
        return list(self._regions.values())

    def get_region(self, region_id: str) -> Region:
        region = self._regions.get(_normalize(region_id))
        if region is None:
            raise UnknownRegionError(region_id, self.region_ids())
        return region

    def has_region(self, region_id: str) -> bool:
        return _normalize(region_id) in self._regions

    def soil_types(self, region_id: str) -> List[SoilType]:
        region = self.get_region(region_id)
        return list(self._soils[region.id].values())

    def get_soil_type(self, region_id: str, soil_type_id: str) -> SoilType:
        region = self.get_region(region_id)
        soil = self._soils[region.id].get(_normalize(soil_type_id))
        if soil is None:
            raise UnknownSoilTypeError(region.id, soil_type_id)
        return soil

    def multiplier(self, region_id: str, soil_type_id: str) -> float:
        return self.get_soil_type(region_id, soil_type_id).watering_multiplier


soil_catalog = SoilCatalog()

__all__ = [
    "Region",
    "SoilType",
    "SoilCatalog",
    "UnknownRegionError",
    "UnknownSoilTypeError",
    "DEFAULT_REGIONS",
    "DEFAULT_SOIL_TYPES",
    "soil_catalog",
]
