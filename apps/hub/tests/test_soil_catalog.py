import pytest

from services.soil_catalog import (
    Region,
    SoilCatalog,
    SoilType,
    UnknownRegionError,
    UnknownSoilTypeError,
    soil_catalog,
)


def test_default_regions() -> None:
    assert soil_catalog.region_ids() == ["nagpur", "amravati", "yavatmal"]
    nagpur = soil_catalog.get_region("Nagpur")
    assert (nagpur.lat, nagpur.lon) == (21.1458, 79.0882)


@pytest.mark.parametrize("region", ["nagpur", "amravati", "yavatmal"])
def test_uniform_soil_multipliers(region: str) -> None:
    assert soil_catalog.multiplier(region, "sandy") == 1.5
    assert soil_catalog.multiplier(region, "clay") == 0.7
    assert soil_catalog.multiplier(region, "LOAMY") == 1.0


def test_unknown_region() -> None:
    with pytest.raises(UnknownRegionError) as excinfo:
        soil_catalog.get_region("pune")
    assert excinfo.value.known == ["nagpur", "amravati", "yavatmal"]
    assert not soil_catalog.has_region("pune")


def test_unknown_soil_type() -> None:
    with pytest.raises(UnknownSoilTypeError):
        soil_catalog.get_soil_type("nagpur", "peat")


def test_per_region_soil_override() -> None:
    peat = SoilType("peat", "Peat Soil", "Holds moisture", 0.5)
    catalog = SoilCatalog(
        regions=[Region("north", "North", 1.0, 2.0), Region("south", "South", 3.0, 4.0)],
        soils={"north": [peat]},
    )
    assert [soil.id for soil in catalog.soil_types("north")] == ["peat"]
    assert catalog.multiplier("south", "sandy") == 1.5
    with pytest.raises(UnknownSoilTypeError):
        catalog.get_soil_type("north", "sandy")
