from __future__ import annotations

from fastapi import HTTPException, status

from services.pump import InvalidDuration, PumpControlError
from services.soil_catalog import Region, UnknownRegionError, UnknownSoilTypeError, soil_catalog
from services.tank import OutOfRange
from services.watering import InvalidInput


def get_region_or_404(region: str) -> Region:
    try:
        return soil_catalog.get_region(region)
    except UnknownRegionError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


def to_http_error(exc: Exception) -> HTTPException:
    """Translate an engine exception into the matching HTTP error."""
    if isinstance(exc, (UnknownRegionError, UnknownSoilTypeError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, PumpControlError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.reason)
    if isinstance(exc, (InvalidInput, InvalidDuration, OutOfRange)):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


ENGINE_ERRORS = (
    UnknownRegionError,
    UnknownSoilTypeError,
    PumpControlError,
    InvalidInput,
    InvalidDuration,
    OutOfRange,
)
