"""Location resolution API route."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from paddysync.core.errors import PaddySyncError
from paddysync.server.api.deps import get_service, raise_http_error
from paddysync.server.schemas import LocationResponse, location_to_response
from paddysync.service import Service

router = APIRouter(prefix="/api/locations", tags=["locations"])


@router.get("/resolve", response_model=LocationResponse)
async def resolve_location(
    lat: float = Query(..., description="Latitude in decimal degrees"),
    lon: float = Query(..., description="Longitude in decimal degrees"),
    service: Service = Depends(get_service),
) -> LocationResponse:
    """Resolve a coordinate to its location code."""
    try:
        location = await service.resolve(lat, lon)
    except PaddySyncError as e:
        raise_http_error(e)
    return location_to_response(location)
