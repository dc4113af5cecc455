"""Coordinate to location code resolution.

A location code joins the province, district and commune codes of the
commune containing a coordinate, e.g. ``PPH-BKK-TS1``. Area codes are
generated lazily the first time an area is hit and written back to the
spatial store once; resolved coordinates are kept in an LRU cache.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from numbers import Real
from typing import TYPE_CHECKING

from paddysync.core.cache import LRUCache
from paddysync.core.errors import (
    InvalidCoordinatesError,
    LocationNotFoundError,
    StoreUnavailableError,
)
from paddysync.locations.codes import generate_code

if TYPE_CHECKING:
    from paddysync.core.types import AreaLevel
    from paddysync.server.spatial import AreaRow, SpatialStore

logger = logging.getLogger(__name__)

COORDINATE_PRECISION = 6  # decimal places, about 0.1 m


@dataclass(frozen=True)
class LocationInfo:
    """Resolved location of a coordinate."""

    location_code: str
    province_name: str
    district_name: str
    commune_name: str


def validate_coordinates(latitude: object, longitude: object) -> tuple[float, float]:
    """Check that a coordinate pair is finite and within WGS84 range.

    Raises:
        InvalidCoordinatesError: If either value is unusable.
    """
    for label, value in (("latitude", latitude), ("longitude", longitude)):
        if isinstance(value, bool) or not isinstance(value, Real):
            raise InvalidCoordinatesError(f"{label} must be a number", {label: value})
        if not math.isfinite(value):
            raise InvalidCoordinatesError(f"{label} must be finite", {label: value})
    lat = float(latitude)  # type: ignore[arg-type]
    lon = float(longitude)  # type: ignore[arg-type]
    if not -90.0 <= lat <= 90.0:
        raise InvalidCoordinatesError("latitude out of range", {"latitude": lat})
    if not -180.0 <= lon <= 180.0:
        raise InvalidCoordinatesError("longitude out of range", {"longitude": lon})
    return lat, lon


def cache_key(latitude: float, longitude: float) -> str:
    """Key shared by every coordinate that rounds to the same 6-decimal point."""
    return f"{round(latitude, COORDINATE_PRECISION)},{round(longitude, COORDINATE_PRECISION)}"


class LocationResolver:
    """Resolve coordinates to location codes through the spatial store."""

    def __init__(
        self,
        store: SpatialStore,
        cache_size: int = 500,
        max_assign_attempts: int = 5,
    ) -> None:
        """Initialize the resolver.

        Args:
            store: Spatial store used for containment queries and code writes.
            cache_size: Capacity of the coordinate cache.
            max_assign_attempts: Attempts to claim a free code when other
                writers keep taking the generated one.
        """
        self._store = store
        self._cache: LRUCache[str, LocationInfo] = LRUCache(cache_size)
        self._max_assign_attempts = max_assign_attempts

    @property
    def cache(self) -> LRUCache[str, LocationInfo]:
        return self._cache

    async def resolve(self, latitude: float, longitude: float) -> LocationInfo:
        """Resolve a coordinate to its location code.

        Args:
            latitude: Latitude in decimal degrees.
            longitude: Longitude in decimal degrees.

        Returns:
            LocationInfo with the composite code and area names.

        Raises:
            InvalidCoordinatesError: If the coordinate is not usable.
            LocationNotFoundError: If no commune contains the coordinate.
            StoreUnavailableError: If the spatial store fails.
        """
        lat, lon = validate_coordinates(latitude, longitude)
        key = cache_key(lat, lon)

        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Location cache hit for %s: %s", key, cached.location_code)
            return cached

        logger.debug("Location cache miss for %s, querying spatial store", key)
        areas = await asyncio.to_thread(self._store.containing_areas, lat, lon)
        if areas is None:
            logger.warning("No administrative area contains (%s, %s)", lat, lon)
            raise LocationNotFoundError(
                "No administrative area contains the coordinates",
                {"latitude": lat, "longitude": lon},
            )

        codes = []
        for level, area in areas.by_level():
            codes.append(area.code or await self._ensure_code(level, area))

        info = LocationInfo(
            location_code="-".join(codes),
            province_name=areas.province.name,
            district_name=areas.district.name,
            commune_name=areas.commune.name,
        )
        self._cache.set(key, info)
        logger.info("Resolved (%s, %s) to %s", lat, lon, info.location_code)
        return info

    async def _ensure_code(self, level: AreaLevel, area: AreaRow) -> str:
        """Generate and persist a code for an area that has none yet."""
        for attempt in range(1, self._max_assign_attempts + 1):
            existing = await asyncio.to_thread(self._store.existing_codes, level)
            candidate = generate_code(area.name, existing)
            stored = await asyncio.to_thread(self._store.assign_code, level, area.id, candidate)
            if stored is not None:
                if stored == candidate:
                    logger.info(
                        "Generated %s code %s for %s", level.value, stored, area.name
                    )
                return stored
            logger.info(
                "%s code %s for %s was taken concurrently (attempt %d/%d)",
                level.value,
                candidate,
                area.name,
                attempt,
                self._max_assign_attempts,
            )

        raise StoreUnavailableError(
            f"Could not assign a {level.value} code",
            {"area": area.name, "attempts": self._max_assign_attempts},
        )
