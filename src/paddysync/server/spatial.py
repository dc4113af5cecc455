"""Spatial store for administrative area boundaries.

This module provides:
- Containment lookup: which commune (and its district and province) contains a point
- Existing code listing per level
- Write-once code assignment (compare-and-set on a NULL code)
- Boundary import from GeoJSON features

Boundaries are kept as WKT with a bounding box. The bounding box filters
candidates in SQL and shapely does the exact point-in-polygon test.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from shapely import wkt
from shapely.geometry import Point, shape
from sqlalchemy import select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from paddysync.core.types import AreaLevel
from paddysync.server.database import create_db_engine, store_errors
from paddysync.server.models import Commune, District, GeometryBase, Province

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

LEVEL_MODELS: dict[AreaLevel, type[Province] | type[District] | type[Commune]] = {
    AreaLevel.PROVINCE: Province,
    AreaLevel.DISTRICT: District,
    AreaLevel.COMMUNE: Commune,
}


@dataclass(frozen=True)
class AreaRow:
    """One administrative area as returned by a containment query."""

    id: int
    code: str | None
    name: str


@dataclass(frozen=True)
class ContainingAreas:
    """The commune containing a point together with its parents."""

    province: AreaRow
    district: AreaRow
    commune: AreaRow

    def by_level(self) -> list[tuple[AreaLevel, AreaRow]]:
        """Areas ordered from province down to commune."""
        return [
            (AreaLevel.PROVINCE, self.province),
            (AreaLevel.DISTRICT, self.district),
            (AreaLevel.COMMUNE, self.commune),
        ]


class SpatialStore:
    """SQLAlchemy-backed store of administrative area boundaries."""

    def __init__(self, url: str) -> None:
        """Initialize the spatial store.

        Args:
            url: SQLAlchemy database URL.
        """
        self._url = url
        with store_errors("Spatial", "startup"):
            self._engine: Engine = create_db_engine(url)
            GeometryBase.metadata.create_all(self._engine)

    @property
    def url(self) -> str:
        return self._url

    def close(self) -> None:
        """Close the database connection."""
        self._engine.dispose()

    def _session(self) -> Session:
        """Create a new database session."""
        return Session(self._engine)

    def ping(self) -> None:
        """Run a trivial query, raising StoreUnavailableError on failure."""
        with store_errors("Spatial", "ping"), self._engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    # === Lookups ===

    def containing_areas(self, latitude: float, longitude: float) -> ContainingAreas | None:
        """Find the commune whose boundary contains a point.

        Args:
            latitude: Point latitude (WGS84).
            longitude: Point longitude (WGS84).

        Returns:
            The commune with its district and province, or None if no
            boundary contains the point.

        Raises:
            StoreUnavailableError: If the store cannot be queried.
        """
        point = Point(longitude, latitude)
        stmt = (
            select(Commune, District, Province)
            .join(District, Commune.district_id == District.id)
            .join(Province, District.province_id == Province.id)
            .where(
                Commune.boundary_wkt.is_not(None),
                Commune.min_lon <= longitude,
                Commune.max_lon >= longitude,
                Commune.min_lat <= latitude,
                Commune.max_lat >= latitude,
            )
            .order_by(Commune.id)
        )
        with store_errors("Spatial", "containment query"), self._session() as session:
            for commune, district, province in session.execute(stmt):
                if not wkt.loads(commune.boundary_wkt).contains(point):
                    continue
                return ContainingAreas(
                    province=AreaRow(province.id, province.local_code, province.name_en),
                    district=AreaRow(district.id, district.local_code, district.name_en),
                    commune=AreaRow(commune.id, commune.local_code, commune.name_en),
                )
        return None

    def existing_codes(self, level: AreaLevel) -> set[str]:
        """Return every code already assigned at a level."""
        model = LEVEL_MODELS[level]
        stmt = select(model.local_code).where(model.local_code.is_not(None))
        with store_errors("Spatial", "code listing"), self._session() as session:
            return set(session.execute(stmt).scalars())

    def get_code(self, level: AreaLevel, area_id: int) -> str | None:
        model = LEVEL_MODELS[level]
        with store_errors("Spatial", "code lookup"), self._session() as session:
            area = session.get(model, area_id)
            return area.local_code if area else None

    # === Writes ===

    def assign_code(self, level: AreaLevel, area_id: int, code: str) -> str | None:
        """Assign a code to an area unless it already has one.

        The update only applies while the area's code is still NULL, so a
        code is never overwritten once set.

        Args:
            level: Hierarchy level of the area.
            area_id: Area ID.
            code: Candidate code.

        Returns:
            The code now stored on the area (ours, or one written first by
            another writer), or None if ``code`` is already used by a
            different area at this level.
        """
        model = LEVEL_MODELS[level]
        stmt = (
            update(model)
            .where(model.id == area_id, model.local_code.is_(None))
            .values(local_code=code)
        )
        with store_errors("Spatial", "code assignment"), self._session() as session:
            try:
                result = session.execute(stmt)
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.info("Code %s already taken at %s level", code, level.value)
                return None
        if result.rowcount == 1:
            return code
        return self.get_code(level, area_id)

    def add_area(
        self,
        level: AreaLevel,
        name: str,
        boundary: Any | None = None,
        parent_id: int | None = None,
        code: str | None = None,
    ) -> int:
        """Insert one area.

        Args:
            level: Hierarchy level.
            name: English name.
            boundary: Shapely geometry or GeoJSON-like mapping, optional.
            parent_id: Province ID for districts, district ID for communes.
            code: Pre-assigned code, if any.

        Returns:
            The new area ID.
        """
        model = LEVEL_MODELS[level]
        values: dict[str, Any] = {"name_en": name, "local_code": code}
        if boundary is not None:
            geometry = boundary if hasattr(boundary, "wkt") else shape(boundary)
            min_lon, min_lat, max_lon, max_lat = geometry.bounds
            values.update(
                boundary_wkt=geometry.wkt,
                min_lon=min_lon,
                min_lat=min_lat,
                max_lon=max_lon,
                max_lat=max_lat,
            )
        if level is AreaLevel.DISTRICT:
            values["province_id"] = parent_id
        elif level is AreaLevel.COMMUNE:
            values["district_id"] = parent_id

        with store_errors("Spatial", "area insert"), self._session() as session:
            area = model(**values)
            session.add(area)
            session.commit()
            return area.id

    def find_area_id(self, level: AreaLevel, name: str) -> int | None:
        model = LEVEL_MODELS[level]
        stmt = select(model.id).where(model.name_en == name).order_by(model.id).limit(1)
        with store_errors("Spatial", "area lookup"), self._session() as session:
            return session.execute(stmt).scalar_one_or_none()

    def load_boundaries(self, level: AreaLevel, features: Iterable[dict[str, Any]]) -> int:
        """Import areas from GeoJSON features.

        Each feature needs a ``name_en`` (or ``name``) property. Districts
        reference their province with a ``province`` property and communes
        their district with a ``district`` property, both by English name.
        An optional ``code`` property is kept as the area's code.

        Returns:
            Number of areas imported.

        Raises:
            ValueError: If a feature has no name or its parent is unknown.
        """
        parent_level = {
            AreaLevel.DISTRICT: AreaLevel.PROVINCE,
            AreaLevel.COMMUNE: AreaLevel.DISTRICT,
        }.get(level)

        count = 0
        for feature in features:
            props = feature.get("properties") or {}
            name = props.get("name_en") or props.get("name")
            if not name:
                raise ValueError("GeoJSON feature without a name_en/name property")

            parent_id = None
            if parent_level is not None:
                parent_name = props.get(parent_level.value)
                parent_id = self.find_area_id(parent_level, parent_name) if parent_name else None
                if parent_id is None:
                    raise ValueError(
                        f"Unknown {parent_level.value} {parent_name!r} for {level.value} {name!r}"
                    )

            self.add_area(
                level,
                name,
                boundary=feature.get("geometry"),
                parent_id=parent_id,
                code=props.get("code"),
            )
            count += 1

        logger.info("Imported %d %s boundaries", count, level.value)
        return count
