"""Tests for the location resolver."""

from __future__ import annotations

import asyncio
import math
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from shapely.geometry import box

from paddysync.core.errors import (
    InvalidCoordinatesError,
    LocationNotFoundError,
    StoreUnavailableError,
)
from paddysync.core.types import AreaLevel
from paddysync.locations.resolver import (
    LocationResolver,
    cache_key,
    validate_coordinates,
)
from paddysync.server.spatial import AreaRow, ContainingAreas, SpatialStore

IN_BOENG_KENG_KANG = (11.556, 104.92)
IN_TUOL_SVAY_PREY = (11.53, 104.92)
IN_PROVINCE_ONLY = (11.45, 104.85)


def make_areas(commune_code: str | None = None) -> ContainingAreas:
    return ContainingAreas(
        province=AreaRow(1, "PPH", "Phnom Penh"),
        district=AreaRow(2, "CMN", "Chamkar Mon"),
        commune=AreaRow(3, commune_code, "Boeng Keng Kang Ti Muoy"),
    )


class TestValidateCoordinates:
    """Tests for validate_coordinates."""

    def test_valid(self) -> None:
        assert validate_coordinates(11.556, 104.92) == (11.556, 104.92)
        assert validate_coordinates(-90, 180) == (-90.0, 180.0)

    @pytest.mark.parametrize(
        ("latitude", "longitude"),
        [
            (math.nan, 104.92),
            (11.5, math.inf),
            (90.5, 104.92),
            (11.5, -180.1),
            ("11.5", 104.92),
            (None, 104.92),
            (True, 104.92),
        ],
    )
    def test_invalid(self, latitude: object, longitude: object) -> None:
        with pytest.raises(InvalidCoordinatesError):
            validate_coordinates(latitude, longitude)


class TestCacheKey:
    """Tests for cache_key."""

    def test_rounds_to_six_decimals(self) -> None:
        assert cache_key(11.5560004, 104.9200001) == cache_key(11.556, 104.92)

    def test_distinct_beyond_precision(self) -> None:
        assert cache_key(11.556001, 104.92) != cache_key(11.556, 104.92)


class TestResolveWithSpatialStore:
    """Tests for LocationResolver against a real spatial store."""

    @pytest.fixture
    def resolver(self, spatial_store: SpatialStore) -> LocationResolver:
        return LocationResolver(spatial_store)

    @pytest.mark.asyncio
    async def test_resolves_location_code(self, resolver: LocationResolver) -> None:
        info = await resolver.resolve(*IN_BOENG_KENG_KANG)

        assert info.location_code == "PPH-CMN-BK1"
        assert info.province_name == "Phnom Penh"
        assert info.district_name == "Chamkar Mon"
        assert info.commune_name == "Boeng Keng Kang Ti Muoy"

    @pytest.mark.asyncio
    async def test_codes_are_written_back(
        self, resolver: LocationResolver, spatial_store: SpatialStore
    ) -> None:
        await resolver.resolve(*IN_BOENG_KENG_KANG)

        assert spatial_store.existing_codes(AreaLevel.PROVINCE) == {"PPH"}
        assert spatial_store.existing_codes(AreaLevel.DISTRICT) == {"CMN"}
        assert spatial_store.existing_codes(AreaLevel.COMMUNE) == {"BK1"}

    @pytest.mark.asyncio
    async def test_sibling_commune_reuses_parent_codes(self, resolver: LocationResolver) -> None:
        first = await resolver.resolve(*IN_BOENG_KENG_KANG)
        second = await resolver.resolve(*IN_TUOL_SVAY_PREY)

        assert first.location_code == "PPH-CMN-BK1"
        assert second.location_code == "PPH-CMN-TS1"

    @pytest.mark.asyncio
    async def test_nearby_coordinate_hits_cache(
        self, resolver: LocationResolver, spatial_store: SpatialStore
    ) -> None:
        """Coordinates equal to 6 decimals should resolve from the cache."""
        with patch.object(
            spatial_store, "containing_areas", wraps=spatial_store.containing_areas
        ) as lookup:
            first = await resolver.resolve(11.556, 104.92)
            second = await resolver.resolve(11.5560004, 104.92)

        assert first == second
        assert lookup.call_count == 1

    @pytest.mark.asyncio
    async def test_code_is_stable_after_cache_eviction(
        self, spatial_store: SpatialStore
    ) -> None:
        resolver = LocationResolver(spatial_store, cache_size=1)
        first = await resolver.resolve(*IN_BOENG_KENG_KANG)
        await resolver.resolve(*IN_TUOL_SVAY_PREY)
        again = await resolver.resolve(*IN_BOENG_KENG_KANG)

        assert len(resolver.cache) == 1
        assert again.location_code == first.location_code

    @pytest.mark.asyncio
    async def test_outside_every_commune(self, resolver: LocationResolver) -> None:
        with pytest.raises(LocationNotFoundError):
            await resolver.resolve(*IN_PROVINCE_ONLY)
        assert len(resolver.cache) == 0

    @pytest.mark.asyncio
    async def test_invalid_coordinates_never_query_store(
        self, resolver: LocationResolver, spatial_store: SpatialStore
    ) -> None:
        with patch.object(spatial_store, "containing_areas") as lookup:
            with pytest.raises(InvalidCoordinatesError):
                await resolver.resolve(math.nan, 104.92)
        lookup.assert_not_called()

    @pytest.mark.asyncio
    async def test_existing_code_is_kept(self, tmp_path: Path) -> None:
        store = SpatialStore(f"sqlite:///{tmp_path / 'coded.db'}")
        try:
            province = store.add_area(AreaLevel.PROVINCE, "Phnom Penh", code="PNP")
            district = store.add_area(AreaLevel.DISTRICT, "Chamkar Mon", parent_id=province)
            store.add_area(
                AreaLevel.COMMUNE,
                "Boeng Keng Kang Ti Muoy",
                box(104.91, 11.55, 104.93, 11.57),
                parent_id=district,
            )

            info = await LocationResolver(store).resolve(*IN_BOENG_KENG_KANG)

            assert info.location_code == "PNP-CMN-BK1"
        finally:
            store.close()

    @pytest.mark.asyncio
    async def test_taken_code_gets_fallback(
        self, resolver: LocationResolver, spatial_store: SpatialStore
    ) -> None:
        """A commune elsewhere already holding TS1 pushes ours to TS2."""
        district = spatial_store.find_area_id(AreaLevel.DISTRICT, "Chamkar Mon")
        spatial_store.add_area(AreaLevel.COMMUNE, "Elsewhere", parent_id=district, code="TS1")

        info = await resolver.resolve(*IN_TUOL_SVAY_PREY)

        assert info.location_code == "PPH-CMN-TS2"

    @pytest.mark.asyncio
    async def test_concurrent_resolves_agree(self, resolver: LocationResolver) -> None:
        results = await asyncio.gather(
            resolver.resolve(11.556, 104.92),
            resolver.resolve(11.560, 104.915),
            resolver.resolve(11.565, 104.925),
        )
        assert {info.location_code for info in results} == {"PPH-CMN-BK1"}


class TestCodeAssignment:
    """Tests for write-once code assignment with a scripted store."""

    @pytest.fixture
    def store(self) -> MagicMock:
        store = MagicMock(spec=SpatialStore)
        store.containing_areas.return_value = make_areas(commune_code=None)
        store.existing_codes.return_value = set()
        return store

    @pytest.mark.asyncio
    async def test_assigns_generated_code(self, store: MagicMock) -> None:
        store.assign_code.return_value = "BK1"

        info = await LocationResolver(store).resolve(*IN_BOENG_KENG_KANG)

        assert info.location_code == "PPH-CMN-BK1"
        store.assign_code.assert_called_once_with(AreaLevel.COMMUNE, 3, "BK1")

    @pytest.mark.asyncio
    async def test_uses_code_written_by_another_writer(self, store: MagicMock) -> None:
        """If another writer set the code first, its code wins."""
        store.assign_code.return_value = "BKX"

        info = await LocationResolver(store).resolve(*IN_BOENG_KENG_KANG)

        assert info.location_code == "PPH-CMN-BKX"

    @pytest.mark.asyncio
    async def test_retries_when_candidate_taken(self, store: MagicMock) -> None:
        store.existing_codes.side_effect = [set(), {"BK1"}]
        store.assign_code.side_effect = [None, "BK2"]

        info = await LocationResolver(store).resolve(*IN_BOENG_KENG_KANG)

        assert info.location_code == "PPH-CMN-BK2"
        assert store.assign_code.call_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, store: MagicMock) -> None:
        store.assign_code.return_value = None
        resolver = LocationResolver(store, max_assign_attempts=2)

        with pytest.raises(StoreUnavailableError):
            await resolver.resolve(*IN_BOENG_KENG_KANG)
        assert store.assign_code.call_count == 2
        assert len(resolver.cache) == 0

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, store: MagicMock) -> None:
        store.containing_areas.side_effect = StoreUnavailableError("Spatial store down")

        with pytest.raises(StoreUnavailableError):
            await LocationResolver(store).resolve(*IN_BOENG_KENG_KANG)
