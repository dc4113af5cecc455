"""Shared fixtures: a small boundary map, a survey database and record factories."""

from __future__ import annotations

from collections.abc import Callable, Generator
from datetime import date
from pathlib import Path
from typing import Any

import pytest
from shapely.geometry import box

from paddysync.core.types import AreaLevel
from paddysync.server.database import Database
from paddysync.server.models import SurveyRecord, Surveyor
from paddysync.server.spatial import SpatialStore

# Boundaries are plain boxes (lon/lat). Codes:
#   Phnom Penh -> PPH, Chamkar Mon -> CMN,
#   Boeng Keng Kang Ti Muoy -> BK1, Tuol Svay Prey Ti Muoy -> TS1
PHNOM_PENH = box(104.80, 11.40, 105.10, 11.70)
CHAMKAR_MON = box(104.90, 11.50, 104.96, 11.58)
BOENG_KENG_KANG_1 = box(104.91, 11.55, 104.93, 11.57)
TUOL_SVAY_PREY_1 = box(104.91, 11.51, 104.93, 11.54)


def load_phnom_penh(store: SpatialStore) -> dict[str, int]:
    """Load one province, one district and two communes; return their IDs by name."""
    province = store.add_area(AreaLevel.PROVINCE, "Phnom Penh", PHNOM_PENH)
    district = store.add_area(
        AreaLevel.DISTRICT, "Chamkar Mon", CHAMKAR_MON, parent_id=province
    )
    bkk1 = store.add_area(
        AreaLevel.COMMUNE, "Boeng Keng Kang Ti Muoy", BOENG_KENG_KANG_1, parent_id=district
    )
    tsp1 = store.add_area(
        AreaLevel.COMMUNE, "Tuol Svay Prey Ti Muoy", TUOL_SVAY_PREY_1, parent_id=district
    )
    return {
        "Phnom Penh": province,
        "Chamkar Mon": district,
        "Boeng Keng Kang Ti Muoy": bkk1,
        "Tuol Svay Prey Ti Muoy": tsp1,
    }


@pytest.fixture
def spatial_store(tmp_path: Path) -> Generator[SpatialStore, None, None]:
    """Spatial store loaded with the Phnom Penh boxes."""
    store = SpatialStore(f"sqlite:///{tmp_path / 'geometry.db'}")
    load_phnom_penh(store)
    yield store
    store.close()


@pytest.fixture
def db(tmp_path: Path) -> Generator[Database, None, None]:
    """Create a test database."""
    database = Database(f"sqlite:///{tmp_path / 'records.db'}")
    yield database
    database.close()


@pytest.fixture
def surveyor(db: Database) -> Surveyor:
    return db.get_or_create_surveyor(
        "telegram", "1001", "PPH-CMN-BK1", username="sokha", first_name="Sok", last_name="Kha"
    )


@pytest.fixture
def make_record(db: Database, surveyor: Surveyor) -> Callable[..., SurveyRecord]:
    """Factory creating a pending record for ``surveyor`` with sensible answers."""

    def factory(**overrides: Any) -> SurveyRecord:
        field_id = overrides.pop("field_id", "PPH-CMN-BK1-S01-F001")
        db.upsert_field(
            field_id,
            surveyor.id,
            "PPH-CMN-BK1",
            "Phnom Penh",
            "Chamkar Mon",
            "Boeng Keng Kang Ti Muoy",
        )
        values: dict[str, Any] = {
            "field_id": field_id,
            "surveyor_id": surveyor.id,
            "location_code": "PPH-CMN-BK1",
            "province_name": "Phnom Penh",
            "date_of_visit": date(2024, 3, 15),
            "gps_latitude": 11.556,
            "gps_longitude": 104.92,
            "rainfall": "Yes",
            "rainfall_intensity": "Light",
            "soil_roughness": "Smooth",
            "growth_stage": "Tillering",
            "water_status": "Flooded",
            "overall_health": "Good",
            "visible_problems": "None",
            "fertilizer": "Yes",
            "fertilizer_type": "Urea",
            "herbicide": "No",
            "pesticide": "No",
            "stress_events": "None",
            "notes": "Healthy stand",
            "photo_urls": [],
        }
        values.update(overrides)
        return db.create_record(**values)

    return factory
