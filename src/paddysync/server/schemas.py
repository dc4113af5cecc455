"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from pydantic import BaseModel

from paddysync.locations.resolver import LocationInfo
from paddysync.server.submissions import SubmitResult
from paddysync.service import ServiceStats
from paddysync.sync.engine import SyncSummary

# === Health schema ===


class HealthResponse(BaseModel):
    """Health check response.

    ``status`` is ``healthy`` when every store answers, ``degraded`` when
    object storage or the document store is not configured, and
    ``unhealthy`` when a database does not answer.
    """

    status: str
    database: bool
    geometry_database: bool
    object_storage: bool
    document_store: bool


# === Location schema ===


class LocationResponse(BaseModel):
    """Resolved administrative location."""

    location_code: str
    province_name: str
    district_name: str
    commune_name: str


# === Sync schemas ===


class SyncResponse(BaseModel):
    """Tally of an on-demand batch."""

    succeeded: int
    failed: int
    total: int


class StatsResponse(BaseModel):
    """Queue activity and record counts by status."""

    queue_size: int
    active_count: int
    syncing: int
    records: dict[str, int]


# === Submission schema ===


class SubmissionResponse(BaseModel):
    """Accepted submission."""

    job_id: str
    location_code: str
    field_id: str


# === Converters ===


def location_to_response(location: LocationInfo) -> LocationResponse:
    return LocationResponse(
        location_code=location.location_code,
        province_name=location.province_name,
        district_name=location.district_name,
        commune_name=location.commune_name,
    )


def summary_to_response(summary: SyncSummary) -> SyncResponse:
    return SyncResponse(**summary.to_dict())


def stats_to_response(stats: ServiceStats) -> StatsResponse:
    return StatsResponse(
        queue_size=stats.queue_size,
        active_count=stats.active_count,
        syncing=stats.syncing,
        records=dict(stats.records),
    )


def submit_to_response(result: SubmitResult) -> SubmissionResponse:
    return SubmissionResponse(
        job_id=result.job_id,
        location_code=result.location_code,
        field_id=result.field_id,
    )
