"""Survey submission handling.

A submission goes through two stages:

1. ``prepare``: parse coordinates, resolve the location, find or create
   the surveyor and derive the field ID. This is fast and its failures
   (bad coordinates, point outside every commune) go back to the submitter.
2. ``save``: upload photos to object storage, upsert the field, fetch a
   weather snapshot and store the record as ``pending``. This is slow and
   normally runs on the submission queue.
"""

from __future__ import annotations

import asyncio
import logging
import re
import secrets
import time
from dataclasses import dataclass
from datetime import date
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from pydantic import BaseModel, field_validator

from paddysync.core.errors import InvalidCoordinatesError

if TYPE_CHECKING:
    from paddysync.locations.resolver import LocationInfo, LocationResolver
    from paddysync.server.database import Database
    from paddysync.server.models import Surveyor
    from paddysync.server.storage import ObjectStorage
    from paddysync.server.weather import WeatherClient
    from paddysync.sync.queue import SubmissionQueue

logger = logging.getLogger(__name__)

PHOTO_PREFIX = "survey-paddy"
DEFAULT_PHOTO_EXTENSION = ".jpg"


class SurveySubmission(BaseModel):
    """Validated survey form data."""

    date_of_visit: date
    gps_latitude: str
    gps_longitude: str
    field_number: str
    rainfall: str
    rainfall_intensity: str | None = None
    soil_roughness: str
    growth_stage: str
    water_status: str
    overall_health: str
    visible_problems: str
    fertilizer: str
    fertilizer_type: str | None = None
    herbicide: str
    pesticide: str
    stress_events: str
    notes: str | None = None

    @field_validator("rainfall_intensity", "fertilizer_type", "notes", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class SurveyorIdentity(BaseModel):
    """Verified identity handed over by the auth layer."""

    provider: str = "telegram"
    user_id: str
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None


@dataclass(frozen=True)
class Photo:
    """An uploaded photo."""

    filename: str
    content: bytes
    content_type: str = "image/jpeg"


@dataclass(frozen=True)
class SubmissionContext:
    """Everything ``save`` needs that ``prepare`` looked up."""

    surveyor: Surveyor
    location: LocationInfo
    field_id: str
    province_slug: str
    date_folder: str
    latitude: float
    longitude: float


@dataclass(frozen=True)
class SaveResult:
    record_id: str
    photos_uploaded: int


@dataclass(frozen=True)
class SubmitResult:
    job_id: str
    location_code: str
    field_id: str


def parse_coordinates(latitude: str, longitude: str) -> tuple[float, float]:
    """Parse form coordinate strings.

    Raises:
        InvalidCoordinatesError: If either value is not a number.
    """
    try:
        return float(latitude), float(longitude)
    except (TypeError, ValueError) as e:
        raise InvalidCoordinatesError(
            "Invalid GPS coordinates",
            {"latitude": latitude, "longitude": longitude},
        ) from e


def format_field_number(field_number: str) -> str:
    """``"12"``, ``"F12"`` or ``"field 12"`` -> ``"F012"``."""
    digits = re.sub(r"\D", "", field_number)
    return f"F{int(digits) if digits else 0:03d}"


def province_slug(province_name: str | None) -> str:
    """Lowercase province name safe for object keys."""
    name = (province_name or "unknown").lower()
    return re.sub(r"\s+", "-", name).replace("/", "-")


def photo_key(context: SubmissionContext, filename: str) -> str:
    """Unique object key for a photo of a submission."""
    original = PurePosixPath(PurePosixPath(filename.replace("\\", "/")).name)
    suffix = original.suffix or DEFAULT_PHOTO_EXTENSION
    stem = original.stem
    unique = f"{time.time_ns() // 1_000_000}-{secrets.randbelow(10**9)}"
    return (
        f"{PHOTO_PREFIX}/{context.province_slug}/{context.field_id}/"
        f"{context.date_folder}/{stem or 'photo'}-{unique}{suffix}"
    )


class SubmissionService:
    """Prepare and save survey submissions."""

    def __init__(
        self,
        db: Database,
        resolver: LocationResolver,
        storage: ObjectStorage | None = None,
        queue: SubmissionQueue | None = None,
        weather: WeatherClient | None = None,
    ) -> None:
        self._db = db
        self._resolver = resolver
        self._storage = storage
        self._queue = queue
        self._weather = weather

    async def prepare(
        self,
        identity: SurveyorIdentity,
        submission: SurveySubmission,
    ) -> SubmissionContext:
        """Resolve the location and surveyor of a submission.

        Raises:
            InvalidCoordinatesError: If the coordinates are unusable.
            LocationNotFoundError: If no commune contains the coordinates.
            StoreUnavailableError: If a store fails.
        """
        latitude, longitude = parse_coordinates(submission.gps_latitude, submission.gps_longitude)
        location = await self._resolver.resolve(latitude, longitude)

        surveyor = await asyncio.to_thread(
            self._db.get_or_create_surveyor,
            identity.provider,
            identity.user_id,
            location.location_code,
            identity.username,
            identity.first_name,
            identity.last_name,
        )

        # Field IDs use the surveyor's home location, not this visit's
        field_id = "-".join(
            (
                surveyor.location_code,
                surveyor.surveyor_number,
                format_field_number(submission.field_number),
            )
        )
        return SubmissionContext(
            surveyor=surveyor,
            location=location,
            field_id=field_id,
            province_slug=province_slug(location.province_name),
            date_folder=submission.date_of_visit.strftime("%Y%m%d"),
            latitude=latitude,
            longitude=longitude,
        )

    async def _upload_photos(self, context: SubmissionContext, photos: list[Photo]) -> list[str]:
        if self._storage is None or not photos:
            return []
        storage = self._storage

        results = await asyncio.gather(
            *(
                asyncio.to_thread(
                    storage.put,
                    photo_key(context, photo.filename),
                    photo.content,
                    photo.content_type,
                )
                for photo in photos
            ),
            return_exceptions=True,
        )
        urls = [result for result in results if isinstance(result, str)]
        failures = [result for result in results if isinstance(result, BaseException)]
        for failure in failures:
            logger.error("Photo upload failed for %s: %s", context.field_id, failure)
        logger.info("Uploaded %d/%d photos for %s", len(urls), len(photos), context.field_id)
        return urls

    async def save(
        self,
        context: SubmissionContext,
        submission: SurveySubmission,
        photos: list[Photo] | None = None,
    ) -> SaveResult:
        """Upload photos and persist the record as pending.

        Photo upload failures are logged and the record is saved with the
        photos that did upload.
        """
        photo_urls = await self._upload_photos(context, photos or [])

        await asyncio.to_thread(
            self._db.upsert_field,
            context.field_id,
            context.surveyor.id,
            context.location.location_code,
            context.location.province_name,
            context.location.district_name,
            context.location.commune_name,
        )

        snapshot = None
        if self._weather is not None:
            snapshot = await self._weather.current(context.latitude, context.longitude)

        record = await asyncio.to_thread(
            self._db.create_record,
            field_id=context.field_id,
            surveyor_id=context.surveyor.id,
            location_code=context.location.location_code,
            province_name=context.location.province_name,
            date_of_visit=submission.date_of_visit,
            gps_latitude=context.latitude,
            gps_longitude=context.longitude,
            rainfall=submission.rainfall,
            rainfall_intensity=submission.rainfall_intensity,
            soil_roughness=submission.soil_roughness,
            growth_stage=submission.growth_stage,
            water_status=submission.water_status,
            overall_health=submission.overall_health,
            visible_problems=submission.visible_problems,
            fertilizer=submission.fertilizer,
            fertilizer_type=submission.fertilizer_type,
            herbicide=submission.herbicide,
            pesticide=submission.pesticide,
            stress_events=submission.stress_events,
            notes=submission.notes,
            weather_temperature=snapshot.temperature if snapshot else None,
            weather_humidity=snapshot.humidity if snapshot else None,
            weather_precipitation=snapshot.precipitation if snapshot else None,
            photo_urls=photo_urls,
        )
        logger.info("Saved survey %s for %s as pending", record.id, context.field_id)
        return SaveResult(record_id=record.id, photos_uploaded=len(photo_urls))

    async def submit(
        self,
        identity: SurveyorIdentity,
        submission: SurveySubmission,
        photos: list[Photo] | None = None,
    ) -> SubmitResult:
        """Prepare a submission and hand the save over to the queue.

        Without a queue the save runs before returning.
        """
        context = await self.prepare(identity, submission)
        photo_list = list(photos or [])

        if self._queue is None:
            result = await self.save(context, submission, photo_list)
            job_id = result.record_id
        else:
            job_id = self._queue.enqueue(
                f"save {context.field_id}",
                lambda: self.save(context, submission, photo_list),
            )
        return SubmitResult(
            job_id=job_id,
            location_code=context.location.location_code,
            field_id=context.field_id,
        )
