"""SQLAlchemy models for paddysync.

Two declarative bases are defined because the data lives in two stores:
- GeometryBase: administrative areas with their boundaries (spatial store)
- Base: surveyors, fields and survey records (relational store)
"""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from paddysync.core.types import SyncStatus


def _now() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


# === Spatial store ===


class GeometryBase(DeclarativeBase):
    """Base class for administrative area models."""


class AreaMixin:
    """Columns shared by every administrative level.

    The boundary is stored as WKT together with its bounding box so the
    containment query can prefilter candidates in SQL before the exact
    point-in-polygon test.
    """

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name_en: Mapped[str] = mapped_column(String(255), nullable=False)
    local_code: Mapped[str | None] = mapped_column(String(8), unique=True, nullable=True)
    boundary_wkt: Mapped[str | None] = mapped_column(Text, nullable=True)
    min_lon: Mapped[float | None] = mapped_column(Float, nullable=True)
    min_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_lon: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_lat: Mapped[float | None] = mapped_column(Float, nullable=True)


class Province(AreaMixin, GeometryBase):
    """Top level administrative area."""

    __tablename__ = "provinces"

    districts: Mapped[list[District]] = relationship("District", back_populates="province")


class District(AreaMixin, GeometryBase):
    """Second level administrative area."""

    __tablename__ = "districts"

    province_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("provinces.id"), nullable=False
    )

    province: Mapped[Province] = relationship("Province", back_populates="districts")
    communes: Mapped[list[Commune]] = relationship("Commune", back_populates="district")


class Commune(AreaMixin, GeometryBase):
    """Third level administrative area, the unit of containment lookups."""

    __tablename__ = "communes"

    district_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("districts.id"), nullable=False
    )

    district: Mapped[District] = relationship("District", back_populates="communes")

    __table_args__ = (
        Index("idx_communes_bbox", "min_lon", "max_lon", "min_lat", "max_lat"),
    )


# === Relational store ===


class Base(DeclarativeBase):
    """Base class for survey models."""


class Surveyor(Base):
    """A surveyor identity from an external auth provider."""

    __tablename__ = "surveyors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    provider_user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    first_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location_code: Mapped[str] = mapped_column(String(32), nullable=False)
    surveyor_number: Mapped[str] = mapped_column(String(8), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, nullable=False
    )

    fields: Mapped[list[Field]] = relationship("Field", back_populates="surveyor")

    __table_args__ = (
        UniqueConstraint("provider", "provider_user_id", name="uq_surveyors_identity"),
        UniqueConstraint("location_code", "surveyor_number", name="uq_surveyors_number"),
    )

    @property
    def display_name(self) -> str:
        """First and last name, or "N/A" when neither is known."""
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or "N/A"


class Field(Base):
    """A surveyed plot, keyed by ``locationCode-surveyorNumber-fieldNumber``."""

    __tablename__ = "fields"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    surveyor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("surveyors.id"), nullable=False
    )
    location_code: Mapped[str] = mapped_column(String(32), nullable=False)
    province_name: Mapped[str] = mapped_column(String(255), nullable=False)
    district_name: Mapped[str] = mapped_column(String(255), nullable=False)
    commune_name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, onupdate=_now, nullable=False
    )

    surveyor: Mapped[Surveyor] = relationship("Surveyor", back_populates="fields")


class SurveyRecord(Base):
    """One observation of a field, carrying its sync status."""

    __tablename__ = "survey_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    field_id: Mapped[str] = mapped_column(String(64), ForeignKey("fields.id"), nullable=False)
    surveyor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("surveyors.id"), nullable=False
    )
    location_code: Mapped[str] = mapped_column(String(32), nullable=False)
    province_name: Mapped[str] = mapped_column(String(255), nullable=False)
    date_of_visit: Mapped[date] = mapped_column(Date, nullable=False)
    gps_latitude: Mapped[float] = mapped_column(Float, nullable=False)
    gps_longitude: Mapped[float] = mapped_column(Float, nullable=False)

    # Observations
    rainfall: Mapped[str] = mapped_column(String(64), nullable=False)
    rainfall_intensity: Mapped[str | None] = mapped_column(String(64), nullable=True)
    soil_roughness: Mapped[str] = mapped_column(String(64), nullable=False)
    growth_stage: Mapped[str] = mapped_column(String(64), nullable=False)
    water_status: Mapped[str] = mapped_column(String(64), nullable=False)
    overall_health: Mapped[str] = mapped_column(String(64), nullable=False)
    visible_problems: Mapped[str] = mapped_column(Text, nullable=False)
    fertilizer: Mapped[str] = mapped_column(String(64), nullable=False)
    fertilizer_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    herbicide: Mapped[str] = mapped_column(String(64), nullable=False)
    pesticide: Mapped[str] = mapped_column(String(64), nullable=False)
    stress_events: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Weather snapshot
    weather_temperature: Mapped[float | None] = mapped_column(Float, nullable=True)
    weather_humidity: Mapped[float | None] = mapped_column(Float, nullable=True)
    weather_precipitation: Mapped[float | None] = mapped_column(Float, nullable=True)

    photo_urls: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    photo_folder_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Sync state
    sync_status: Mapped[str] = mapped_column(
        String(16), default=SyncStatus.PENDING.value, nullable=False
    )
    sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sync_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, onupdate=_now, nullable=False
    )

    surveyor: Mapped[Surveyor] = relationship("Surveyor")

    __table_args__ = (Index("idx_survey_records_sync", "sync_status", "created_at"),)
