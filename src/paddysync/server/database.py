"""Relational store for surveyors, fields and survey records.

This module provides:
- Surveyor lookup and lazy creation with per-location numbering (S01, S02, ...)
- Idempotent field upsert
- Survey record creation and lookup
- Sync candidate selection and status transitions
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, func, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from paddysync.core.errors import StoreUnavailableError
from paddysync.core.types import SyncStatus
from paddysync.server.models import Base, Field, Surveyor, SurveyRecord

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

# Attempts to create a surveyor when another request grabs the same number
SURVEYOR_CREATE_ATTEMPTS = 3


def create_db_engine(url: str) -> Engine:
    """Create an engine for a database URL.

    SQLite databases get their parent directory created and run in WAL
    mode with foreign keys enabled.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True, echo=False)

    db_file = url.split("///", 1)[-1]
    if db_file and db_file != ":memory:":
        Path(db_file).parent.mkdir(parents=True, exist_ok=True)

    # check_same_thread=False because calls arrive from worker threads
    engine = create_engine(url, connect_args={"check_same_thread": False}, echo=False)
    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA journal_mode=WAL")
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")
    return engine


@contextmanager
def store_errors(store: str, operation: str) -> Iterator[None]:
    """Translate SQLAlchemy driver errors into StoreUnavailableError.

    Integrity errors pass through untouched, they are data conflicts the
    caller handles, not outages.
    """
    try:
        yield
    except IntegrityError:
        raise
    except SQLAlchemyError as e:
        logger.error("%s store %s failed: %s", store, operation, e)
        raise StoreUnavailableError(
            f"{store} store {operation} failed", {"error": str(e)}
        ) from e


def format_surveyor_number(index: int) -> str:
    return f"S{index:02d}"


class Database:
    """SQLAlchemy database for survey data."""

    def __init__(self, url: str) -> None:
        """Initialize the database.

        Args:
            url: SQLAlchemy database URL.
        """
        self._url = url
        with store_errors("Relational", "startup"):
            self._engine: Engine = create_db_engine(url)
            # Create tables if they don't exist
            Base.metadata.create_all(self._engine)

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
        with store_errors("Relational", "ping"), self._engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    # === Surveyor operations ===

    def get_surveyor(self, provider: str, provider_user_id: str) -> Surveyor | None:
        """Get a surveyor by auth provider identity.

        Args:
            provider: Auth provider name, e.g. "telegram".
            provider_user_id: User ID at the provider.

        Returns:
            Surveyor if found, None otherwise.
        """
        stmt = select(Surveyor).where(
            Surveyor.provider == provider,
            Surveyor.provider_user_id == provider_user_id,
        )
        with store_errors("Relational", "surveyor lookup"), self._session() as session:
            surveyor = session.execute(stmt).scalar_one_or_none()
            if surveyor:
                session.expunge(surveyor)
            return surveyor

    def get_or_create_surveyor(
        self,
        provider: str,
        provider_user_id: str,
        location_code: str,
        username: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> Surveyor:
        """Return the surveyor for an identity, creating it on first sight.

        New surveyors are numbered sequentially within their location code.
        A surveyor keeps the location code of their first submission.

        Raises:
            StoreUnavailableError: If the store fails or no number can be claimed.
        """
        for _ in range(SURVEYOR_CREATE_ATTEMPTS):
            existing = self.get_surveyor(provider, provider_user_id)
            if existing is not None:
                return existing

            with store_errors("Relational", "surveyor create"), self._session() as session:
                count = session.execute(
                    select(func.count())
                    .select_from(Surveyor)
                    .where(Surveyor.location_code == location_code)
                ).scalar_one()
                surveyor = Surveyor(
                    provider=provider,
                    provider_user_id=provider_user_id,
                    username=username,
                    first_name=first_name,
                    last_name=last_name,
                    location_code=location_code,
                    surveyor_number=format_surveyor_number(count + 1),
                )
                session.add(surveyor)
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    logger.info("Surveyor number conflict in %s, retrying", location_code)
                    continue
                session.refresh(surveyor)
                session.expunge(surveyor)
                logger.info(
                    "Created surveyor %s in %s for %s:%s",
                    surveyor.surveyor_number,
                    location_code,
                    provider,
                    provider_user_id,
                )
                return surveyor

        raise StoreUnavailableError(
            "Could not create surveyor",
            {"provider": provider, "location_code": location_code},
        )

    # === Field operations ===

    def upsert_field(
        self,
        field_id: str,
        surveyor_id: int,
        location_code: str,
        province_name: str,
        district_name: str,
        commune_name: str,
    ) -> Field:
        """Create a field or refresh its location names.

        Returns:
            The stored Field.
        """
        with store_errors("Relational", "field upsert"), self._session() as session:
            field = session.get(Field, field_id)
            if field is None:
                field = Field(id=field_id, surveyor_id=surveyor_id)
                session.add(field)
            field.location_code = location_code
            field.province_name = province_name
            field.district_name = district_name
            field.commune_name = commune_name
            session.commit()
            session.refresh(field)
            session.expunge(field)
            return field

    # === Survey record operations ===

    def create_record(self, **values: Any) -> SurveyRecord:
        """Insert a survey record with status pending.

        Args:
            **values: Column values for SurveyRecord.

        Returns:
            Created SurveyRecord.
        """
        values.setdefault("sync_status", SyncStatus.PENDING.value)
        with store_errors("Relational", "record create"), self._session() as session:
            record = SurveyRecord(**values)
            session.add(record)
            session.commit()
            session.refresh(record)
            session.expunge(record)
            return record

    def get_record(self, record_id: str) -> SurveyRecord | None:
        records = self.get_records([record_id])
        return records[0] if records else None

    def get_records(self, record_ids: Sequence[str]) -> list[SurveyRecord]:
        """Get records with their surveyor loaded, in the order of ``record_ids``.

        Unknown IDs are skipped.
        """
        if not record_ids:
            return []
        stmt = (
            select(SurveyRecord)
            .options(joinedload(SurveyRecord.surveyor))
            .where(SurveyRecord.id.in_(list(record_ids)))
        )
        with store_errors("Relational", "record lookup"), self._session() as session:
            found = {record.id: record for record in session.execute(stmt).scalars()}
            # Records of one surveyor share the same Surveyor instance
            session.expunge_all()
        return [found[record_id] for record_id in record_ids if record_id in found]

    def list_syncable_ids(self, limit: int, include_failed: bool = True) -> list[str]:
        """Select record IDs for the next sync batch.

        Pending records come first, oldest first. When ``include_failed`` is
        set, remaining slots go to failed records, least recently attempted
        first.

        Args:
            limit: Maximum number of IDs.
            include_failed: Whether failed records are eligible.

        Returns:
            List of record IDs.
        """
        if limit <= 0:
            return []
        with store_errors("Relational", "batch selection"), self._session() as session:
            ids = list(
                session.execute(
                    select(SurveyRecord.id)
                    .where(SurveyRecord.sync_status == SyncStatus.PENDING.value)
                    .order_by(SurveyRecord.created_at, SurveyRecord.id)
                    .limit(limit)
                ).scalars()
            )
            if include_failed and len(ids) < limit:
                ids.extend(
                    session.execute(
                        select(SurveyRecord.id)
                        .where(SurveyRecord.sync_status == SyncStatus.FAILED.value)
                        .order_by(SurveyRecord.updated_at, SurveyRecord.id)
                        .limit(limit - len(ids))
                    ).scalars()
                )
            return ids

    def _set_status(self, record_id: str, **values: Any) -> bool:
        stmt = (
            update(SurveyRecord)
            .where(SurveyRecord.id == record_id)
            .values(
                sync_attempts=SurveyRecord.sync_attempts + 1,
                updated_at=datetime.now(UTC),
                **values,
            )
        )
        with store_errors("Relational", "status update"), self._session() as session:
            result = session.execute(stmt)
            session.commit()
            return result.rowcount == 1

    def mark_synced(self, record_id: str, photo_folder_url: str | None = None) -> bool:
        """Mark a record as synced.

        Returns:
            True if the record exists and was updated.
        """
        return self._set_status(
            record_id,
            sync_status=SyncStatus.SYNCED.value,
            synced_at=datetime.now(UTC),
            sync_error=None,
            photo_folder_url=photo_folder_url or None,
        )

    def mark_failed(self, record_id: str, error: str) -> bool:
        """Mark a record as failed with an error message.

        Returns:
            True if the record exists and was updated.
        """
        return self._set_status(
            record_id,
            sync_status=SyncStatus.FAILED.value,
            sync_error=error,
        )

    def count_by_status(self) -> dict[str, int]:
        """Count records per sync status, including zero counts."""
        stmt = select(SurveyRecord.sync_status, func.count()).group_by(SurveyRecord.sync_status)
        counts = {status.value: 0 for status in SyncStatus}
        with store_errors("Relational", "status count"), self._session() as session:
            for status, count in session.execute(stmt):
                counts[status] = count
        return counts
