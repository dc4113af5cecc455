"""Batch synchronization of survey records to the document store.

A batch runs in three phases:

1. Prepare: each record is processed under a bounded concurrency limit.
   Its photos are copied from object storage into
   ``4_GT photo and log/{province}/{fieldId}/{YYYYMMDD}`` and one export
   row is built for the spreadsheet ``GT-{locationCode}-{YYYYMMDD}.xlsx``.
2. Write: rows are grouped per spreadsheet and each spreadsheet is
   downloaded, extended and uploaded once, one group at a time. A failed
   write fails every record of its group.
3. Reconcile: prepared records still in good standing become ``synced``,
   everything else ``failed`` with its error message.

Status is committed per record after the remote writes, so a crash mid
batch leaves records in their previous status and the next run simply
processes them again.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from paddysync.core.errors import PaddySyncError, PermanentUploadError
from paddysync.core.retry import (
    DEFAULT_BASE_DELAY,
    DEFAULT_MAX_DELAY,
    DEFAULT_MAX_RETRIES,
    retry_with_backoff,
)
from paddysync.core.types import SyncStatus
from paddysync.server.drive import XLSX_MIME_TYPE, guess_mime_type
from paddysync.server.storage import extract_object_name
from paddysync.sync.spreadsheet import (
    append_rows,
    build_export_row,
    photo_folder_path,
    spreadsheet_filename,
    spreadsheet_folder_path,
)

if TYPE_CHECKING:
    from paddysync.server.database import Database
    from paddysync.server.models import SurveyRecord
    from paddysync.server.storage import ObjectStorage
    from paddysync.sync.remote import RemoteFolders
    from paddysync.sync.spreadsheet import ExportRow

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 2
DEFAULT_BATCH_SIZE = 10


@dataclass
class SyncSummary:
    """Tally of one batch run."""

    succeeded: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.succeeded + self.failed

    def to_dict(self) -> dict[str, int]:
        return {"succeeded": self.succeeded, "failed": self.failed, "total": self.total}


@dataclass(frozen=True)
class SpreadsheetTarget:
    """Destination spreadsheet shared by records of one location and day."""

    folder_path: str
    filename: str


@dataclass
class RecordOutcome:
    """Per-record result carried from the prepare phase to reconciliation."""

    record_id: str
    status: SyncStatus
    error: str | None = None
    folder_link: str = ""
    target: SpreadsheetTarget | None = None
    row: ExportRow = field(default_factory=list)


class BatchSyncEngine:
    """Mirror pending survey records to the document store."""

    def __init__(
        self,
        db: Database,
        remote: RemoteFolders | None,
        storage: ObjectStorage | None = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        batch_size: int = DEFAULT_BATCH_SIZE,
        include_failed: bool = True,
        template: bytes | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the engine.

        Args:
            db: Relational store holding the records.
            remote: Document store wrapper, None if not configured.
            storage: Object storage holding the photos, None if not configured.
            concurrency: Maximum number of records prepared at once.
            batch_size: Default number of records per ``sync_pending`` run.
            include_failed: Whether failed records are selected again.
            template: Workbook content used for new spreadsheets.
            max_retries: Retries for each object storage read.
            base_delay: First backoff delay in seconds.
            max_delay: Upper bound for a backoff delay in seconds.
            sleep: Awaitable sleep, injectable for tests.
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._db = db
        self._remote = remote
        self._storage = storage
        self._concurrency = concurrency
        self._batch_size = batch_size
        self._include_failed = include_failed
        self._template = template
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._sleep = sleep
        self._active = 0

    @property
    def active_count(self) -> int:
        """Number of records currently being prepared."""
        return self._active

    @property
    def concurrency(self) -> int:
        return self._concurrency

    def resolve_batch_size(self, batch_size: int | None) -> int:
        """Use ``batch_size`` if it is a positive integer, else the default."""
        if batch_size is None or isinstance(batch_size, bool) or batch_size <= 0:
            return self._batch_size
        return int(batch_size)

    async def sync_pending(self, batch_size: int | None = None) -> SyncSummary:
        """Select the next batch of records and synchronize it."""
        if self._remote is None:
            logger.warning("Document store not configured, leaving records pending")
            return SyncSummary()

        limit = self.resolve_batch_size(batch_size)
        record_ids = await asyncio.to_thread(
            self._db.list_syncable_ids, limit, self._include_failed
        )
        if not record_ids:
            logger.debug("No records to sync")
            return SyncSummary()
        return await self.sync_batch(record_ids)

    async def sync_one(self, record_id: str) -> bool:
        """Synchronize a single record.

        Returns:
            True if the record ended up synced.
        """
        summary = await self.sync_batch([record_id])
        return summary.succeeded == 1

    async def sync_batch(self, record_ids: Sequence[str]) -> SyncSummary:
        """Synchronize the given records.

        Failures of individual records or spreadsheet groups are recorded
        on the records and counted; they never abort the batch.

        Args:
            record_ids: IDs of the records to synchronize.

        Returns:
            Count of records marked synced and failed.
        """
        if not record_ids:
            return SyncSummary()
        if self._remote is None:
            logger.warning("Document store not configured, leaving records pending")
            return SyncSummary()

        unique_ids = list(dict.fromkeys(record_ids))
        records = await asyncio.to_thread(self._db.get_records, unique_ids)
        missing = len(unique_ids) - len(records)
        if missing:
            logger.warning("%d record(s) not found, skipping", missing)

        outcomes = await self._prepare_all(records)
        await self._write_spreadsheets(outcomes)
        summary = await self._reconcile(outcomes)

        logger.info(
            "Batch sync finished: %d synced, %d failed",
            summary.succeeded,
            summary.failed,
        )
        return summary

    # === Phase 1: prepare ===

    async def _prepare_all(self, records: Sequence[SurveyRecord]) -> list[RecordOutcome]:
        tasks: list[asyncio.Task[RecordOutcome]] = []
        in_flight: set[asyncio.Task[RecordOutcome]] = set()

        for record in records:
            if len(in_flight) >= self._concurrency:
                _, in_flight = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
            task = asyncio.create_task(self._prepare(record))
            tasks.append(task)
            in_flight.add(task)

        if in_flight:
            await asyncio.wait(in_flight)
        return [task.result() for task in tasks]

    async def _prepare(self, record: SurveyRecord) -> RecordOutcome:
        self._active += 1
        try:
            return await self._prepare_record(record)
        except PaddySyncError as e:
            logger.error("Failed to prepare record %s: %s", record.id, e)
            return RecordOutcome(record.id, SyncStatus.FAILED, error=str(e))
        except Exception as e:
            logger.error("Unexpected error preparing record %s", record.id, exc_info=True)
            return RecordOutcome(record.id, SyncStatus.FAILED, error=str(e) or type(e).__name__)
        finally:
            self._active -= 1

    async def _prepare_record(self, record: SurveyRecord) -> RecordOutcome:
        assert self._remote is not None
        surveyor = record.surveyor
        if surveyor is None:
            raise PaddySyncError("Surveyor not found", {"record": record.id})

        folder_link = ""
        if record.photo_urls and self._storage is not None:
            folder_path = photo_folder_path(
                record.province_name, record.field_id, record.date_of_visit
            )
            folder_id = await self._remote.ensure_folder_path(folder_path)
            folder_link = self._remote.folder_link(folder_id)
            for url in record.photo_urls:
                await self._mirror_photo(url, folder_path)
        elif record.photo_urls:
            logger.debug("Object storage not configured, skipping photos of %s", record.id)

        target = SpreadsheetTarget(
            folder_path=spreadsheet_folder_path(record.province_name),
            filename=spreadsheet_filename(surveyor.location_code, record.date_of_visit),
        )
        return RecordOutcome(
            record_id=record.id,
            status=SyncStatus.SYNCED,
            folder_link=folder_link,
            target=target,
            row=build_export_row(record, surveyor.display_name, folder_link),
        )

    async def _mirror_photo(self, url: str, folder_path: str) -> None:
        assert self._remote is not None and self._storage is not None
        key = extract_object_name(url)
        if key is None:
            raise PermanentUploadError("Photo URL has no object key", {"url": url})

        storage = self._storage

        async def fetch() -> bytes:
            return await asyncio.to_thread(storage.get, key)

        data = await retry_with_backoff(
            fetch,
            max_retries=self._max_retries,
            base_delay=self._base_delay,
            max_delay=self._max_delay,
            operation_name=f"fetch photo {key}",
            sleep=self._sleep,
        )
        name = posixpath.basename(key)
        await self._remote.upload_file(name, data, folder_path, guess_mime_type(name))
        logger.debug("Mirrored photo %s to %s", key, folder_path)

    # === Phase 2: spreadsheet writes ===

    async def _write_spreadsheets(self, outcomes: Sequence[RecordOutcome]) -> None:
        assert self._remote is not None
        groups: dict[SpreadsheetTarget, list[RecordOutcome]] = {}
        for outcome in outcomes:
            if outcome.status is SyncStatus.SYNCED and outcome.target is not None:
                groups.setdefault(outcome.target, []).append(outcome)

        for target, members in groups.items():
            rows = [member.row for member in members]
            try:
                existing = await self._remote.download_file(target.filename, target.folder_path)
                content = await asyncio.to_thread(append_rows, existing, rows, self._template)
                await self._remote.replace_file(
                    target.filename, content, target.folder_path, XLSX_MIME_TYPE
                )
            except Exception as e:
                message = f"Spreadsheet sync failed: {e}"
                logger.error("Failed to update %s: %s", target.filename, e)
                for member in members:
                    member.status = SyncStatus.FAILED
                    member.error = message
                continue
            logger.info("Appended %d row(s) to %s", len(rows), target.filename)

    # === Phase 3: reconcile ===

    async def _reconcile(self, outcomes: Sequence[RecordOutcome]) -> SyncSummary:
        summary = SyncSummary()
        for outcome in outcomes:
            try:
                if outcome.status is SyncStatus.SYNCED:
                    updated = await asyncio.to_thread(
                        self._db.mark_synced, outcome.record_id, outcome.folder_link
                    )
                    if updated:
                        summary.succeeded += 1
                else:
                    updated = await asyncio.to_thread(
                        self._db.mark_failed, outcome.record_id, outcome.error or "Unknown error"
                    )
                    if updated:
                        summary.failed += 1
            except PaddySyncError as e:
                logger.error("Failed to update status of record %s: %s", outcome.record_id, e)
        return summary
