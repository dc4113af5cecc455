"""Service container wiring the stores, caches and engines together.

``new_service`` is called once at process start by the host (HTTP app,
CLI command or scheduler) and the resulting ``Service`` is passed to
everything that needs a handle. Nothing here is a module-level global.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path

from paddysync.core.config import ServiceConfig
from paddysync.locations.resolver import LocationInfo, LocationResolver
from paddysync.server.database import Database
from paddysync.server.drive import DocumentStore, create_document_store
from paddysync.server.spatial import SpatialStore
from paddysync.server.storage import ObjectStorage, create_storage
from paddysync.server.submissions import (
    Photo,
    SubmissionService,
    SubmitResult,
    SurveyorIdentity,
    SurveySubmission,
)
from paddysync.server.weather import WeatherClient
from paddysync.sync.engine import BatchSyncEngine, SyncSummary
from paddysync.sync.queue import SubmissionQueue
from paddysync.sync.remote import RemoteFolders

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceStats:
    """Queue activity plus record counts by sync status."""

    queue_size: int
    active_count: int
    syncing: int
    records: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "queue_size": self.queue_size,
            "active_count": self.active_count,
            "syncing": self.syncing,
            "records": dict(self.records),
        }


@dataclass
class Service:
    """Process-wide handles, constructed once by ``new_service``."""

    config: ServiceConfig
    db: Database
    spatial: SpatialStore
    resolver: LocationResolver
    queue: SubmissionQueue
    engine: BatchSyncEngine
    submissions: SubmissionService
    storage: ObjectStorage | None = None
    documents: DocumentStore | None = None
    remote: RemoteFolders | None = None
    weather: WeatherClient | None = None

    async def resolve(self, latitude: float, longitude: float) -> LocationInfo:
        return await self.resolver.resolve(latitude, longitude)

    async def enqueue(
        self,
        identity: SurveyorIdentity,
        submission: SurveySubmission,
        photos: list[Photo] | None = None,
    ) -> SubmitResult:
        """Resolve a submission and queue its save (inline if the queue is unavailable)."""
        return await self.submissions.submit(identity, submission, photos)

    async def sync_one(self, record_id: str) -> bool:
        return await self.engine.sync_one(record_id)

    async def sync_batch(self, record_ids: list[str]) -> SyncSummary:
        return await self.engine.sync_batch(record_ids)

    async def sync_pending(self, batch_size: int | None = None) -> SyncSummary:
        return await self.engine.sync_pending(batch_size)

    async def stats(self) -> ServiceStats:
        queue_stats = self.queue.stats()
        records = await asyncio.to_thread(self.db.count_by_status)
        return ServiceStats(
            queue_size=queue_stats.size,
            active_count=queue_stats.active,
            syncing=self.engine.active_count,
            records=records,
        )

    def start(self) -> None:
        """Start background workers. Must be called from a running event loop."""
        self.queue.start()

    async def stop(self) -> None:
        """Drain the queue, then release store connections."""
        await self.queue.stop()
        self.close()

    def close(self) -> None:
        self.db.close()
        self.spatial.close()


def _read_template(path: str | None) -> bytes | None:
    if not path:
        return None
    template = Path(path)
    if not template.is_file():
        logger.warning("Spreadsheet template not found: %s", template)
        return None
    return template.read_bytes()


def new_service(config: ServiceConfig | None = None) -> Service:
    """Build a Service from configuration.

    Args:
        config: Service configuration, read from the environment if None.

    Returns:
        Service with every configured collaborator attached.

    Raises:
        StoreUnavailableError: If a database cannot be opened.
        StorageMisconfiguredError: If a storage section is inconsistent.
    """
    config = config or ServiceConfig.from_env()

    db = Database(config.database.url)
    spatial = SpatialStore(config.database.geometry_url)
    resolver = LocationResolver(
        spatial,
        cache_size=config.location.cache_size,
        max_assign_attempts=config.location.max_assign_attempts,
    )

    storage = create_storage(config.storage)
    documents = create_document_store(config.drive)
    remote = None
    if documents is not None:
        remote = RemoteFolders(
            documents,
            cache_size=config.drive.folder_cache_size,
            cache_ttl=config.drive.folder_cache_ttl,
            max_retries=config.sync.max_retries,
            base_delay=config.sync.retry_base_delay,
            max_delay=config.sync.retry_max_delay,
        )

    engine = BatchSyncEngine(
        db,
        remote,
        storage=storage,
        concurrency=config.sync.concurrency,
        batch_size=config.sync.batch_size,
        include_failed=config.sync.retry_failed,
        template=_read_template(config.sync.template_path),
        max_retries=config.sync.max_retries,
        base_delay=config.sync.retry_base_delay,
        max_delay=config.sync.retry_max_delay,
    )

    queue = SubmissionQueue(
        concurrency=config.queue.concurrency,
        max_size=config.queue.max_size,
        max_retries=config.queue.max_retries,
        base_delay=config.queue.retry_base_delay,
        max_delay=config.queue.retry_max_delay,
    )
    weather = None
    if config.weather.enabled:
        weather = WeatherClient(config.weather.base_url, timeout=config.weather.timeout)

    submissions = SubmissionService(
        db,
        resolver,
        storage=storage,
        queue=queue,
        weather=weather,
    )

    logger.debug(
        "Service built (storage: %s, documents: %s)",
        storage.location if storage else "none",
        documents.location if documents else "none",
    )
    return Service(
        config=config,
        db=db,
        spatial=spatial,
        resolver=resolver,
        queue=queue,
        engine=engine,
        submissions=submissions,
        storage=storage,
        documents=documents,
        remote=remote,
        weather=weather,
    )
