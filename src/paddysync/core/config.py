"""Configuration classes for paddysync.

Every section is a dataclass with working defaults, so a development
setup runs with no environment at all: SQLite files for both stores and
no object storage or document store.
``ServiceConfig.from_env`` builds the full configuration from
``PADDYSYNC_*`` environment variables.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

ENV_PREFIX = "PADDYSYNC_"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_str(env: Mapping[str, str], name: str, default: str | None = None) -> str | None:
    value = env.get(ENV_PREFIX + name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def _env_int(env: Mapping[str, str], name: str, default: int, minimum: int = 1) -> int:
    raw = _env_str(env, name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid integer for %s%s=%r, using %d", ENV_PREFIX, name, raw, default)
        return default
    if value < minimum:
        logger.warning("%s%s must be >= %d, using %d", ENV_PREFIX, name, minimum, default)
        return default
    return value


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _env_str(env, name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid number for %s%s=%r, using %s", ENV_PREFIX, name, raw, default)
        return default
    if value <= 0:
        logger.warning("%s%s must be positive, using %s", ENV_PREFIX, name, default)
        return default
    return value


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = _env_str(env, name)
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    logger.warning("Invalid boolean for %s%s=%r, using %s", ENV_PREFIX, name, raw, default)
    return default


@dataclass
class DatabaseConfig:
    """Connection URLs for the records store and the spatial store."""

    url: str = "sqlite:///paddysync.db"
    geometry_url: str = "sqlite:///paddysync-geometry.db"


@dataclass
class LocationConfig:
    """Location resolver settings.

    Attributes:
        cache_size: Capacity of the coordinate -> location LRU cache.
        max_assign_attempts: How many times a code assignment is retried
            when another writer claimed the same code first.
    """

    cache_size: int = 500
    max_assign_attempts: int = 5


@dataclass
class StorageConfig:
    """Object storage settings (photos).

    ``type`` is one of ``none``, ``local`` or ``s3``. S3 covers MinIO and
    other S3-compatible services through ``endpoint_url``.
    """

    type: str = "none"
    bucket: str | None = None
    endpoint_url: str | None = None
    access_key: str | None = None
    secret_key: str | None = None
    region: str = "us-east-1"
    local_path: str = "storage"

    def __post_init__(self) -> None:
        """Normalize storage type."""
        self.type = self.type.lower()


@dataclass
class DriveConfig:
    """Remote document-folder store settings (photos and spreadsheets).

    ``type`` is one of ``none``, ``local`` or ``google``.
    """

    type: str = "none"
    root_folder_id: str | None = None
    service_account_file: str | None = None
    impersonated_email: str | None = None
    local_path: str = "drive"
    folder_cache_size: int = 1000
    folder_cache_ttl: float = 300.0

    def __post_init__(self) -> None:
        """Normalize document store type."""
        self.type = self.type.lower()


@dataclass
class SyncConfig:
    """Batch sync engine settings.

    Attributes:
        batch_size: Maximum number of records per batch.
        concurrency: Maximum number of records processed at once.
        max_retries: Retries for each external call.
        retry_base_delay: First backoff delay in seconds.
        retry_max_delay: Upper bound for a backoff delay in seconds.
        retry_failed: Whether failed records are picked up again.
        template_path: Optional xlsx used when a spreadsheet does not exist yet.
    """

    batch_size: int = 10
    concurrency: int = 2
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    retry_failed: bool = True
    template_path: str | None = None


@dataclass
class SchedulerConfig:
    """Cron trigger for the batch sync."""

    schedule: str = "0 12 * * *"
    timezone: str | None = None
    run_on_start: bool = False
    enabled: bool = True


@dataclass
class QueueConfig:
    """Submission queue settings.

    Attributes:
        concurrency: Number of worker tasks saving submissions.
        max_size: Maximum number of waiting saves.
        max_retries: Retries of a save failing with a retryable error.
        retry_base_delay: First backoff delay in seconds.
        retry_max_delay: Upper bound for a backoff delay in seconds.
    """

    concurrency: int = 1
    max_size: int = 100
    max_retries: int = 2
    retry_base_delay: float = 2.0
    retry_max_delay: float = 30.0


@dataclass
class WeatherConfig:
    """Weather snapshot client settings."""

    enabled: bool = False
    base_url: str = "https://api.open-meteo.com/v1/forecast"
    timeout: float = 5.0


@dataclass
class ServiceConfig:
    """Complete configuration for one paddysync process."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    location: LocationConfig = field(default_factory=LocationConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    drive: DriveConfig = field(default_factory=DriveConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    weather: WeatherConfig = field(default_factory=WeatherConfig)
    cron_secret: str | None = None
    log_level: str = "INFO"
    log_path: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ServiceConfig:
        """Build configuration from ``PADDYSYNC_*`` environment variables.

        Invalid numeric or boolean values log a warning and fall back to
        the default rather than failing startup.

        Args:
            environ: Environment mapping, defaults to ``os.environ``.

        Returns:
            Populated ServiceConfig.
        """
        env = os.environ if environ is None else environ

        database = DatabaseConfig(
            url=_env_str(env, "DATABASE_URL", DatabaseConfig.url) or DatabaseConfig.url,
            geometry_url=_env_str(env, "GEOMETRY_DATABASE_URL", DatabaseConfig.geometry_url)
            or DatabaseConfig.geometry_url,
        )
        location = LocationConfig(
            cache_size=_env_int(env, "LOCATION_CACHE_SIZE", LocationConfig.cache_size),
            max_assign_attempts=_env_int(
                env, "LOCATION_ASSIGN_ATTEMPTS", LocationConfig.max_assign_attempts
            ),
        )

        # S3 storage if bucket is configured
        bucket = _env_str(env, "S3_BUCKET")
        storage_type = _env_str(env, "STORAGE_TYPE") or ("s3" if bucket else "none")
        storage = StorageConfig(
            type=storage_type,
            bucket=bucket,
            endpoint_url=_env_str(env, "S3_ENDPOINT"),
            access_key=_env_str(env, "S3_ACCESS_KEY"),
            secret_key=_env_str(env, "S3_SECRET_KEY"),
            region=_env_str(env, "S3_REGION", "us-east-1") or "us-east-1",
            local_path=_env_str(env, "STORAGE_PATH", "storage") or "storage",
        )

        service_account = _env_str(env, "DRIVE_SERVICE_ACCOUNT_FILE")
        drive_type = _env_str(env, "DRIVE_TYPE") or ("google" if service_account else "none")
        drive = DriveConfig(
            type=drive_type,
            root_folder_id=_env_str(env, "DRIVE_ROOT_FOLDER_ID"),
            service_account_file=service_account,
            impersonated_email=_env_str(env, "DRIVE_IMPERSONATED_EMAIL"),
            local_path=_env_str(env, "DRIVE_PATH", "drive") or "drive",
            folder_cache_size=_env_int(
                env, "DRIVE_FOLDER_CACHE_SIZE", DriveConfig.folder_cache_size
            ),
            folder_cache_ttl=_env_float(
                env, "DRIVE_FOLDER_CACHE_TTL", DriveConfig.folder_cache_ttl
            ),
        )

        sync = SyncConfig(
            batch_size=_env_int(env, "SYNC_BATCH_SIZE", SyncConfig.batch_size),
            concurrency=_env_int(env, "SYNC_CONCURRENCY", SyncConfig.concurrency),
            max_retries=_env_int(env, "SYNC_MAX_RETRIES", SyncConfig.max_retries, minimum=0),
            retry_base_delay=_env_float(env, "SYNC_RETRY_BASE_DELAY", SyncConfig.retry_base_delay),
            retry_max_delay=_env_float(env, "SYNC_RETRY_MAX_DELAY", SyncConfig.retry_max_delay),
            retry_failed=_env_bool(env, "SYNC_RETRY_FAILED", SyncConfig.retry_failed),
            template_path=_env_str(env, "SYNC_TEMPLATE_PATH"),
        )
        scheduler = SchedulerConfig(
            schedule=_env_str(env, "CRON_SCHEDULE", SchedulerConfig.schedule)
            or SchedulerConfig.schedule,
            timezone=_env_str(env, "CRON_TIMEZONE"),
            run_on_start=_env_bool(env, "CRON_RUN_ON_START", SchedulerConfig.run_on_start),
            enabled=_env_bool(env, "CRON_ENABLED", SchedulerConfig.enabled),
        )
        queue = QueueConfig(
            concurrency=_env_int(env, "QUEUE_CONCURRENCY", QueueConfig.concurrency),
            max_size=_env_int(env, "QUEUE_MAX_SIZE", QueueConfig.max_size),
            max_retries=_env_int(env, "QUEUE_MAX_RETRIES", QueueConfig.max_retries, minimum=0),
            retry_base_delay=_env_float(
                env, "QUEUE_RETRY_BASE_DELAY", QueueConfig.retry_base_delay
            ),
            retry_max_delay=_env_float(env, "QUEUE_RETRY_MAX_DELAY", QueueConfig.retry_max_delay),
        )
        weather = WeatherConfig(
            enabled=_env_bool(env, "WEATHER_ENABLED", WeatherConfig.enabled),
            base_url=_env_str(env, "WEATHER_URL", WeatherConfig.base_url)
            or WeatherConfig.base_url,
            timeout=_env_float(env, "WEATHER_TIMEOUT", WeatherConfig.timeout),
        )

        return cls(
            database=database,
            location=location,
            storage=storage,
            drive=drive,
            sync=sync,
            scheduler=scheduler,
            queue=queue,
            weather=weather,
            cron_secret=_env_str(env, "CRON_SECRET"),
            log_level=_env_str(env, "LOG_LEVEL", "INFO") or "INFO",
            log_path=_env_str(env, "LOG_PATH"),
        )
