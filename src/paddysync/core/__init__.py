"""Core module - Shared configuration, errors, caches and retry helpers."""

from paddysync.core.cache import LRUCache, TTLCache
from paddysync.core.config import (
    DatabaseConfig,
    DriveConfig,
    LocationConfig,
    QueueConfig,
    SchedulerConfig,
    ServiceConfig,
    StorageConfig,
    SyncConfig,
    WeatherConfig,
)
from paddysync.core.errors import (
    InvalidCoordinatesError,
    LocationNotFoundError,
    ObjectNotFoundError,
    ObjectStorageUnavailableError,
    PaddySyncError,
    PermanentUploadError,
    RateLimitError,
    SpreadsheetFormatError,
    StorageMisconfiguredError,
    StoreUnavailableError,
    TransientNetworkError,
)
from paddysync.core.retry import is_retryable_error, retry_with_backoff
from paddysync.core.types import AreaLevel, SyncStatus

__all__ = [
    # Caches
    "LRUCache",
    "TTLCache",
    # Config
    "DatabaseConfig",
    "DriveConfig",
    "LocationConfig",
    "QueueConfig",
    "SchedulerConfig",
    "ServiceConfig",
    "StorageConfig",
    "SyncConfig",
    "WeatherConfig",
    # Errors
    "InvalidCoordinatesError",
    "LocationNotFoundError",
    "ObjectNotFoundError",
    "ObjectStorageUnavailableError",
    "PaddySyncError",
    "PermanentUploadError",
    "RateLimitError",
    "SpreadsheetFormatError",
    "StorageMisconfiguredError",
    "StoreUnavailableError",
    "TransientNetworkError",
    # Retry
    "is_retryable_error",
    "retry_with_backoff",
    # Types
    "AreaLevel",
    "SyncStatus",
]
