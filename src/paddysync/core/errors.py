"""Error taxonomy for location resolution and batch synchronization.

Every error carries a ``retryable`` flag so callers can tell transient
infrastructure failures apart from expected, final outcomes such as a
coordinate that lies outside every known commune.
"""

from __future__ import annotations

from typing import Any


class PaddySyncError(Exception):
    """Base class for all paddysync errors."""

    retryable: bool = False

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{key}={value}" for key, value in self.context.items())
        return f"{self.message} ({details})"


# === Resolution errors ===


class InvalidCoordinatesError(PaddySyncError):
    """Raised when a latitude/longitude pair is not a usable coordinate."""


class LocationNotFoundError(PaddySyncError):
    """Raised when no commune boundary contains the coordinate."""


class StoreUnavailableError(PaddySyncError):
    """Raised when the spatial or relational store cannot be reached."""

    retryable = True


# === Storage and transfer errors ===


class ObjectStorageUnavailableError(PaddySyncError):
    """Raised when object storage is unreachable."""

    retryable = True


class StorageMisconfiguredError(PaddySyncError):
    """Raised when a storage backend is missing credentials or settings."""


class ObjectNotFoundError(PaddySyncError):
    """Raised when an object key does not exist in storage."""


class TransientNetworkError(PaddySyncError):
    """Raised for timeouts, refused connections and 5xx responses."""

    retryable = True


class RateLimitError(PaddySyncError):
    """Raised when a remote service asks us to slow down."""

    retryable = True


class PermanentUploadError(PaddySyncError):
    """Raised when a remote service rejects an upload for good."""


class SpreadsheetFormatError(PaddySyncError):
    """Raised when a spreadsheet artifact cannot be read or has no worksheet."""
