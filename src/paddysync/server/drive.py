"""Remote document-folder store for photos and spreadsheets.

This module provides:
- Abstract interface with folder/file primitives addressed by ID
- LocalDocumentStore for development/testing (directories on disk)
- GoogleDriveStore for production (Google Drive API v3, service account)

Path handling, caching and retries live one level up in
``paddysync.sync.remote``; stores here make exactly one remote call per
method and translate client errors into the paddysync error taxonomy.
"""

from __future__ import annotations

import io
import logging
import mimetypes
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from paddysync.core.errors import (
    ObjectNotFoundError,
    PermanentUploadError,
    RateLimitError,
    StorageMisconfiguredError,
    TransientNetworkError,
)

if TYPE_CHECKING:
    from typing import Any

    from paddysync.core.config import DriveConfig
    from paddysync.core.errors import PaddySyncError

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
XLSX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive"]

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".xlsx": XLSX_MIME_TYPE,
    ".csv": "text/csv",
}


def guess_mime_type(filename: str) -> str:
    """MIME type for a filename, falling back to application/octet-stream."""
    suffix = Path(filename).suffix.lower()
    if suffix in MIME_TYPES:
        return MIME_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


@dataclass(frozen=True)
class RemoteFile:
    """A file stored in the document store."""

    file_id: str
    link: str | None = None


class DocumentStore(ABC):
    """Abstract interface for a remote folder hierarchy."""

    @property
    @abstractmethod
    def location(self) -> str:
        """Return a human-readable description of the store."""

    @property
    @abstractmethod
    def root_id(self) -> str:
        """ID of the folder every path is resolved from."""

    @abstractmethod
    def find_folder(self, name: str, parent_id: str) -> str | None:
        """Return the ID of a child folder, or None if missing."""

    @abstractmethod
    def create_folder(self, name: str, parent_id: str) -> str:
        """Create a child folder and return its ID."""

    @abstractmethod
    def find_file(self, name: str, parent_id: str) -> str | None:
        """Return the ID of a file in a folder, or None if missing."""

    @abstractmethod
    def create_file(self, name: str, parent_id: str, data: bytes, mime_type: str) -> RemoteFile:
        """Create a new file in a folder."""

    @abstractmethod
    def update_file(self, file_id: str, data: bytes, mime_type: str) -> RemoteFile:
        """Replace the content of an existing file."""

    @abstractmethod
    def download(self, file_id: str) -> bytes:
        """Return the content of a file.

        Raises:
            ObjectNotFoundError: If the file doesn't exist.
        """

    @abstractmethod
    def folder_link(self, folder_id: str) -> str:
        """Return a shareable link to a folder."""


class LocalDocumentStore(DocumentStore):
    """Document store backed by local directories.

    IDs are paths relative to the base directory; the root ID is "".
    """

    def __init__(self, base_path: Path | str) -> None:
        self._base_path = Path(base_path).resolve()
        self._base_path.mkdir(parents=True, exist_ok=True)

    @property
    def location(self) -> str:
        return f"Local filesystem: {self._base_path}"

    @property
    def root_id(self) -> str:
        return ""

    def _path(self, item_id: str) -> Path:
        path = (self._base_path / item_id).resolve()
        if not path.is_relative_to(self._base_path):
            raise PermanentUploadError("Path escapes document store root", {"id": item_id})
        return path

    def _child_id(self, name: str, parent_id: str) -> str:
        if "/" in name or name in ("", ".", ".."):
            raise PermanentUploadError("Invalid item name", {"name": name})
        return f"{parent_id}/{name}" if parent_id else name

    def find_folder(self, name: str, parent_id: str) -> str | None:
        child_id = self._child_id(name, parent_id)
        return child_id if self._path(child_id).is_dir() else None

    def create_folder(self, name: str, parent_id: str) -> str:
        child_id = self._child_id(name, parent_id)
        self._path(child_id).mkdir(parents=True, exist_ok=True)
        return child_id

    def find_file(self, name: str, parent_id: str) -> str | None:
        child_id = self._child_id(name, parent_id)
        return child_id if self._path(child_id).is_file() else None

    def create_file(self, name: str, parent_id: str, data: bytes, mime_type: str) -> RemoteFile:
        child_id = self._child_id(name, parent_id)
        path = self._path(child_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return RemoteFile(file_id=child_id, link=path.as_uri())

    def update_file(self, file_id: str, data: bytes, mime_type: str) -> RemoteFile:
        path = self._path(file_id)
        if not path.is_file():
            raise ObjectNotFoundError(f"File not found: {file_id}")
        path.write_bytes(data)
        return RemoteFile(file_id=file_id, link=path.as_uri())

    def download(self, file_id: str) -> bytes:
        path = self._path(file_id)
        if not path.is_file():
            raise ObjectNotFoundError(f"File not found: {file_id}")
        return path.read_bytes()

    def folder_link(self, folder_id: str) -> str:
        return self._path(folder_id).as_uri()


def _escape_query(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _translate_google_error(error: Exception, operation: str) -> PaddySyncError:
    """Map a Google API client exception to the paddysync error taxonomy."""
    from googleapiclient.errors import HttpError

    context = {"operation": operation}
    if isinstance(error, HttpError):
        status = int(error.resp.status)
        reason = str(error)
        if status == 429 or (status == 403 and "rate" in reason.lower()):
            return RateLimitError(f"Drive rate limit exceeded: {reason}", context)
        if status == 404:
            return ObjectNotFoundError(f"Drive item not found: {reason}", context)
        if status in (401, 403):
            return StorageMisconfiguredError(f"Drive access denied: {reason}", context)
        if status >= 500:
            return TransientNetworkError(f"Drive server error {status}: {reason}", context)
        return PermanentUploadError(f"Drive rejected request {status}: {reason}", context)
    if isinstance(error, (TimeoutError, ConnectionError, OSError)):
        return TransientNetworkError(f"Drive network error: {error}", context)
    return PermanentUploadError(f"Drive error: {error}", context)


class GoogleDriveStore(DocumentStore):
    """Google Drive document store using a service account."""

    def __init__(
        self,
        root_folder_id: str,
        service_account_file: str | None = None,
        impersonated_email: str | None = None,
        service: Any | None = None,
    ) -> None:
        """Initialize the Drive store.

        Args:
            root_folder_id: Folder (or shared drive) every path starts from.
            service_account_file: Path to the service account JSON key.
            impersonated_email: User to impersonate through domain-wide delegation.
            service: Prebuilt Drive v3 service, mainly for tests.
        """
        self._root_folder_id = root_folder_id
        if service is None:
            if not service_account_file:
                raise StorageMisconfiguredError("Google Drive requires a service account file")
            from google.oauth2 import service_account
            from googleapiclient.discovery import build

            credentials = service_account.Credentials.from_service_account_file(
                service_account_file,
                scopes=DRIVE_SCOPES,
                subject=impersonated_email,
            )
            service = build("drive", "v3", credentials=credentials, cache_discovery=False)
        self._service = service

    @property
    def location(self) -> str:
        return f"Google Drive: folder {self._root_folder_id}"

    @property
    def root_id(self) -> str:
        return self._root_folder_id

    def _execute(self, request: Any, operation: str) -> Any:
        try:
            return request.execute()
        except Exception as e:
            raise _translate_google_error(e, operation) from e

    def _find(self, name: str, parent_id: str, folders: bool) -> str | None:
        mime_clause = (
            f"mimeType = '{FOLDER_MIME_TYPE}'" if folders else f"mimeType != '{FOLDER_MIME_TYPE}'"
        )
        query = (
            f"name = '{_escape_query(name)}' and '{_escape_query(parent_id)}' in parents "
            f"and {mime_clause} and trashed = false"
        )
        response = self._execute(
            self._service.files().list(
                q=query,
                fields="files(id, name)",
                pageSize=1,
                supportsAllDrives=True,
                includeItemsFromAllDrives=True,
            ),
            "find",
        )
        files = response.get("files", [])
        return files[0]["id"] if files else None

    def find_folder(self, name: str, parent_id: str) -> str | None:
        return self._find(name, parent_id, folders=True)

    def create_folder(self, name: str, parent_id: str) -> str:
        response = self._execute(
            self._service.files().create(
                body={"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]},
                fields="id",
                supportsAllDrives=True,
            ),
            "create_folder",
        )
        logger.debug("Created Drive folder %s in %s", name, parent_id)
        return str(response["id"])

    def find_file(self, name: str, parent_id: str) -> str | None:
        return self._find(name, parent_id, folders=False)

    def create_file(self, name: str, parent_id: str, data: bytes, mime_type: str) -> RemoteFile:
        from googleapiclient.http import MediaIoBaseUpload

        media = MediaIoBaseUpload(io.BytesIO(data), mimetype=mime_type, resumable=False)
        response = self._execute(
            self._service.files().create(
                body={"name": name, "parents": [parent_id]},
                media_body=media,
                fields="id, webViewLink",
                supportsAllDrives=True,
            ),
            "create_file",
        )
        return RemoteFile(file_id=str(response["id"]), link=response.get("webViewLink"))

    def update_file(self, file_id: str, data: bytes, mime_type: str) -> RemoteFile:
        from googleapiclient.http import MediaIoBaseUpload

        media = MediaIoBaseUpload(io.BytesIO(data), mimetype=mime_type, resumable=False)
        response = self._execute(
            self._service.files().update(
                fileId=file_id,
                media_body=media,
                fields="id, webViewLink",
                supportsAllDrives=True,
            ),
            "update_file",
        )
        return RemoteFile(file_id=str(response["id"]), link=response.get("webViewLink"))

    def download(self, file_id: str) -> bytes:
        from googleapiclient.http import MediaIoBaseDownload

        buffer = io.BytesIO()
        request = self._service.files().get_media(fileId=file_id, supportsAllDrives=True)
        downloader = MediaIoBaseDownload(buffer, request)
        try:
            done = False
            while not done:
                _, done = downloader.next_chunk()
        except Exception as e:
            raise _translate_google_error(e, "download") from e
        return buffer.getvalue()

    def folder_link(self, folder_id: str) -> str:
        return f"https://drive.google.com/drive/folders/{folder_id}"


def create_document_store(config: DriveConfig) -> DocumentStore | None:
    """Factory function to create a document store from configuration.

    Returns:
        Configured DocumentStore, or None when the store is disabled.

    Raises:
        StorageMisconfiguredError: If the type is unknown or settings are missing.
    """
    if config.type in ("none", ""):
        logger.info("Document store disabled")
        return None

    if config.type == "local":
        return LocalDocumentStore(config.local_path)

    if config.type == "google":
        if not config.root_folder_id:
            raise StorageMisconfiguredError("Google Drive requires a root folder ID")
        return GoogleDriveStore(
            root_folder_id=config.root_folder_id,
            service_account_file=config.service_account_file,
            impersonated_email=config.impersonated_email,
        )

    raise StorageMisconfiguredError(f"Unknown document store type: {config.type}")
