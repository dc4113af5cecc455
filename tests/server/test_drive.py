"""Tests for the document stores."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from paddysync.core.config import DriveConfig
from paddysync.core.errors import (
    ObjectNotFoundError,
    PermanentUploadError,
    RateLimitError,
    StorageMisconfiguredError,
    TransientNetworkError,
)
from paddysync.server.drive import (
    FOLDER_MIME_TYPE,
    XLSX_MIME_TYPE,
    DocumentStore,
    GoogleDriveStore,
    LocalDocumentStore,
    _translate_google_error,
    create_document_store,
    guess_mime_type,
)


class TestGuessMimeType:
    def test_known_suffixes(self) -> None:
        assert guess_mime_type("plot.JPG") == "image/jpeg"
        assert guess_mime_type("survey.xlsx") == XLSX_MIME_TYPE

    def test_unknown_suffix(self) -> None:
        assert guess_mime_type("blob.unknownext") == "application/octet-stream"


class TestLocalDocumentStore:
    """Tests for LocalDocumentStore."""

    @pytest.fixture
    def store(self, tmp_path: Path) -> LocalDocumentStore:
        return LocalDocumentStore(tmp_path / "drive")

    def test_folders(self, store: LocalDocumentStore) -> None:
        assert store.find_folder("phnom-penh", store.root_id) is None

        province = store.create_folder("phnom-penh", store.root_id)
        field = store.create_folder("PPH-CMN-BK1-S01-F001", province)

        assert store.find_folder("phnom-penh", store.root_id) == province
        assert field == "phnom-penh/PPH-CMN-BK1-S01-F001"
        assert store.folder_link(field).startswith("file://")

    def test_create_update_download(self, store: LocalDocumentStore) -> None:
        folder = store.create_folder("sheets", store.root_id)

        created = store.create_file("survey.xlsx", folder, b"v1", XLSX_MIME_TYPE)
        assert store.find_file("survey.xlsx", folder) == created.file_id
        assert store.download(created.file_id) == b"v1"

        store.update_file(created.file_id, b"v2", XLSX_MIME_TYPE)
        assert store.download(created.file_id) == b"v2"

    def test_files_and_folders_are_distinct(self, store: LocalDocumentStore) -> None:
        store.create_folder("photos", store.root_id)

        assert store.find_file("photos", store.root_id) is None

    def test_missing_file(self, store: LocalDocumentStore) -> None:
        with pytest.raises(ObjectNotFoundError):
            store.download("missing.xlsx")
        with pytest.raises(ObjectNotFoundError):
            store.update_file("missing.xlsx", b"x", XLSX_MIME_TYPE)

    def test_rejects_invalid_names(self, store: LocalDocumentStore) -> None:
        with pytest.raises(PermanentUploadError):
            store.create_folder("..", store.root_id)
        with pytest.raises(PermanentUploadError):
            store.create_file("a/b.jpg", store.root_id, b"x", "image/jpeg")
        with pytest.raises(PermanentUploadError):
            store.download("../outside.txt")


def http_error(status: int, reason: str = "error") -> Exception:
    from googleapiclient.errors import HttpError

    return HttpError(SimpleNamespace(status=status, reason=reason), b"")


class TestTranslateGoogleError:
    """Tests for Google client error classification."""

    def test_rate_limit(self) -> None:
        assert isinstance(_translate_google_error(http_error(429), "find"), RateLimitError)
        assert isinstance(
            _translate_google_error(http_error(403, "User Rate Limit Exceeded"), "find"),
            RateLimitError,
        )

    def test_not_found(self) -> None:
        assert isinstance(_translate_google_error(http_error(404), "get"), ObjectNotFoundError)

    def test_access_denied(self) -> None:
        error = _translate_google_error(http_error(403, "Forbidden"), "create_file")
        assert isinstance(error, StorageMisconfiguredError)

    def test_server_error(self) -> None:
        assert isinstance(
            _translate_google_error(http_error(503), "update_file"), TransientNetworkError
        )

    def test_client_error(self) -> None:
        assert isinstance(
            _translate_google_error(http_error(400), "create_file"), PermanentUploadError
        )

    def test_network_error(self) -> None:
        error = _translate_google_error(ConnectionResetError("reset"), "find")
        assert isinstance(error, TransientNetworkError)
        assert error.context == {"operation": "find"}


class TestGoogleDriveStore:
    """Tests for GoogleDriveStore against a mocked Drive service."""

    @pytest.fixture
    def service(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture
    def store(self, service: MagicMock) -> GoogleDriveStore:
        return GoogleDriveStore(root_folder_id="root-123", service=service)

    def test_find_folder(self, store: GoogleDriveStore, service: MagicMock) -> None:
        service.files().list().execute.return_value = {"files": [{"id": "f1", "name": "x"}]}

        assert store.find_folder("phnom-penh", "root-123") == "f1"

        query = service.files().list.call_args.kwargs["q"]
        assert "name = 'phnom-penh'" in query
        assert "'root-123' in parents" in query
        assert f"mimeType = '{FOLDER_MIME_TYPE}'" in query
        assert "trashed = false" in query

    def test_find_escapes_quotes(self, store: GoogleDriveStore, service: MagicMock) -> None:
        service.files().list().execute.return_value = {"files": []}

        assert store.find_file("farmer's plot.xlsx", "root-123") is None

        query = service.files().list.call_args.kwargs["q"]
        assert "name = 'farmer\\'s plot.xlsx'" in query
        assert f"mimeType != '{FOLDER_MIME_TYPE}'" in query

    def test_create_folder(self, store: GoogleDriveStore, service: MagicMock) -> None:
        service.files().create().execute.return_value = {"id": "new-folder"}

        assert store.create_folder("2024", "parent-1") == "new-folder"

        body = service.files().create.call_args.kwargs["body"]
        assert body == {"name": "2024", "mimeType": FOLDER_MIME_TYPE, "parents": ["parent-1"]}

    def test_create_file(self, store: GoogleDriveStore, service: MagicMock) -> None:
        service.files().create().execute.return_value = {
            "id": "file-1",
            "webViewLink": "https://drive.google.com/file/d/file-1/view",
        }

        created = store.create_file("photo.jpg", "parent-1", b"jpeg", "image/jpeg")

        assert created.file_id == "file-1"
        assert created.link == "https://drive.google.com/file/d/file-1/view"

    def test_errors_are_translated(self, store: GoogleDriveStore, service: MagicMock) -> None:
        service.files().list().execute.side_effect = http_error(429)

        with pytest.raises(RateLimitError):
            store.find_folder("phnom-penh", "root-123")

    def test_folder_link(self, store: GoogleDriveStore) -> None:
        assert store.folder_link("abc") == "https://drive.google.com/drive/folders/abc"
        assert store.root_id == "root-123"

    def test_requires_credentials(self) -> None:
        with pytest.raises(StorageMisconfiguredError):
            GoogleDriveStore(root_folder_id="root-123")


class TestCreateDocumentStore:
    """Tests for create_document_store factory."""

    def test_disabled(self) -> None:
        assert create_document_store(DriveConfig()) is None

    def test_local(self, tmp_path: Path) -> None:
        store = create_document_store(DriveConfig(type="local", local_path=str(tmp_path)))
        assert isinstance(store, LocalDocumentStore)

    def test_google_requires_root_folder(self) -> None:
        with pytest.raises(StorageMisconfiguredError, match="root folder"):
            create_document_store(DriveConfig(type="google", service_account_file="key.json"))

    def test_unknown_type(self) -> None:
        with pytest.raises(StorageMisconfiguredError):
            create_document_store(DriveConfig(type="dropbox"))

    def test_abstract(self) -> None:
        with pytest.raises(TypeError):
            DocumentStore()  # type: ignore[abstract]
