"""Object storage for survey photos.

This module provides:
- Abstract interface for object storage
- LocalFSStorage for development/testing
- S3Storage for production (MinIO, AWS, any S3-compatible service)

Objects are addressed by key and published as ``/{bucket}/{key}`` URLs,
which ``extract_object_name`` turns back into keys.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from paddysync.core.errors import (
    ObjectNotFoundError,
    ObjectStorageUnavailableError,
    PermanentUploadError,
    RateLimitError,
    StorageMisconfiguredError,
    TransientNetworkError,
)

if TYPE_CHECKING:
    from typing import Any

    from paddysync.core.config import StorageConfig
    from paddysync.core.errors import PaddySyncError

logger = logging.getLogger(__name__)

RATE_LIMIT_CODES = {
    "SlowDown",
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "TooManyRequests",
}
MISCONFIGURED_CODES = {
    "NoSuchBucket",
    "AccessDenied",
    "InvalidAccessKeyId",
    "SignatureDoesNotMatch",
    "InvalidBucketName",
}


def extract_object_name(url: str) -> str | None:
    """Extract the object key from a storage URL.

    Both ``/{bucket}/{key}`` paths and absolute URLs are accepted; the
    first path segment is the bucket and is dropped.

    Returns:
        Object key, or None if the URL has no key part.
    """
    path = urlparse(url).path if "://" in url else url
    if not path.startswith("/"):
        return path or None
    parts = path.lstrip("/").split("/", 1)
    if len(parts) < 2 or not parts[1]:
        return None
    return parts[1]


class ObjectStorage(ABC):
    """Abstract interface for photo object storage."""

    @property
    @abstractmethod
    def location(self) -> str:
        """Return a human-readable description of where objects are stored."""

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        """Store an object.

        Args:
            key: Object key, e.g. ``survey-paddy/kandal/.../photo.jpg``.
            data: Object content.
            content_type: MIME type recorded with the object.

        Returns:
            URL of the stored object.
        """

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Retrieve an object.

        Raises:
            ObjectNotFoundError: If the object doesn't exist.
        """

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check if an object exists."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete an object.

        Returns:
            True if the object was deleted, False if it didn't exist.
        """


class LocalFSStorage(ObjectStorage):
    """Local filesystem storage for development and testing."""

    def __init__(self, base_path: Path | str, bucket: str = "local") -> None:
        """Initialize local storage.

        Args:
            base_path: Base directory for objects.
            bucket: Name used as the first URL segment.
        """
        self._base_path = Path(base_path).resolve()
        self._base_path.mkdir(parents=True, exist_ok=True)
        self._bucket = bucket

    @property
    def location(self) -> str:
        """Return the local storage path."""
        return f"Local filesystem: {self._base_path}"

    def _object_path(self, key: str) -> Path:
        path = (self._base_path / key).resolve()
        if not path.is_relative_to(self._base_path):
            raise PermanentUploadError("Object key escapes storage root", {"key": key})
        return path

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        """Store an object."""
        path = self._object_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return f"/{self._bucket}/{key}"

    def get(self, key: str) -> bytes:
        """Retrieve an object."""
        path = self._object_path(key)
        if not path.is_file():
            raise ObjectNotFoundError(f"Object not found: {key}")
        return path.read_bytes()

    def exists(self, key: str) -> bool:
        """Check if an object exists."""
        return self._object_path(key).is_file()

    def delete(self, key: str) -> bool:
        """Delete an object."""
        path = self._object_path(key)
        if path.is_file():
            path.unlink()
            return True
        return False


def _translate_boto_error(error: Exception, key: str) -> PaddySyncError:
    """Map a boto3/botocore exception to the paddysync error taxonomy."""
    from botocore.exceptions import (
        ClientError,
        ConnectTimeoutError,
        EndpointConnectionError,
        NoCredentialsError,
        ReadTimeoutError,
    )

    context = {"key": key}
    if isinstance(error, NoCredentialsError):
        return StorageMisconfiguredError("Object storage credentials missing", context)
    if isinstance(error, (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError)):
        return TransientNetworkError(f"Object storage network error: {error}", context)
    if isinstance(error, ClientError):
        code = error.response.get("Error", {}).get("Code", "")
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        if code in ("NoSuchKey", "404", "NotFound"):
            return ObjectNotFoundError(f"Object not found: {key}", context)
        if code in RATE_LIMIT_CODES or status == 429:
            return RateLimitError(f"Object storage rate limit: {code}", context)
        if code in MISCONFIGURED_CODES:
            return StorageMisconfiguredError(f"Object storage misconfigured: {code}", context)
        if status >= 500:
            return ObjectStorageUnavailableError(f"Object storage error: {code}", context)
        return PermanentUploadError(f"Object storage rejected request: {code}", context)
    return ObjectStorageUnavailableError(f"Object storage error: {error}", context)


class S3Storage(ObjectStorage):
    """S3-compatible storage for production (MinIO, AWS, etc.)."""

    def __init__(
        self,
        bucket: str,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        region: str = "us-east-1",
    ) -> None:
        """Initialize S3 storage.

        Args:
            bucket: S3 bucket name.
            endpoint_url: Custom endpoint URL (for MinIO, etc.).
            access_key: Access key ID.
            secret_key: Secret access key.
            region: Region (default: us-east-1).
        """
        import boto3
        from botocore.config import Config

        self._bucket = bucket
        self._endpoint_url = endpoint_url
        self._client: Any = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
            config=Config(connect_timeout=10, read_timeout=60, retries={"max_attempts": 0}),
        )

    @property
    def location(self) -> str:
        """Return the S3 bucket location."""
        if self._endpoint_url:
            return f"S3: {self._endpoint_url}/{self._bucket}"
        return f"S3: s3://{self._bucket}"

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        """Store an object."""
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            raise _translate_boto_error(e, key) from e
        return f"/{self._bucket}/{key}"

    def get(self, key: str) -> bytes:
        """Retrieve an object."""
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
            body: bytes = response["Body"].read()
            return body
        except (BotoCoreError, ClientError) as e:
            raise _translate_boto_error(e, key) from e

    def exists(self, key: str) -> bool:
        """Check if an object exists."""
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            self._client.head_object(Bucket=self._bucket, Key=key)
            return True
        except (BotoCoreError, ClientError) as e:
            error = _translate_boto_error(e, key)
            if isinstance(error, ObjectNotFoundError):
                return False
            raise error from e

    def delete(self, key: str) -> bool:
        """Delete an object."""
        from botocore.exceptions import BotoCoreError, ClientError

        if not self.exists(key):
            return False
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise _translate_boto_error(e, key) from e
        return True


def create_storage(config: StorageConfig) -> ObjectStorage | None:
    """Factory function to create object storage from configuration.

    Args:
        config: Storage configuration.

    Returns:
        Configured ObjectStorage, or None when storage is disabled.

    Raises:
        StorageMisconfiguredError: If the type is unknown or S3 has no bucket.
    """
    if config.type in ("none", ""):
        logger.info("Object storage disabled")
        return None

    if config.type == "local":
        return LocalFSStorage(config.local_path)

    if config.type == "s3":
        if not config.bucket:
            raise StorageMisconfiguredError("S3 storage requires a bucket")
        return S3Storage(
            bucket=config.bucket,
            endpoint_url=config.endpoint_url,
            access_key=config.access_key,
            secret_key=config.secret_key,
            region=config.region or "us-east-1",
        )

    raise StorageMisconfiguredError(f"Unknown storage type: {config.type}")
