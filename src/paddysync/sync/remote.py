"""Path-based access to the remote document store.

``RemoteFolders`` turns slash-separated folder paths into folder IDs,
creating missing folders on the way, and uploads or downloads files by
name within those folders. Folder IDs are kept in a TTL cache keyed by
``{parent_id}/{name}`` and every remote call is retried with backoff.
Concurrent lookups of the same folder are serialized, so a folder is
created at most once even when several records sync at the same time.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

from paddysync.core.cache import TTLCache
from paddysync.core.retry import (
    DEFAULT_BASE_DELAY,
    DEFAULT_MAX_DELAY,
    DEFAULT_MAX_RETRIES,
    retry_with_backoff,
)
from paddysync.server.drive import guess_mime_type

if TYPE_CHECKING:
    from paddysync.server.drive import DocumentStore, RemoteFile

logger = logging.getLogger(__name__)

T = TypeVar("T")


def split_path(path: str) -> list[str]:
    return [part.strip() for part in path.split("/") if part.strip()]


class RemoteFolders:
    """Async, cached, retrying wrapper around a DocumentStore."""

    def __init__(
        self,
        store: DocumentStore,
        cache_size: int = 1000,
        cache_ttl: float = 300.0,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the wrapper.

        Args:
            store: Underlying document store.
            cache_size: Capacity of the folder ID cache.
            cache_ttl: Lifetime of a cached folder ID in seconds.
            max_retries: Retries per remote call.
            base_delay: First backoff delay in seconds.
            max_delay: Upper bound for a backoff delay in seconds.
            sleep: Awaitable sleep, injectable for tests.
        """
        self._store = store
        self._folders: TTLCache[str, str] = TTLCache(cache_size, cache_ttl)
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._sleep = sleep

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def folder_cache(self) -> TTLCache[str, str]:
        return self._folders

    def clear_cache(self) -> None:
        self._folders.clear()

    async def _call(self, operation: str, func: Callable[..., T], *args: object) -> T:
        async def attempt() -> T:
            return await asyncio.to_thread(func, *args)

        return await retry_with_backoff(
            attempt,
            max_retries=self._max_retries,
            base_delay=self._base_delay,
            max_delay=self._max_delay,
            operation_name=operation,
            sleep=self._sleep,
        )

    async def _folder(self, name: str, parent_id: str, create: bool) -> str | None:
        cache_key = f"{parent_id}/{name}"
        cached = self._folders.get(cache_key)
        if cached is not None:
            return cached

        # At most one lookup per key in flight
        lock = self._locks.setdefault(cache_key, asyncio.Lock())
        self._lock_users[cache_key] = self._lock_users.get(cache_key, 0) + 1
        try:
            async with lock:
                return await self._lookup_folder(cache_key, name, parent_id, create)
        finally:
            self._lock_users[cache_key] -= 1
            if not self._lock_users[cache_key]:
                del self._lock_users[cache_key]
                del self._locks[cache_key]

    async def _lookup_folder(
        self, cache_key: str, name: str, parent_id: str, create: bool
    ) -> str | None:
        cached = self._folders.get(cache_key)
        if cached is not None:
            return cached

        folder_id = await self._call(
            f"find folder {name}", self._store.find_folder, name, parent_id
        )
        if folder_id is None:
            if not create:
                return None
            folder_id = await self._call(
                f"create folder {name}", self._store.create_folder, name, parent_id
            )
            logger.info("Created remote folder %s", name)

        self._folders.set(cache_key, folder_id)
        return folder_id

    async def ensure_folder_path(self, path: str) -> str:
        """Resolve a folder path, creating missing folders.

        Args:
            path: Slash-separated path relative to the store root.

        Returns:
            ID of the deepest folder.
        """
        folder_id = self._store.root_id
        for name in split_path(path):
            resolved = await self._folder(name, folder_id, create=True)
            assert resolved is not None
            folder_id = resolved
        return folder_id

    async def find_folder_path(self, path: str) -> str | None:
        """Resolve a folder path without creating anything."""
        folder_id: str | None = self._store.root_id
        for name in split_path(path):
            folder_id = await self._folder(name, folder_id, create=False)
            if folder_id is None:
                return None
        return folder_id

    def folder_link(self, folder_id: str) -> str:
        return self._store.folder_link(folder_id)

    async def upload_file(
        self,
        name: str,
        data: bytes,
        folder_path: str,
        mime_type: str | None = None,
    ) -> RemoteFile:
        """Upload a new file into a folder path."""
        folder_id = await self.ensure_folder_path(folder_path)
        return await self._call(
            f"upload {name}",
            self._store.create_file,
            name,
            folder_id,
            data,
            mime_type or guess_mime_type(name),
        )

    async def replace_file(
        self,
        name: str,
        data: bytes,
        folder_path: str,
        mime_type: str | None = None,
    ) -> RemoteFile:
        """Overwrite a file by name, creating it if it does not exist."""
        folder_id = await self.ensure_folder_path(folder_path)
        content_type = mime_type or guess_mime_type(name)
        file_id = await self._call(f"find {name}", self._store.find_file, name, folder_id)
        if file_id is None:
            return await self._call(
                f"upload {name}", self._store.create_file, name, folder_id, data, content_type
            )
        return await self._call(
            f"update {name}", self._store.update_file, file_id, data, content_type
        )

    async def download_file(self, name: str, folder_path: str) -> bytes | None:
        """Download a file by name.

        Returns:
            File content, or None if the folder or file does not exist.
        """
        folder_id = await self.find_folder_path(folder_path)
        if folder_id is None:
            return None
        file_id = await self._call(f"find {name}", self._store.find_file, name, folder_id)
        if file_id is None:
            return None
        return await self._call(f"download {name}", self._store.download, file_id)
