from __future__ import annotations
"""Durable blob storage.

``BlobStore`` is the small interface the proxy and migrator depend on.
``LocalBlobStore`` keeps objects on the media volume as
``<MEDIA_VOLUME>/<container>/<path>``; ``S3BlobStore`` (see
``s3_blob_store``) maps containers onto buckets.
"""

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from genvault.config import Settings
from genvault.errors import NotFoundError, StorageError
from genvault.services.content_address import durable_url

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


@dataclass
class BlobProperties:
    """Backing-store metadata for one object."""
    size: Optional[int]
    content_type: Optional[str] = None
    etag: Optional[str] = None
    last_modified: Optional[datetime] = None


class BlobStore(ABC):
    """Container/path addressed object storage."""

    def __init__(self, settings: Settings):
        self.settings = settings

    @abstractmethod
    async def exists(self, container: str, path: str) -> bool:
        ...

    @abstractmethod
    async def get_properties(self, container: str, path: str) -> BlobProperties:
        """Raises NotFoundError when the object is absent."""
        ...

    @abstractmethod
    def iter_bytes(self, container: str, path: str) -> AsyncIterator[bytes]:
        """Stream the object's body in chunks."""
        ...

    @abstractmethod
    async def upload(self, container: str, path: str, data: bytes, content_type: str) -> str:
        """Write (or overwrite) an object; returns its durable absolute URL."""
        ...

    def url_for(self, container: str, path: str) -> str:
        return durable_url(self.settings, container, path)


class LocalBlobStore(BlobStore):
    """Blob store backed by the media volume directory.

    The content type of each object is kept in a JSON sidecar under
    ``<root>/.meta``, and uploads are staged in ``<root>/.tmp``, so neither
    is addressable as a container object.
    """

    META_DIR = ".meta"
    TMP_DIR = ".tmp"

    def __init__(self, settings: Settings, root: str | None = None):
        super().__init__(settings)
        self.root = os.path.abspath(root or settings.MEDIA_VOLUME)

    def _full_path(self, container: str, path: str) -> str:
        container_root = os.path.join(self.root, container)
        full = os.path.abspath(os.path.join(container_root, path))
        if not full.startswith(container_root + os.sep):
            raise StorageError("Object path escapes its container")
        return full

    def _meta_path(self, container: str, path: str) -> str:
        return os.path.join(self.root, self.META_DIR, container, f"{path}.json")

    async def exists(self, container: str, path: str) -> bool:
        return await asyncio.to_thread(os.path.isfile, self._full_path(container, path))

    async def get_properties(self, container: str, path: str) -> BlobProperties:
        full = self._full_path(container, path)

        def _stat() -> BlobProperties:
            try:
                st = os.stat(full)
            except FileNotFoundError:
                raise NotFoundError("Content not found") from None
            content_type = None
            meta_path = self._meta_path(container, path)
            if os.path.isfile(meta_path):
                with open(meta_path, encoding="utf-8") as f:
                    content_type = json.load(f).get("content_type")
            return BlobProperties(
                size=st.st_size,
                content_type=content_type,
                etag=f'"{st.st_mtime_ns:x}-{st.st_size:x}"',
                last_modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
            )

        return await asyncio.to_thread(_stat)

    async def iter_bytes(self, container: str, path: str) -> AsyncIterator[bytes]:
        full = self._full_path(container, path)
        try:
            f = await asyncio.to_thread(open, full, "rb")
        except FileNotFoundError:
            raise NotFoundError("Content not found") from None
        try:
            while True:
                chunk = await asyncio.to_thread(f.read, CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
        finally:
            f.close()

    async def upload(self, container: str, path: str, data: bytes, content_type: str) -> str:
        full = self._full_path(container, path)
        meta_path = self._meta_path(container, path)
        tmp_dir = os.path.join(self.root, self.TMP_DIR)

        def _write() -> None:
            os.makedirs(os.path.dirname(full), exist_ok=True)
            os.makedirs(os.path.dirname(meta_path), exist_ok=True)
            os.makedirs(tmp_dir, exist_ok=True)
            # Write-then-rename so a reader never sees a partial object
            tmp = os.path.join(tmp_dir, f"{uuid4().hex}.part")
            try:
                with open(tmp, "wb") as f:
                    f.write(data)
                os.replace(tmp, full)
            finally:
                if os.path.exists(tmp):
                    os.remove(tmp)
            with open(meta_path, "w", encoding="utf-8") as f:
                json.dump({"content_type": content_type}, f)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            logger.error("Local blob write failed for %s/%s: %s", container, path, e)
            raise StorageError("Failed to write content to durable storage") from e
        logger.info("Stored %s/%s (%d bytes)", container, path, len(data))
        return self.url_for(container, path)


def build_blob_store(settings: Settings) -> BlobStore:
    """Instantiate the configured backend."""
    backend = settings.BLOB_BACKEND.lower()
    if backend == "s3":
        from genvault.services.s3_blob_store import S3BlobStore
        return S3BlobStore(settings)
    if backend == "local":
        return LocalBlobStore(settings)
    raise ValueError(f"Unknown BLOB_BACKEND: {settings.BLOB_BACKEND}")
