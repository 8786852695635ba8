from __future__ import annotations
"""Unified content proxy.

Any reference form (provider URL, durable URL, durable path, legacy bare
name) is resolved and served with the backing store's content type and a
cache policy that depends on where the bytes came from.
"""

import logging
import mimetypes
import posixpath
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from genvault.config import Settings
from genvault.errors import NotFoundError, PayloadTooLarge
from genvault.services.blob_store import BlobStore
from genvault.services.content_address import VIDEO_EXTENSIONS, ContentAddress, resolve
from genvault.services.providers.sora_video import SoraClient

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    ".mp4": "video/mp4",
    ".m4v": "video/x-m4v",
    ".mov": "video/quicktime",
    ".webm": "video/webm",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


def guess_content_type(path: str) -> str:
    ext = posixpath.splitext(path or "")[1].lower()
    if ext in CONTENT_TYPES:
        return CONTENT_TYPES[ext]
    guessed, _ = mimetypes.guess_type(path or "")
    return guessed or "application/octet-stream"


@dataclass
class ProxiedContent:
    body: bytes
    content_type: str
    cache_control: str
    etag: Optional[str] = None
    last_modified: Optional[datetime] = None

    @property
    def content_length(self) -> int:
        return len(self.body)


class ContentProxy:
    def __init__(self, blob_store: BlobStore, provider: SoraClient, settings: Settings):
        self.blob_store = blob_store
        self.provider = provider
        self.settings = settings

    def _ceiling(self, content_type: str, extension: str) -> int:
        if content_type.startswith("video/") or extension in VIDEO_EXTENSIONS:
            return self.settings.MAX_VIDEO_BYTES
        return self.settings.MAX_IMAGE_BYTES

    async def fetch(self, ref: str) -> ProxiedContent:
        address = resolve(ref, self.settings)
        if address.is_durable:
            return await self._fetch_durable(address)
        return await self._fetch_provider(address)

    async def _fetch_durable(self, address: ContentAddress) -> ProxiedContent:
        container, path = address.container, address.path
        if not await self.blob_store.exists(container, path):
            logger.info("Content not found: %s", address.qualified_path)
            raise NotFoundError("Content not found")

        props = await self.blob_store.get_properties(container, path)
        content_type = props.content_type or guess_content_type(path)
        limit = self._ceiling(content_type, address.extension)
        if props.size is not None and props.size > limit:
            raise PayloadTooLarge("Content exceeds the size limit", limit=limit, size=props.size)

        chunks: list[bytes] = []
        total = 0
        async for chunk in self.blob_store.iter_bytes(container, path):
            total += len(chunk)
            if total > limit:
                raise PayloadTooLarge("Content exceeds the size limit", limit=limit)
            chunks.append(chunk)

        return ProxiedContent(
            body=b"".join(chunks),
            content_type=content_type,
            cache_control=f"private, max-age={self.settings.DURABLE_CACHE_SECONDS}",
            etag=props.etag,
            last_modified=props.last_modified,
        )

    async def _fetch_provider(self, address: ContentAddress) -> ProxiedContent:
        thumbnail = address.media == "thumbnail"
        limit = self.settings.MAX_IMAGE_BYTES if thumbnail else self.settings.MAX_VIDEO_BYTES
        fetched = await self.provider.fetch_content(address.url, max_bytes=limit)
        return ProxiedContent(
            body=fetched.body,
            content_type=fetched.content_type or ("image/jpeg" if thumbnail else "video/mp4"),
            cache_control=f"private, max-age={self.settings.PROVIDER_CACHE_SECONDS}",
        )
