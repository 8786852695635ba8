from __future__ import annotations
"""S3-backed durable blob store.

Containers map onto buckets; boto3 calls are blocking and run in a worker
thread.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from genvault.config import Settings
from genvault.errors import NotFoundError, StorageError
from genvault.services.blob_store import CHUNK_SIZE, BlobProperties, BlobStore

logger = logging.getLogger(__name__)

_MISSING_CODES = ("404", "NoSuchKey", "NotFound", "NoSuchBucket")


def _is_missing(e: ClientError) -> bool:
    code = e.response.get("Error", {}).get("Code", "")
    return code in _MISSING_CODES


class S3BlobStore(BlobStore):
    """Blob store on S3 (or an S3-compatible endpoint)."""

    def __init__(self, settings: Settings, client: Any = None):
        super().__init__(settings)
        self._s3 = client or boto3.client(
            "s3",
            region_name=settings.S3_REGION,
            endpoint_url=settings.S3_ENDPOINT_URL or None,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
        )

    async def _head(self, container: str, path: str) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(self._s3.head_object, Bucket=container, Key=path)
        except ClientError as e:
            if _is_missing(e):
                raise NotFoundError("Content not found") from None
            raise StorageError("Failed to read durable storage metadata") from e
        except BotoCoreError as e:
            raise StorageError("Failed to read durable storage metadata") from e

    async def exists(self, container: str, path: str) -> bool:
        try:
            await self._head(container, path)
        except NotFoundError:
            return False
        return True

    async def get_properties(self, container: str, path: str) -> BlobProperties:
        head = await self._head(container, path)
        return BlobProperties(
            size=head.get("ContentLength"),
            content_type=head.get("ContentType"),
            etag=head.get("ETag"),
            last_modified=head.get("LastModified"),
        )

    async def iter_bytes(self, container: str, path: str) -> AsyncIterator[bytes]:
        try:
            obj = await asyncio.to_thread(self._s3.get_object, Bucket=container, Key=path)
        except ClientError as e:
            if _is_missing(e):
                raise NotFoundError("Content not found") from None
            raise StorageError("Failed to read durable storage") from e
        except BotoCoreError as e:
            raise StorageError("Failed to read durable storage") from e
        body = obj["Body"]
        try:
            while True:
                try:
                    chunk = await asyncio.to_thread(body.read, CHUNK_SIZE)
                except (ClientError, BotoCoreError) as e:
                    logger.error("S3 read failed mid-stream for %s/%s: %s", container, path, e)
                    raise StorageError("Failed to read durable storage") from e
                if not chunk:
                    break
                yield chunk
        finally:
            body.close()

    async def upload(self, container: str, path: str, data: bytes, content_type: str) -> str:
        try:
            await asyncio.to_thread(
                self._s3.put_object,
                Bucket=container,
                Key=path,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("S3 upload failed for %s/%s: %s", container, path, e)
            raise StorageError("Failed to write content to durable storage") from e
        logger.info("Stored s3://%s/%s (%d bytes)", container, path, len(data))
        return self.url_for(container, path)
