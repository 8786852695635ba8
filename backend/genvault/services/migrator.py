from __future__ import annotations
"""Content migration: copy generated media from the provider to durable storage.

Object layout is deterministic so a retried migration overwrites rather than
duplicates::

    user-videos/<user_id>/<external_job_id>.mp4
    user-videos/<user_id>/<external_job_id>_thumbnail.jpg
"""

import logging
from dataclasses import dataclass
from typing import Optional

from genvault.config import Settings
from genvault.errors import ValidationError
from genvault.services.blob_store import BlobStore
from genvault.services.history import HistoryReconciler
from genvault.services.job_status import generation_id_of
from genvault.services.providers.sora_video import FetchedContent, SoraClient
from genvault.services.side_effects import SideEffectResult, fire_and_log

logger = logging.getLogger(__name__)


def _check_segment(name: str, value: str) -> str:
    value = (value or "").strip()
    if not value or value in (".", "..") or "/" in value or "\\" in value or "\x00" in value:
        raise ValidationError(f"Invalid {name}")
    return value


@dataclass
class MigrationResult:
    durable_content_path: str
    content_url: str
    size: int
    durable_thumbnail_path: Optional[str] = None
    thumbnail_url: Optional[str] = None
    thumbnail: Optional[SideEffectResult] = None
    history: Optional[SideEffectResult] = None


class ContentMigrator:
    def __init__(
        self,
        provider: SoraClient,
        blob_store: BlobStore,
        reconciler: HistoryReconciler,
        settings: Settings,
    ):
        self.provider = provider
        self.blob_store = blob_store
        self.reconciler = reconciler
        self.settings = settings

    async def _fetch_thumbnail(
        self, external_job_id: str, thumbnail_uri: Optional[str]
    ) -> Optional[FetchedContent]:
        if not thumbnail_uri:
            job = await self.provider.get_job(external_job_id)
            generation_id = generation_id_of(job)
            if not generation_id:
                logger.warning("No generation id for job %s, skipping thumbnail", external_job_id)
                return None
            thumbnail_uri = self.provider.content_url(generation_id, "thumbnail")
        return await self.provider.fetch_content(
            thumbnail_uri, max_bytes=self.settings.MAX_IMAGE_BYTES
        )

    async def migrate(
        self,
        *,
        user_id: str,
        external_job_id: str,
        content_uri: str,
        thumbnail_uri: Optional[str] = None,
    ) -> MigrationResult:
        """Fetch, upload, then record. Video failures are fatal; thumbnail
        failures only cost the thumbnail.
        """
        user_id = _check_segment("user id", user_id)
        external_job_id = _check_segment("job id", external_job_id)
        if not content_uri:
            raise ValidationError("contentUri is required")

        video = await self.provider.fetch_content(
            content_uri, max_bytes=self.settings.MAX_VIDEO_BYTES
        )
        thumb = await fire_and_log(
            "migration.thumbnail",
            lambda: self._fetch_thumbnail(external_job_id, thumbnail_uri),
            job=external_job_id,
        )
        thumbnail = thumb.value

        container = self.settings.VIDEO_CONTAINER
        video_path = f"{user_id}/{external_job_id}.mp4"
        content_url = await self.blob_store.upload(container, video_path, video.body, "video/mp4")
        result = MigrationResult(
            durable_content_path=f"{container}/{video_path}",
            content_url=content_url,
            size=video.size,
            thumbnail=thumb,
        )

        if thumbnail is not None:
            thumb_path = f"{user_id}/{external_job_id}_thumbnail.jpg"
            result.thumbnail_url = await self.blob_store.upload(
                container, thumb_path, thumbnail.body, thumbnail.content_type or "image/jpeg"
            )
            result.durable_thumbnail_path = f"{container}/{thumb_path}"

        logger.info(
            "Migrated job %s (%d bytes, thumbnail=%s)",
            external_job_id, video.size, result.durable_thumbnail_path is not None,
        )

        result.history = await fire_and_log(
            "history.record_migration",
            lambda: self.reconciler.record_migration(
                user_id=user_id,
                external_job_id=external_job_id,
                content_storage_path=result.durable_content_path,
                thumbnail_storage_path=result.durable_thumbnail_path,
                content_url=result.content_url,
                thumbnail_url=result.thumbnail_url,
                size=result.size,
            ),
            job=external_job_id,
        )
        return result
