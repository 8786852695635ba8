from __future__ import annotations
"""History reconciliation. Merges submit/poll/migrate events into one record
per job and derives the user-facing history view.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from genvault.config import Settings
from genvault.errors import NotFoundError, ValidationError
from genvault.models.video_job import JobStatus
from genvault.schemas.video_job import (
    DeleteResponse,
    HistoryPage,
    HistoryStats,
    JobRecord,
    JobRecordRead,
    JobSettings,
    Pagination,
)
from genvault.services.content_address import proxy_url_for
from genvault.services.history_store import JobStore, JobUpdate

logger = logging.getLogger(__name__)


class HistoryReconciler:
    """Single writer-facing entry point to the job store.

    Each writer touches only its own fields:

    - submission: prompt, settings, initial ``pending`` status, request metadata
    - status poll: status, provider content URIs, generation id
    - migration: storage paths, ``completed`` status (and thus ``completed_at``)
    """

    def __init__(self, store: JobStore, settings: Settings):
        self.store = store
        self.settings = settings

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    async def record_submission(
        self,
        *,
        user_id: str,
        external_job_id: str,
        prompt: str,
        settings: JobSettings,
        original_prompt: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> JobRecord:
        return await self.store.upsert(JobUpdate(
            user_id=user_id,
            external_job_id=external_job_id,
            prompt=prompt,
            original_prompt=original_prompt or prompt,
            settings=settings,
            status=JobStatus.PENDING,
            metadata=metadata or {},
        ))

    async def record_status(
        self,
        *,
        user_id: str,
        external_job_id: str,
        status: JobStatus,
        content_uri: Optional[str] = None,
        thumbnail_uri: Optional[str] = None,
        generation_id: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> JobRecord:
        return await self.store.upsert(JobUpdate(
            user_id=user_id,
            external_job_id=external_job_id,
            status=status,
            content_uri=content_uri,
            thumbnail_uri=thumbnail_uri,
            metadata={"generationId": generation_id, "failureReason": failure_reason},
        ))

    async def record_migration(
        self,
        *,
        user_id: str,
        external_job_id: str,
        content_storage_path: str,
        thumbnail_storage_path: Optional[str] = None,
        content_url: Optional[str] = None,
        thumbnail_url: Optional[str] = None,
        size: Optional[int] = None,
        completed_at: Optional[datetime] = None,
    ) -> JobRecord:
        return await self.store.upsert(JobUpdate(
            user_id=user_id,
            external_job_id=external_job_id,
            status=JobStatus.COMPLETED,
            content_storage_path=content_storage_path,
            thumbnail_storage_path=thumbnail_storage_path,
            completed_at=completed_at,
            metadata={
                "durableContentUrl": content_url,
                "durableThumbnailUrl": thumbnail_url,
                "contentSize": size,
            },
        ))

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    def present(self, record: JobRecord) -> JobRecordRead:
        """Attach unified proxy URLs; the durable path wins over the provider URI."""
        return JobRecordRead(
            **record.model_dump(),
            content_proxy_url=proxy_url_for(
                record.content_storage_path or record.content_uri, self.settings
            ),
            thumbnail_proxy_url=proxy_url_for(
                record.thumbnail_storage_path or record.thumbnail_uri, self.settings
            ),
            migrated=bool(record.content_storage_path),
        )

    async def get(self, user_id: str, record_id: str) -> JobRecordRead:
        """Direct lookup; includes records hidden from the default view."""
        record = await self.store.get(user_id, record_id)
        if record is None:
            raise NotFoundError("Video history record not found")
        return self.present(record)

    async def stats(self, user_id: str) -> HistoryStats:
        """Aggregates over every record the user owns, not just the visible page."""
        stats = HistoryStats()
        for (status, migrated), n in (await self.store.summarize(user_id)).items():
            stats.total_count += n
            if status is JobStatus.COMPLETED:
                stats.completed_count += n
                if migrated:
                    stats.migrated_count += n
                else:
                    stats.unmigrated_count += n
            elif status in (JobStatus.PENDING, JobStatus.RUNNING):
                stats.active_count += n
            elif status is JobStatus.FAILED:
                stats.failed_count += n
            elif status is JobStatus.CANCELLED:
                stats.cancelled_count += n
        return stats

    async def list_history(
        self,
        user_id: str,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> HistoryPage:
        """Completed, resolvable records newest first, plus unfiltered stats."""
        if offset < 0:
            raise ValidationError("offset must be >= 0")
        if not limit or limit < 1:
            limit = self.settings.HISTORY_DEFAULT_LIMIT
        limit = min(limit, self.settings.HISTORY_MAX_LIMIT)

        records = await self.store.list(user_id, limit=limit, offset=offset, visible_only=True)
        total = await self.store.count(user_id, visible_only=True)
        stats = await self.stats(user_id)

        logger.debug(
            "History for %s: %d of %d visible (offset=%d)",
            user_id[:8], len(records), total, offset,
        )
        return HistoryPage(
            records=[self.present(r) for r in records],
            stats=stats,
            pagination=Pagination(
                limit=limit,
                offset=offset,
                total=total,
                has_more=offset + len(records) < total,
            ),
        )

    async def delete(self, user_id: str, record_id: str) -> DeleteResponse:
        """Hard-delete an owned record. Durable blobs are left in place.

        A record owned by someone else is reported exactly like a missing one.
        """
        record = await self.store.delete(user_id, record_id)
        if record is None:
            raise NotFoundError("Video history record not found")
        return DeleteResponse(
            deleted_id=record.id,
            external_job_id=record.external_job_id,
            prompt=record.prompt,
        )
