from __future__ import annotations
"""Job history persistence.

One document per external job, partitioned by owning user. The only write
path is :meth:`JobStore.upsert`, keyed by ``external_job_id``, which merges
the supplied non-null fields over the stored record (see ``merge_record``).
Submitter, status poller and migrator each write their own fields, so their
writes compose in any arrival order.
"""

import asyncio
import logging
import uuid
import weakref
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from genvault.errors import NotFoundError, StorageError
from genvault.models.video_job import STATUS_RANK, JobStatus, VideoJob, normalize_status
from genvault.schemas.video_job import JobRecord, JobSettings

logger = logging.getLogger(__name__)

_MERGED_FIELDS = (
    "prompt",
    "original_prompt",
    "content_uri",
    "content_storage_path",
    "thumbnail_uri",
    "thumbnail_storage_path",
)


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_record_id() -> str:
    return f"video_{uuid.uuid4().hex}"


@dataclass
class JobUpdate:
    """A partial write to one job record. ``None`` means "not supplied"."""
    user_id: str
    external_job_id: str
    prompt: Optional[str] = None
    original_prompt: Optional[str] = None
    settings: Optional[JobSettings] = None
    status: Optional[JobStatus] = None
    content_uri: Optional[str] = None
    content_storage_path: Optional[str] = None
    thumbnail_uri: Optional[str] = None
    thumbnail_storage_path: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    metadata: dict[str, Any] = field(default_factory=dict)


def has_content(record: JobRecord) -> bool:
    return bool(record.content_storage_path or record.content_uri)


def is_visible(record: JobRecord) -> bool:
    """Whether a record belongs in the default history view."""
    return record.status is JobStatus.COMPLETED and has_content(record)


def merge_record(
    existing: Optional[JobRecord],
    update: JobUpdate,
    *,
    now: datetime,
    new_id: Callable[[], str] = new_record_id,
) -> JobRecord:
    """Merge ``update`` over ``existing`` (or create a new record).

    - non-null scalar fields win; absent fields keep their stored value
    - ``settings`` are only taken when the record has none yet
    - ``metadata`` merges key-wise
    - ``status`` never moves to a lower rank
    - ``completed`` requires content; without it the record stays ``running``
    - ``completed_at`` is set once, when a completed record gains its
      durable storage path
    """
    if existing is None:
        data: dict[str, Any] = {
            "id": new_id(),
            "user_id": update.user_id,
            "external_job_id": update.external_job_id,
            "status": JobStatus.PENDING,
            "metadata": {},
            "created_at": update.created_at or now,
            "updated_at": now,
        }
    else:
        if existing.user_id != update.user_id:
            # Job ids are unique across users; never reveal or touch another user's record
            raise NotFoundError("Job not found")
        data = existing.model_dump()
        data["status"] = existing.status

    for name in _MERGED_FIELDS:
        value = getattr(update, name)
        if value is not None:
            data[name] = value

    if update.settings is not None and not data.get("settings"):
        data["settings"] = update.settings.model_dump()

    if update.metadata:
        merged_meta = dict(data.get("metadata") or {})
        merged_meta.update({k: v for k, v in update.metadata.items() if v is not None})
        data["metadata"] = merged_meta

    current = normalize_status(data["status"])
    if update.status is not None:
        incoming = normalize_status(update.status)
        if STATUS_RANK[incoming] >= STATUS_RANK[current]:
            current = incoming
        else:
            logger.debug(
                "Ignoring stale status %s for job %s (stored %s)",
                incoming.value, update.external_job_id, current.value,
            )
    if current is JobStatus.COMPLETED and not (data.get("content_storage_path") or data.get("content_uri")):
        logger.warning(
            "Job %s reported completed without resolvable content, keeping it running",
            update.external_job_id,
        )
        current = JobStatus.RUNNING
    data["status"] = current

    if (
        current is JobStatus.COMPLETED
        and data.get("content_storage_path")
        and not data.get("completed_at")
    ):
        data["completed_at"] = update.completed_at or now

    data["updated_at"] = now
    return JobRecord.model_validate(data)


class JobStore(ABC):
    """Document store of job records, partitioned by ``user_id``."""

    @abstractmethod
    async def upsert(self, update: JobUpdate) -> JobRecord:
        """Atomically merge ``update`` into the record for its external job id."""
        ...

    @abstractmethod
    async def get(self, user_id: str, record_id: str) -> Optional[JobRecord]:
        ...

    @abstractmethod
    async def get_by_external_id(self, user_id: str, external_job_id: str) -> Optional[JobRecord]:
        ...

    @abstractmethod
    async def list(
        self,
        user_id: str,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
        visible_only: bool = False,
    ) -> list[JobRecord]:
        """Records newest first (``created_at`` DESC, then ``id`` DESC)."""
        ...

    @abstractmethod
    async def count(self, user_id: str, *, visible_only: bool = False) -> int:
        ...

    @abstractmethod
    async def summarize(self, user_id: str) -> dict[tuple[JobStatus, bool], int]:
        """Record counts keyed by ``(status, has durable storage path)``."""
        ...

    @abstractmethod
    async def delete(self, user_id: str, record_id: str) -> Optional[JobRecord]:
        """Hard-delete an owned record; returns it, or None when absent."""
        ...


# ---------------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------------

def _to_record(row: VideoJob) -> JobRecord:
    return JobRecord(
        id=row.id,
        user_id=row.user_id,
        external_job_id=row.external_job_id,
        operation_type=row.operation_type,
        prompt=row.prompt or "",
        original_prompt=row.original_prompt,
        settings=JobSettings.model_validate(row.settings) if row.settings else None,
        status=normalize_status(row.status),
        content_uri=row.content_uri,
        content_storage_path=row.content_storage_path,
        thumbnail_uri=row.thumbnail_uri,
        thumbnail_storage_path=row.thumbnail_storage_path,
        metadata=dict(row.job_metadata or {}),
        created_at=row.created_at,
        updated_at=row.updated_at,
        completed_at=row.completed_at,
    )


def _apply(row: VideoJob, record: JobRecord) -> None:
    row.prompt = record.prompt
    row.original_prompt = record.original_prompt
    row.settings = record.settings.model_dump() if record.settings else None
    row.status = record.status.value
    row.content_uri = record.content_uri
    row.content_storage_path = record.content_storage_path
    row.thumbnail_uri = record.thumbnail_uri
    row.thumbnail_storage_path = record.thumbnail_storage_path
    row.job_metadata = dict(record.metadata)
    row.updated_at = record.updated_at
    row.completed_at = record.completed_at


def _present(column):
    return and_(column.is_not(None), column != "")


_VISIBLE = and_(
    VideoJob.status == JobStatus.COMPLETED.value,
    or_(_present(VideoJob.content_storage_path), _present(VideoJob.content_uri)),
)


class SqlJobStore(JobStore):
    """Job store on the ``video_jobs`` table.

    Upserts for one external job id are serialized in-process by a per-key
    lock and across processes by ``SELECT ... FOR UPDATE`` in a single
    transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def upsert(self, update: JobUpdate) -> JobRecord:
        lock = self._lock_for(update.external_job_id)
        async with lock:
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        result = await session.execute(
                            select(VideoJob)
                            .where(VideoJob.external_job_id == update.external_job_id)
                            .with_for_update()
                        )
                        row = result.scalars().first()
                        existing = _to_record(row) if row is not None else None
                        merged = merge_record(existing, update, now=utcnow())
                        if row is None:
                            row = VideoJob(
                                id=merged.id,
                                user_id=merged.user_id,
                                external_job_id=merged.external_job_id,
                                operation_type=merged.operation_type,
                                created_at=merged.created_at,
                            )
                            session.add(row)
                        _apply(row, merged)
            except SQLAlchemyError as e:
                logger.error("Upsert failed for job %s: %s", update.external_job_id, e)
                raise StorageError("Failed to save job history") from e

        logger.info(
            "Upserted job %s (record=%s status=%s)",
            merged.external_job_id, merged.id, merged.status.value,
        )
        return merged

    async def _one(self, *conditions) -> Optional[JobRecord]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(VideoJob).where(*conditions))
                row = result.scalars().first()
                return _to_record(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StorageError("Failed to read job history") from e

    async def get(self, user_id: str, record_id: str) -> Optional[JobRecord]:
        return await self._one(VideoJob.id == record_id, VideoJob.user_id == user_id)

    async def get_by_external_id(self, user_id: str, external_job_id: str) -> Optional[JobRecord]:
        return await self._one(
            VideoJob.external_job_id == external_job_id, VideoJob.user_id == user_id
        )

    async def list(
        self,
        user_id: str,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
        visible_only: bool = False,
    ) -> list[JobRecord]:
        query = select(VideoJob).where(VideoJob.user_id == user_id)
        if visible_only:
            query = query.where(_VISIBLE)
        query = query.order_by(VideoJob.created_at.desc(), VideoJob.id.desc()).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return [_to_record(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StorageError("Failed to read job history") from e

    async def count(self, user_id: str, *, visible_only: bool = False) -> int:
        query = select(func.count()).select_from(VideoJob).where(VideoJob.user_id == user_id)
        if visible_only:
            query = query.where(_VISIBLE)
        try:
            async with self._session_factory() as session:
                return int((await session.execute(query)).scalar_one())
        except SQLAlchemyError as e:
            raise StorageError("Failed to read job history") from e

    async def summarize(self, user_id: str) -> dict[tuple[JobStatus, bool], int]:
        migrated = case((_present(VideoJob.content_storage_path), 1), else_=0)
        query = (
            select(VideoJob.status, migrated.label("migrated"), func.count())
            .where(VideoJob.user_id == user_id)
            .group_by(VideoJob.status, migrated)
        )
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(query)).all()
        except SQLAlchemyError as e:
            raise StorageError("Failed to read job history") from e
        summary: dict[tuple[JobStatus, bool], int] = {}
        for status, is_migrated, n in rows:
            key = (normalize_status(status), bool(is_migrated))
            summary[key] = summary.get(key, 0) + int(n)
        return summary

    async def delete(self, user_id: str, record_id: str) -> Optional[JobRecord]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        select(VideoJob).where(
                            VideoJob.id == record_id, VideoJob.user_id == user_id
                        )
                    )
                    row = result.scalars().first()
                    if row is None:
                        return None
                    record = _to_record(row)
                    await session.delete(row)
        except SQLAlchemyError as e:
            logger.error("Delete failed for record %s: %s", record_id, e)
            raise StorageError("Failed to delete job history") from e
        logger.info("Deleted record %s (job %s)", record.id, record.external_job_id)
        return record
