from __future__ import annotations
"""VideoJob ORM model: one document per external generation job.

Rows are partitioned by ``user_id``. ``external_job_id`` is unique by
contract, enforced by the upsert path in the job store rather than by the
table.
"""

import enum
import logging
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from genvault.database import Base

logger = logging.getLogger(__name__)


class JobStatus(str, enum.Enum):
    """Job lifecycle statuses (provider-reported, normalized)."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})

# A status write only applies when its rank is >= the stored one.
STATUS_RANK: dict[JobStatus, int] = {
    JobStatus.PENDING: 0,
    JobStatus.RUNNING: 1,
    JobStatus.FAILED: 2,
    JobStatus.CANCELLED: 2,
    JobStatus.COMPLETED: 3,
}

_PROVIDER_STATUS_MAP: dict[str, JobStatus] = {
    "pending": JobStatus.PENDING,
    "queued": JobStatus.PENDING,
    "preprocessing": JobStatus.RUNNING,
    "processing": JobStatus.RUNNING,
    "in_progress": JobStatus.RUNNING,
    "running": JobStatus.RUNNING,
    "completed": JobStatus.COMPLETED,
    "succeeded": JobStatus.COMPLETED,
    "success": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
    "error": JobStatus.FAILED,
    "cancelled": JobStatus.CANCELLED,
    "canceled": JobStatus.CANCELLED,
}


def normalize_status(raw: str | JobStatus | None) -> JobStatus:
    """Map provider status vocabulary onto :class:`JobStatus`.

    Unknown values are treated as still running; the provider is the
    authority and the caller keeps polling.
    """
    if isinstance(raw, JobStatus):
        return raw
    key = (raw or "").strip().lower()
    status = _PROVIDER_STATUS_MAP.get(key)
    if status is None:
        logger.warning("Unknown provider status %r, treating as running", raw)
        return JobStatus.RUNNING
    return status


class VideoJob(Base):
    """A user's generation job with its provider and durable content refs."""

    __tablename__ = "video_jobs"
    __table_args__ = {
        "mysql_charset": "utf8mb4",
        "mysql_collate": "utf8mb4_unicode_ci",
    }

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        default=lambda: f"video_{uuid.uuid4().hex}",
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    external_job_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    operation_type: Mapped[str] = mapped_column(String(20), nullable=False, default="generate")

    prompt: Mapped[str] = mapped_column(Text, nullable=False, default="")
    original_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    settings: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=JobStatus.PENDING.value, index=True
    )

    # Provider-ephemeral or durable-absolute URLs
    content_uri: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    thumbnail_uri: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    # Container-qualified durable-relative paths
    content_storage_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    thumbnail_storage_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    # "metadata" is reserved on declarative classes
    job_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column("metadata", JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
