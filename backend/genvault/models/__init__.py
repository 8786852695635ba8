"""ORM model package; importing it registers all models with Base.metadata."""

from genvault.models.video_job import (
    JobStatus,
    STATUS_RANK,
    TERMINAL_STATUSES,
    VideoJob,
    normalize_status,
)

__all__ = [
    "JobStatus",
    "STATUS_RANK",
    "TERMINAL_STATUSES",
    "VideoJob",
    "normalize_status",
]
