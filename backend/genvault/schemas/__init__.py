"""Pydantic v2 schemas package."""

from genvault.schemas.video_job import (
    CancelResponse,
    DeleteResponse,
    HistoryPage,
    HistoryStats,
    JobRecord,
    JobRecordRead,
    JobSettings,
    MigrateRequest,
    MigrateResponse,
    Pagination,
    PollResponse,
    SubmitRequest,
    SubmitResponse,
)

__all__ = [
    "CancelResponse",
    "DeleteResponse",
    "HistoryPage",
    "HistoryStats",
    "JobRecord",
    "JobRecordRead",
    "JobSettings",
    "MigrateRequest",
    "MigrateResponse",
    "Pagination",
    "PollResponse",
    "SubmitRequest",
    "SubmitResponse",
]
