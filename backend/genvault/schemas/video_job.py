from __future__ import annotations
"""Pydantic v2 schemas for job records and the job/history API.

Wire format is camelCase; Python attributes are snake_case.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from genvault.models.video_job import JobStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class JobSettings(CamelModel):
    """Generation settings; immutable once the record exists."""

    height: int = Field(1080, ge=1)
    width: int = Field(1080, ge=1)
    duration_seconds: int = Field(
        5,
        ge=1,
        validation_alias=AliasChoices("durationSeconds", "duration_seconds", "n_seconds"),
    )
    variant_count: int = Field(
        1,
        ge=1,
        validation_alias=AliasChoices("variantCount", "variant_count", "n_variants"),
    )
    model: str = "sora"


class JobRecord(CamelModel):
    """One job's history document."""

    id: str
    user_id: str
    external_job_id: str
    operation_type: str = "generate"
    prompt: str = ""
    original_prompt: Optional[str] = None
    settings: Optional[JobSettings] = None
    status: JobStatus = JobStatus.PENDING
    content_uri: Optional[str] = None
    content_storage_path: Optional[str] = None
    thumbnail_uri: Optional[str] = None
    thumbnail_storage_path: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None


class JobRecordRead(JobRecord):
    """A record as shown to its owner, with unified proxy URLs attached."""

    content_proxy_url: Optional[str] = None
    thumbnail_proxy_url: Optional[str] = None
    migrated: bool = False


# ---------------------------------------------------------------------------
# Jobs API
# ---------------------------------------------------------------------------

class SubmitRequest(CamelModel):
    prompt: str = Field(..., max_length=8000)
    original_prompt: Optional[str] = None
    settings: JobSettings = Field(default_factory=JobSettings)


class SubmitResponse(CamelModel):
    external_job_id: str
    echoed_settings: dict[str, Any]
    history_saved: bool


class PollResponse(CamelModel):
    external_job_id: str
    status: Optional[JobStatus] = None
    gone: bool = False
    content_uri: Optional[str] = None
    thumbnail_uri: Optional[str] = None
    generation_id: Optional[str] = None


class CancelResponse(CamelModel):
    external_job_id: str
    gone: bool
    message: str


class MigrateRequest(CamelModel):
    content_uri: str = Field(..., min_length=1)
    thumbnail_uri: Optional[str] = None


class MigrateResponse(CamelModel):
    durable_content_path: str
    durable_thumbnail_path: Optional[str] = None
    content_url: str
    thumbnail_url: Optional[str] = None
    size: int
    history_saved: bool


# ---------------------------------------------------------------------------
# History API
# ---------------------------------------------------------------------------

class HistoryStats(CamelModel):
    total_count: int = 0
    completed_count: int = 0
    active_count: int = 0
    failed_count: int = 0
    cancelled_count: int = 0
    migrated_count: int = 0
    unmigrated_count: int = 0


class Pagination(CamelModel):
    limit: int
    offset: int
    total: int
    has_more: bool


class HistoryPage(CamelModel):
    records: list[JobRecordRead]
    stats: HistoryStats
    pagination: Pagination


class DeleteResponse(CamelModel):
    deleted_id: str
    external_job_id: str
    prompt: str
