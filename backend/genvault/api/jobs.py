from __future__ import annotations
"""Generation job endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from genvault.api.deps import get_current_user, get_migrator, get_status_client, get_submitter
from genvault.schemas.video_job import (
    CancelResponse,
    MigrateRequest,
    MigrateResponse,
    PollResponse,
    SubmitRequest,
    SubmitResponse,
)
from genvault.services.job_status import JobStatusClient
from genvault.services.job_submitter import JobSubmitter
from genvault.services.migrator import ContentMigrator

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def list_jobs(
    limit: Optional[int] = Query(None, ge=1, le=100),
    user_id: str = Depends(get_current_user),
    status_client: JobStatusClient = Depends(get_status_client),
):
    """Recent jobs as known to the provider."""
    return {"jobs": await status_client.list_jobs(limit=limit)}


@router.post("", response_model=SubmitResponse, response_model_by_alias=True)
async def submit_job(
    req: SubmitRequest,
    request: Request,
    user_id: str = Depends(get_current_user),
    submitter: JobSubmitter = Depends(get_submitter),
):
    result = await submitter.submit(
        user_id=user_id,
        prompt=req.prompt,
        settings=req.settings,
        original_prompt=req.original_prompt,
        user_agent=request.headers.get("user-agent"),
    )
    return SubmitResponse(
        external_job_id=result.external_job_id,
        echoed_settings=result.echoed_settings,
        history_saved=result.history.ok,
    )


@router.get("/{job_id}", response_model=PollResponse, response_model_by_alias=True)
async def poll_job(
    job_id: str,
    user_id: str = Depends(get_current_user),
    status_client: JobStatusClient = Depends(get_status_client),
):
    """Job status; a job the provider no longer knows is reported as gone."""
    result = await status_client.poll(job_id, user_id=user_id)
    return PollResponse(
        external_job_id=result.external_job_id,
        status=result.status,
        gone=result.gone,
        content_uri=result.content_uri,
        thumbnail_uri=result.thumbnail_uri,
        generation_id=result.generation_id,
    )


@router.delete("/{job_id}", response_model=CancelResponse, response_model_by_alias=True)
async def cancel_job(
    job_id: str,
    user_id: str = Depends(get_current_user),
    status_client: JobStatusClient = Depends(get_status_client),
):
    deleted = await status_client.cancel(job_id)
    return CancelResponse(
        external_job_id=job_id,
        gone=not deleted,
        message="Job deleted" if deleted else "Job already gone",
    )


@router.post("/{job_id}/migrate", response_model=MigrateResponse, response_model_by_alias=True)
async def migrate_job(
    job_id: str,
    req: MigrateRequest,
    user_id: str = Depends(get_current_user),
    migrator: ContentMigrator = Depends(get_migrator),
):
    """Copy the generated video (and thumbnail) into durable storage."""
    result = await migrator.migrate(
        user_id=user_id,
        external_job_id=job_id,
        content_uri=req.content_uri,
        thumbnail_uri=req.thumbnail_uri,
    )
    return MigrateResponse(
        durable_content_path=result.durable_content_path,
        durable_thumbnail_path=result.durable_thumbnail_path,
        content_url=result.content_url,
        thumbnail_url=result.thumbnail_url,
        size=result.size,
        history_saved=result.history is not None and result.history.ok,
    )
