from __future__ import annotations
"""Per-user generation history endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from genvault.api.content import content_response
from genvault.api.deps import get_content_proxy, get_current_user, get_reconciler
from genvault.errors import NotFoundError
from genvault.schemas.video_job import DeleteResponse, HistoryPage, JobRecordRead
from genvault.services.content_proxy import ContentProxy
from genvault.services.history import HistoryReconciler

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=HistoryPage, response_model_by_alias=True)
async def list_history(
    limit: Optional[int] = Query(None),
    offset: int = Query(0),
    user_id: str = Depends(get_current_user),
    reconciler: HistoryReconciler = Depends(get_reconciler),
):
    """Completed videos newest first, with stats over all of the user's jobs."""
    return await reconciler.list_history(user_id, limit=limit, offset=offset)


@router.get("/{record_id}", response_model=JobRecordRead, response_model_by_alias=True)
async def get_history_record(
    record_id: str,
    user_id: str = Depends(get_current_user),
    reconciler: HistoryReconciler = Depends(get_reconciler),
):
    return await reconciler.get(user_id, record_id)


@router.get("/{record_id}/download")
async def download_history_video(
    record_id: str,
    user_id: str = Depends(get_current_user),
    reconciler: HistoryReconciler = Depends(get_reconciler),
    proxy: ContentProxy = Depends(get_content_proxy),
):
    record = await reconciler.get(user_id, record_id)
    ref = record.content_storage_path or record.content_uri
    if not ref:
        raise NotFoundError("Video has no content yet")
    content = await proxy.fetch(ref)
    logger.info("Download of %s for user %s (%d bytes)", record_id, user_id[:8], content.content_length)
    return content_response(
        content,
        headers={"Content-Disposition": f'attachment; filename="video_{record.id}.mp4"'},
    )


@router.delete("/{record_id}", response_model=DeleteResponse, response_model_by_alias=True)
async def delete_history_record(
    record_id: str,
    user_id: str = Depends(get_current_user),
    reconciler: HistoryReconciler = Depends(get_reconciler),
):
    """Delete one of the caller's records; stored media is kept."""
    return await reconciler.delete(user_id, record_id)
