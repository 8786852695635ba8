from __future__ import annotations
"""Job status polling.

Polling is caller-driven: the UI decides how often to poll and when to
trigger migration after a terminal status.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from genvault.errors import ProviderRequestError, ProviderResponseError, ValidationError
from genvault.models.video_job import JobStatus, normalize_status
from genvault.services.history import HistoryReconciler
from genvault.services.providers.sora_video import SoraClient
from genvault.services.side_effects import SideEffectResult, fire_and_log

logger = logging.getLogger(__name__)


def generation_id_of(job: dict[str, Any]) -> Optional[str]:
    """First generation id of a provider job document, if any."""
    generations = job.get("generations") or []
    if generations and isinstance(generations[0], dict):
        return generations[0].get("id") or None
    return None


@dataclass
class PollResult:
    external_job_id: str
    status: Optional[JobStatus] = None
    gone: bool = False
    content_uri: Optional[str] = None
    thumbnail_uri: Optional[str] = None
    generation_id: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)
    history: Optional[SideEffectResult] = None


class JobStatusClient:
    """Fetches job detail and derives provider content URIs on completion."""

    def __init__(self, provider: SoraClient, reconciler: Optional[HistoryReconciler] = None):
        self.provider = provider
        self.reconciler = reconciler

    async def poll(self, external_job_id: str, user_id: Optional[str] = None) -> PollResult:
        if not external_job_id or not external_job_id.strip():
            raise ValidationError("jobId is required")

        try:
            data = await self.provider.get_job(external_job_id)
        except ProviderRequestError as e:
            if e.status == 404:
                # Provider garbage-collects old jobs
                logger.info("Job %s no longer exists at the provider", external_job_id)
                return PollResult(external_job_id=external_job_id, gone=True)
            raise

        status = normalize_status(data.get("status"))
        result = PollResult(external_job_id=external_job_id, status=status, raw=data)

        if status is JobStatus.COMPLETED:
            generation_id = generation_id_of(data)
            if not generation_id:
                raise ProviderResponseError(
                    f"Job {external_job_id} completed without a generation id", data
                )
            result.generation_id = generation_id
            result.content_uri = self.provider.content_url(generation_id, "video")
            result.thumbnail_uri = self.provider.content_url(generation_id, "thumbnail")

        if user_id and self.reconciler is not None:
            result.history = await fire_and_log(
                "history.record_status",
                lambda: self.reconciler.record_status(
                    user_id=user_id,
                    external_job_id=external_job_id,
                    status=status,
                    content_uri=result.content_uri,
                    thumbnail_uri=result.thumbnail_uri,
                    generation_id=result.generation_id,
                    failure_reason=data.get("failure_reason"),
                ),
                job=external_job_id,
            )

        logger.debug("Polled job %s: %s", external_job_id, status.value)
        return result

    async def cancel(self, external_job_id: str) -> bool:
        """Cancel/delete a provider job. Returns False if it was already gone."""
        if not external_job_id or not external_job_id.strip():
            raise ValidationError("jobId is required")
        return await self.provider.delete_job(external_job_id)

    async def list_jobs(self, limit: Optional[int] = None) -> list[dict[str, Any]]:
        """Recent provider jobs with normalized statuses."""
        data = await self.provider.list_jobs(limit=limit)
        jobs = data.get("data") if isinstance(data, dict) else data
        if not isinstance(jobs, list):
            raise ProviderResponseError("Provider job list has no data array", data)
        out = []
        for job in jobs:
            if not isinstance(job, dict):
                continue
            out.append({
                "externalJobId": job.get("id"),
                "status": normalize_status(job.get("status")).value,
                "prompt": job.get("prompt"),
                "generationId": generation_id_of(job),
                "createdAt": job.get("created_at"),
            })
        return out
