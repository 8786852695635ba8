from __future__ import annotations
"""Job submission: create a provider job, then record its history."""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from genvault.errors import ProviderResponseError, ValidationError
from genvault.schemas.video_job import JobSettings
from genvault.services.history import HistoryReconciler
from genvault.services.providers.sora_video import SoraClient
from genvault.services.side_effects import SideEffectResult, fire_and_log

logger = logging.getLogger(__name__)


@dataclass
class SubmitResult:
    external_job_id: str
    echoed_settings: dict[str, Any]
    raw: dict[str, Any]
    history: SideEffectResult


class JobSubmitter:
    """Creates generation jobs; the history write is best-effort."""

    def __init__(self, provider: SoraClient, reconciler: HistoryReconciler):
        self.provider = provider
        self.reconciler = reconciler

    async def submit(
        self,
        *,
        user_id: str,
        prompt: str,
        settings: Optional[JobSettings] = None,
        original_prompt: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> SubmitResult:
        if not prompt or not prompt.strip():
            raise ValidationError("prompt is required")
        settings = settings or JobSettings()

        data = await self.provider.create_job(
            prompt=prompt,
            height=settings.height,
            width=settings.width,
            n_seconds=settings.duration_seconds,
            n_variants=settings.variant_count,
            model=settings.model,
        )
        external_job_id = data.get("id")
        if not external_job_id:
            raise ProviderResponseError("Provider returned no job id", data)

        echoed = {
            "height": data.get("height", settings.height),
            "width": data.get("width", settings.width),
            "n_seconds": data.get("n_seconds", settings.duration_seconds),
            "n_variants": data.get("n_variants", settings.variant_count),
            "model": data.get("model", settings.model),
        }

        history = await fire_and_log(
            "history.record_submission",
            lambda: self.reconciler.record_submission(
                user_id=user_id,
                external_job_id=external_job_id,
                prompt=prompt,
                original_prompt=original_prompt,
                settings=settings,
                metadata={
                    "userAgent": user_agent,
                    "providerStatus": data.get("status"),
                },
            ),
            job=external_job_id,
        )
        logger.info(
            "Submitted job %s for user %s (history_saved=%s)",
            external_job_id, user_id[:8], history.ok,
        )
        return SubmitResult(
            external_job_id=external_job_id,
            echoed_settings=echoed,
            raw=data,
            history=history,
        )
