from __future__ import annotations
"""FastAPI dependency providers for services and caller identity."""

from functools import lru_cache

import httpx
from fastapi import Depends, Request

from genvault.config import Settings, get_settings
from genvault.database import async_session_factory
from genvault.errors import AuthError
from genvault.services.blob_store import BlobStore, build_blob_store
from genvault.services.content_proxy import ContentProxy
from genvault.services.history import HistoryReconciler
from genvault.services.history_store import JobStore, SqlJobStore
from genvault.services.job_status import JobStatusClient
from genvault.services.job_submitter import JobSubmitter
from genvault.services.migrator import ContentMigrator
from genvault.services.providers.sora_video import SoraClient


def get_http_client(request: Request) -> httpx.AsyncClient:
    """The process-wide client created in the app lifespan."""
    return request.app.state.http_client


def get_provider(
    http_client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> SoraClient:
    return SoraClient.from_settings(settings, http_client)


@lru_cache
def get_blob_store() -> BlobStore:
    return build_blob_store(get_settings())


@lru_cache
def get_job_store() -> JobStore:
    return SqlJobStore(async_session_factory)


def get_reconciler(
    store: JobStore = Depends(get_job_store),
    settings: Settings = Depends(get_settings),
) -> HistoryReconciler:
    return HistoryReconciler(store, settings)


def get_submitter(
    provider: SoraClient = Depends(get_provider),
    reconciler: HistoryReconciler = Depends(get_reconciler),
) -> JobSubmitter:
    return JobSubmitter(provider, reconciler)


def get_status_client(
    provider: SoraClient = Depends(get_provider),
    reconciler: HistoryReconciler = Depends(get_reconciler),
) -> JobStatusClient:
    return JobStatusClient(provider, reconciler)


def get_migrator(
    provider: SoraClient = Depends(get_provider),
    blob_store: BlobStore = Depends(get_blob_store),
    reconciler: HistoryReconciler = Depends(get_reconciler),
    settings: Settings = Depends(get_settings),
) -> ContentMigrator:
    return ContentMigrator(provider, blob_store, reconciler, settings)


def get_content_proxy(
    blob_store: BlobStore = Depends(get_blob_store),
    provider: SoraClient = Depends(get_provider),
    settings: Settings = Depends(get_settings),
) -> ContentProxy:
    return ContentProxy(blob_store, provider, settings)


def get_current_user(request: Request, settings: Settings = Depends(get_settings)) -> str:
    """Caller identity as established by the upstream auth layer."""
    user_id = (request.headers.get(settings.USER_ID_HEADER) or "").strip()
    if not user_id:
        raise AuthError("Authentication required")
    return user_id
