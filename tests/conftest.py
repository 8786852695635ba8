"""Shared test fixtures.

Puts ``backend/`` on ``sys.path`` so tests can import the ``genvault``
package regardless of how pytest is invoked.
"""
from __future__ import annotations

import os
import sys
import tempfile

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
BACKEND = os.path.join(ROOT, "backend")
if BACKEND not in sys.path:
    sys.path.insert(0, BACKEND)

# Module-level engine and media mount read these on first import
_SCRATCH = tempfile.mkdtemp(prefix="genvault-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_SCRATCH}/app.db")
os.environ.setdefault("MEDIA_VOLUME", os.path.join(_SCRATCH, "media"))

from genvault.config import Settings  # noqa: E402
from genvault.database import build_engine, init_db  # noqa: E402
from genvault.services.blob_store import LocalBlobStore  # noqa: E402
from genvault.services.history import HistoryReconciler  # noqa: E402
from genvault.services.history_store import SqlJobStore  # noqa: E402
from genvault.services.providers.sora_video import SoraClient  # noqa: E402

from fakes import PROVIDER_BASE, FakeSora  # noqa: E402


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        SORA_ENDPOINT=PROVIDER_BASE,
        SORA_API_KEY="test-key",
        BLOB_BACKEND="local",
        MEDIA_VOLUME=str(tmp_path / "media"),
        STORAGE_PUBLIC_BASE_URL="https://cdn.example.com/media",
        MAX_VIDEO_BYTES=1024 * 1024,
        MAX_IMAGE_BYTES=64 * 1024,
    )


@pytest_asyncio.fixture
async def job_store(settings):
    engine = build_engine(settings.DATABASE_URL)
    await init_db(engine)
    yield SqlJobStore(async_sessionmaker(engine, expire_on_commit=False))
    await engine.dispose()


@pytest.fixture
def reconciler(job_store, settings) -> HistoryReconciler:
    return HistoryReconciler(job_store, settings)


@pytest.fixture
def fake_sora() -> FakeSora:
    return FakeSora()


@pytest_asyncio.fixture
async def provider(fake_sora, settings):
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_sora.handle)) as http_client:
        yield SoraClient.from_settings(settings, http_client)


@pytest.fixture
def blob_store(settings) -> LocalBlobStore:
    return LocalBlobStore(settings)
