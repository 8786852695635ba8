"""Migration of provider content into durable storage."""
import os

import pytest

from genvault.errors import PayloadTooLarge, ValidationError
from genvault.models.video_job import JobStatus
from genvault.services.history import HistoryReconciler
from genvault.services.migrator import ContentMigrator

from fakes import THUMBNAIL_BYTES, VIDEO_BYTES, BrokenJobStore


@pytest.fixture
def migrator(provider, blob_store, reconciler, settings):
    return ContentMigrator(provider, blob_store, reconciler, settings)


async def _completed_job(provider, fake_sora):
    job = await provider.create_job(prompt="a fox", height=1080, width=1080, n_seconds=5, n_variants=1)
    gen_id = fake_sora.complete(job["id"])
    return job["id"], fake_sora.content_url(gen_id, "video")


@pytest.mark.asyncio
async def test_migrate_video_and_derived_thumbnail(migrator, provider, fake_sora, blob_store, reconciler, settings):
    job_id, content_uri = await _completed_job(provider, fake_sora)

    result = await migrator.migrate(user_id="u1", external_job_id=job_id, content_uri=content_uri)

    assert result.durable_content_path == f"user-videos/u1/{job_id}.mp4"
    assert result.durable_thumbnail_path == f"user-videos/u1/{job_id}_thumbnail.jpg"
    assert result.content_url == f"https://cdn.example.com/media/user-videos/u1/{job_id}.mp4"
    assert result.size == len(VIDEO_BYTES)
    assert result.thumbnail.ok
    assert result.history.ok

    chunks = [c async for c in blob_store.iter_bytes("user-videos", f"u1/{job_id}.mp4")]
    assert b"".join(chunks) == VIDEO_BYTES
    props = await blob_store.get_properties("user-videos", f"u1/{job_id}_thumbnail.jpg")
    assert props.size == len(THUMBNAIL_BYTES)
    assert props.content_type == "image/jpeg"

    record = await reconciler.store.get_by_external_id("u1", job_id)
    assert record.status is JobStatus.COMPLETED
    assert record.content_storage_path == result.durable_content_path
    assert record.thumbnail_storage_path == result.durable_thumbnail_path
    assert record.completed_at is not None
    assert record.metadata["contentSize"] == len(VIDEO_BYTES)


@pytest.mark.asyncio
async def test_explicit_thumbnail_uri(migrator, provider, fake_sora):
    job_id, content_uri = await _completed_job(provider, fake_sora)
    thumbnail_uri = content_uri.replace("/content/video", "/content/thumbnail")
    before = len(fake_sora.requests)

    result = await migrator.migrate(
        user_id="u1", external_job_id=job_id, content_uri=content_uri, thumbnail_uri=thumbnail_uri
    )
    assert result.durable_thumbnail_path is not None
    # video + thumbnail downloads only, no job lookup
    assert len(fake_sora.requests) - before == 2


@pytest.mark.asyncio
async def test_thumbnail_failure_is_not_fatal(migrator, provider, fake_sora, reconciler):
    job_id, content_uri = await _completed_job(provider, fake_sora)
    fake_sora.thumbnail = None

    result = await migrator.migrate(user_id="u1", external_job_id=job_id, content_uri=content_uri)
    assert result.thumbnail.ok is False
    assert result.durable_thumbnail_path is None
    assert result.thumbnail_url is None

    record = await reconciler.store.get_by_external_id("u1", job_id)
    assert record.status is JobStatus.COMPLETED
    assert record.thumbnail_storage_path is None


@pytest.mark.asyncio
async def test_oversized_video_stores_nothing(migrator, provider, fake_sora, reconciler, settings):
    job_id, content_uri = await _completed_job(provider, fake_sora)
    fake_sora.video = b"x" * (settings.MAX_VIDEO_BYTES + 1)

    with pytest.raises(PayloadTooLarge):
        await migrator.migrate(user_id="u1", external_job_id=job_id, content_uri=content_uri)
    assert not os.path.exists(os.path.join(settings.MEDIA_VOLUME, "user-videos", "u1"))
    assert await reconciler.store.count("u1") == 0


@pytest.mark.asyncio
async def test_retry_overwrites_same_objects(migrator, provider, fake_sora, reconciler, settings):
    job_id, content_uri = await _completed_job(provider, fake_sora)
    first = await migrator.migrate(user_id="u1", external_job_id=job_id, content_uri=content_uri)
    second = await migrator.migrate(user_id="u1", external_job_id=job_id, content_uri=content_uri)

    assert first.durable_content_path == second.durable_content_path
    stored = sorted(os.listdir(os.path.join(settings.MEDIA_VOLUME, "user-videos", "u1")))
    assert stored == [f"{job_id}.mp4", f"{job_id}_thumbnail.jpg"]
    assert await reconciler.store.count("u1") == 1


@pytest.mark.asyncio
async def test_history_failure_after_upload_is_reported(provider, fake_sora, blob_store, settings):
    migrator = ContentMigrator(provider, blob_store, HistoryReconciler(BrokenJobStore(), settings), settings)
    job_id, content_uri = await _completed_job(provider, fake_sora)

    result = await migrator.migrate(user_id="u1", external_job_id=job_id, content_uri=content_uri)
    assert result.history.ok is False
    assert await blob_store.exists("user-videos", f"u1/{job_id}.mp4")


@pytest.mark.asyncio
@pytest.mark.parametrize("user_id, job_id", [("u1", "../x"), ("u1", ".."), ("a/b", "task_1"), ("", "task_1")])
async def test_unsafe_path_segments_rejected(migrator, fake_sora, user_id, job_id):
    with pytest.raises(ValidationError):
        await migrator.migrate(user_id=user_id, external_job_id=job_id, content_uri=fake_sora.content_url("g"))
    assert fake_sora.requests == []


@pytest.mark.asyncio
async def test_foreign_content_uri_rejected(migrator, fake_sora):
    with pytest.raises(ValidationError):
        await migrator.migrate(user_id="u1", external_job_id="task_1", content_uri="https://evil.example.com/v.mp4")
    assert fake_sora.requests == []
