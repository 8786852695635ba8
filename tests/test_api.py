"""End-to-end HTTP scenarios against the FastAPI app."""
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from genvault.api import deps
from genvault.config import get_settings
from genvault.main import app, settings as app_settings
from genvault.services.blob_store import LocalBlobStore

from fakes import VIDEO_BYTES

U1 = {"X-User-Id": "user-0001"}
U2 = {"X-User-Id": "user-0002"}


@pytest_asyncio.fixture
async def client(settings, provider, job_store, blob_store):
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[deps.get_provider] = lambda: provider
    app.dependency_overrides[deps.get_job_store] = lambda: job_store
    app.dependency_overrides[deps.get_blob_store] = lambda: blob_store
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _submit(client, prompt="a paper boat in the rain"):
    resp = await client.post(
        "/api/jobs",
        json={"prompt": prompt, "settings": {"height": 720, "width": 1280, "n_seconds": 8}},
        headers=U1,
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


@pytest.mark.asyncio
async def test_health(client):
    assert (await client.get("/health")).json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_submit_poll_migrate_history(client, fake_sora):
    body = await _submit(client)
    job_id = body["externalJobId"]
    assert body["historySaved"] is True
    assert body["echoedSettings"]["n_seconds"] == 8

    history = (await client.get("/api/history", headers=U1)).json()
    assert history["records"] == []
    assert history["stats"]["totalCount"] == 1
    assert history["stats"]["activeCount"] == 1

    poll = (await client.get(f"/api/jobs/{job_id}", headers=U1)).json()
    assert poll["status"] == "pending"
    assert poll["gone"] is False

    fake_sora.complete(job_id)
    poll = (await client.get(f"/api/jobs/{job_id}", headers=U1)).json()
    assert poll["status"] == "completed"
    assert poll["contentUri"].startswith("https://res.openai.azure.com/")

    resp = await client.post(
        f"/api/jobs/{job_id}/migrate", json={"contentUri": poll["contentUri"]}, headers=U1
    )
    assert resp.status_code == 200, resp.text
    migrated = resp.json()
    assert migrated["durableContentPath"] == f"user-videos/user-0001/{job_id}.mp4"
    assert migrated["durableThumbnailPath"] == f"user-videos/user-0001/{job_id}_thumbnail.jpg"
    assert migrated["historySaved"] is True

    history = (await client.get("/api/history", headers=U1)).json()
    assert history["pagination"] == {"limit": 50, "offset": 0, "total": 1, "hasMore": False}
    record = history["records"][0]
    assert record["status"] == "completed"
    assert record["migrated"] is True
    assert record["settings"]["durationSeconds"] == 8
    assert record["contentStoragePath"] == migrated["durableContentPath"]
    assert record["completedAt"] is not None

    video = await client.get(record["contentProxyUrl"])
    assert video.status_code == 200
    assert video.content == VIDEO_BYTES
    assert video.headers["content-type"] == "video/mp4"
    assert video.headers["cache-control"] == "private, max-age=86400"
    assert "etag" in video.headers

    download = await client.get(f"/api/history/{record['id']}/download", headers=U1)
    assert download.status_code == 200
    assert download.headers["content-disposition"] == f'attachment; filename="video_{record["id"]}.mp4"'
    assert download.content == VIDEO_BYTES


@pytest.mark.asyncio
async def test_gone_job_is_200(client):
    resp = await client.get("/api/jobs/task_unknown", headers=U1)
    assert resp.status_code == 200
    assert resp.json()["gone"] is True
    assert resp.json()["status"] is None


@pytest.mark.asyncio
async def test_cancel_job(client):
    job_id = (await _submit(client))["externalJobId"]
    first = (await client.delete(f"/api/jobs/{job_id}", headers=U1)).json()
    second = (await client.delete(f"/api/jobs/{job_id}", headers=U1)).json()
    assert first["gone"] is False
    assert second["gone"] is True


@pytest.mark.asyncio
async def test_list_provider_jobs(client):
    job_id = (await _submit(client))["externalJobId"]
    jobs = (await client.get("/api/jobs", params={"limit": 10}, headers=U1)).json()["jobs"]
    assert jobs[0]["externalJobId"] == job_id
    assert jobs[0]["status"] == "pending"


@pytest.mark.asyncio
async def test_identity_required(client):
    resp = await client.get("/api/history")
    assert resp.status_code == 401
    assert resp.json()["error"]["reason"] == "unauthenticated"


@pytest.mark.asyncio
async def test_empty_prompt_is_400(client, fake_sora):
    resp = await client.post("/api/jobs", json={"prompt": "  "}, headers=U1)
    assert resp.status_code == 400
    assert resp.json()["error"]["reason"] == "invalid_request"
    assert fake_sora.requests == []


@pytest.mark.asyncio
async def test_provider_status_passed_through(client, fake_sora):
    fake_sora.fail_create = 429
    resp = await client.post("/api/jobs", json={"prompt": "waves"}, headers=U1)
    assert resp.status_code == 429
    error = resp.json()["error"]
    assert error["reason"] == "provider_error"
    assert error["detail"] == {"error": {"message": "rejected"}}


@pytest.mark.asyncio
async def test_delete_requires_ownership(client, fake_sora):
    job_id = (await _submit(client))["externalJobId"]
    fake_sora.complete(job_id)
    content_uri = (await client.get(f"/api/jobs/{job_id}", headers=U1)).json()["contentUri"]
    await client.post(f"/api/jobs/{job_id}/migrate", json={"contentUri": content_uri}, headers=U1)
    record_id = (await client.get("/api/history", headers=U1)).json()["records"][0]["id"]

    assert (await client.get(f"/api/history/{record_id}", headers=U2)).status_code == 404
    resp = await client.delete(f"/api/history/{record_id}", headers=U2)
    assert resp.status_code == 404
    assert resp.json()["error"]["reason"] == "not_found"

    resp = await client.delete(f"/api/history/{record_id}", headers=U1)
    assert resp.status_code == 200
    assert resp.json() == {
        "deletedId": record_id,
        "externalJobId": job_id,
        "prompt": "a paper boat in the rain",
    }
    assert (await client.get(f"/api/history/{record_id}", headers=U1)).status_code == 404


@pytest.mark.asyncio
async def test_content_proxy_errors(client, blob_store, settings):
    await blob_store.upload("user-images", "u1/huge.png", b"x" * (settings.MAX_IMAGE_BYTES + 1), "image/png")

    assert (await client.get("/api/content", params={"ref": "user-images/u1/huge.png"})).status_code == 413
    assert (await client.get("/api/content", params={"ref": "user-images/u1/none.png"})).status_code == 404
    assert (await client.get("/api/content", params={"ref": "../etc/passwd"})).status_code == 400
    assert (await client.get("/api/content", params={"ref": "https://evil.example.com/x"})).status_code == 400
    assert (await client.get("/api/content")).status_code == 400


@pytest.mark.asyncio
async def test_content_path_alias(client, blob_store):
    await blob_store.upload("user-images", "u1/p.png", b"png-bytes", "image/png")
    resp = await client.get("/api/content", params={"path": "user-images/user-images/u1/p.png"})
    assert resp.status_code == 200
    assert resp.content == b"png-bytes"
    assert resp.headers["content-type"] == "image/png"
    # ``ref`` values are taken literally
    resp = await client.get("/api/content", params={"ref": "user-images/user-images/u1/p.png"})
    assert resp.status_code == 404


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method, url, kwargs",
    [
        ("POST", "/api/jobs", {"json": {}}),
        ("POST", "/api/jobs", {"json": {"prompt": "x" * 8001}}),
        ("POST", "/api/jobs", {"content": b"not json"}),
        ("GET", "/api/history", {"params": {"limit": "abc"}}),
        ("POST", "/api/jobs/task_1/migrate", {"json": {"contentUri": ""}}),
    ],
)
async def test_malformed_requests_are_400(client, fake_sora, method, url, kwargs):
    headers = {**U1, "content-type": "application/json"}
    resp = await client.request(method, url, headers=headers, **kwargs)
    assert resp.status_code == 400
    error = resp.json()["error"]
    assert error["reason"] == "invalid_request"
    assert isinstance(error["detail"], list) and error["detail"]
    assert fake_sora.requests == []


@pytest.mark.asyncio
async def test_media_mount_serves_objects_only(client):
    store = LocalBlobStore(app_settings)
    await store.upload("user-images", "mount/p.png", b"png-bytes", "image/png")

    resp = await client.get("/media/user-images/mount/p.png")
    assert resp.status_code == 200
    assert resp.content == b"png-bytes"
    assert (await client.get("/media/.meta/user-images/mount/p.png.json")).status_code == 404
    assert (await client.get("/media/user-images/mount/p.png.meta.json")).status_code == 404
