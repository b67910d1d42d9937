"""API tests for the local upload queue endpoints.

The application lifespan is not run; tests wire the coordinator fixture
into app.state the same way the lifespan does.
"""

import pytest
import pytest_asyncio
from conftest import make_image
from httpx import ASGITransport, AsyncClient

from fieldsync.app import create_app
from fieldsync.models.upload_record import UploadRecord


@pytest_asyncio.fixture
async def api_client(coordinator, session_factory):
    app = create_app()
    app.state.coordinator = coordinator
    app.state.session_factory = session_factory

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.mark.asyncio
async def test_capture_offline_then_sync(api_client, coordinator, backend):
    """Capture while offline, reconnect through the API, and list the result."""
    response = await api_client.put("/api/connectivity", json={"connected": False})
    assert response.status_code == 200
    assert response.json() == {"connected": False}

    response = await api_client.post(
        "/api/uploads",
        data={"ticket_id": "42", "stage": "pre", "latitude": "1.0", "longitude": "2.0"},
        files={"file": ("photo.png", make_image(fmt="PNG"), "image/png")},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["uploaded"] is False
    assert body["record"]["status"] == "pending"
    assert body["record"]["stage"] == "pre"
    assert body["record"]["uploaded_by"] == "7"
    record_id = body["record"]["id"]
    assert backend.upload_count == 0

    response = await api_client.get("/api/uploads", params={"status": "pending"})
    assert response.json()["total"] == 1

    # Reconnecting schedules a background sync run
    response = await api_client.put("/api/connectivity", json={"connected": True})
    assert response.json() == {"connected": True}
    await coordinator.drain()

    response = await api_client.post("/api/uploads/sync")
    assert response.status_code == 200
    summary = response.json()
    assert summary["already_running"] is False
    assert summary["attempted"] == 0

    response = await api_client.get("/api/uploads", params={"ticket_id": 42})
    uploads = response.json()["uploads"]
    assert [u["id"] for u in uploads] == [record_id]
    assert uploads[0]["status"] == "synced"
    assert backend.upload_count == 1


@pytest.mark.asyncio
async def test_capture_online_uploads(api_client, backend, jpeg_bytes):
    response = await api_client.post(
        "/api/uploads",
        data={"ticket_id": "42", "uploaded_by": "15"},
        files={"file": ("photo.jpg", jpeg_bytes, "image/jpeg")},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["uploaded"] is True
    assert body["record"]["status"] == "synced"
    assert body["record"]["stage"] is None
    assert body["record"]["uploaded_by"] == "15"
    assert backend.upload_count == 1


@pytest.mark.asyncio
async def test_capture_rejects_invalid_files(api_client):
    response = await api_client.post(
        "/api/uploads",
        data={"ticket_id": "42"},
        files={"file": ("photo.jpg", b"", "image/jpeg")},
    )
    assert response.status_code == 422

    response = await api_client.post(
        "/api/uploads",
        data={"ticket_id": "42"},
        files={"file": ("photo.jpg", b"not an image", "image/jpeg")},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_retry_single_upload(api_client, store, backend):
    record = await store.add(
        UploadRecord(ticket_id=42, local_artifact_ref="42/missing.jpg", uploaded_by="7")
    )

    response = await api_client.post(f"/api/uploads/{record.id}/retry")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "failed"
    assert body["attempts"] == 1
    assert backend.upload_count == 0


@pytest.mark.asyncio
async def test_retry_unknown_upload_returns_404(api_client):
    response = await api_client.post("/api/uploads/00000000-0000-0000-0000-000000000000/retry")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_cleanup_synced(api_client, jpeg_bytes):
    await api_client.post(
        "/api/uploads",
        data={"ticket_id": "1"},
        files={"file": ("photo.jpg", jpeg_bytes, "image/jpeg")},
    )

    first = await api_client.delete("/api/uploads/synced")
    second = await api_client.delete("/api/uploads/synced")

    assert first.json() == {"removed": 1}
    assert second.json() == {"removed": 0}


@pytest.mark.asyncio
async def test_health(api_client):
    response = await api_client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["connected"] is True
    assert body["syncing"] is False
    assert body["queued"] == 0


@pytest.mark.asyncio
async def test_discard_upload(api_client, store, connectivity, jpeg_bytes):
    await connectivity.set_connected(False)
    response = await api_client.post(
        "/api/uploads",
        data={"ticket_id": "42"},
        files={"file": ("photo.jpg", jpeg_bytes, "image/jpeg")},
    )
    record_id = response.json()["record"]["id"]

    first = await api_client.delete(f"/api/uploads/{record_id}")
    second = await api_client.delete(f"/api/uploads/{record_id}")

    assert first.status_code == 204
    assert second.status_code == 404
    assert len(store) == 0
