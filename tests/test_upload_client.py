"""Tests for EmployeeUploadsClient and UploadExecutor.

Covers:
- Multipart field naming and file part
- Error classification (2xx success, 429/5xx transient, other 4xx permanent)
- Network failures become UploadNetworkError
- Executor reports outcomes instead of raising
"""

import httpx
import pytest
from conftest import UPLOAD_URL, form_field

from fieldsync.models.upload_record import MediaStage
from fieldsync.services.exceptions import (
    PermanentError,
    TransientError,
    UploadNetworkError,
    UploadRateLimitError,
    UploadRejectedError,
    UploadServerError,
)
from fieldsync.services.uploads.client import EmployeeUploadsClient
from fieldsync.services.uploads.executor import UploadExecutor, UploadOutcome, UploadRequest


@pytest.fixture
def client(http_client) -> EmployeeUploadsClient:
    return EmployeeUploadsClient(UPLOAD_URL, timeout=5.0, http_client=http_client)


def make_request(jpeg_bytes: bytes, **overrides) -> UploadRequest:
    values = {
        "image": jpeg_bytes,
        "ticket_id": 42,
        "stage": MediaStage.PRE,
        "latitude": 1.0,
        "longitude": 2.0,
        "uploaded_by": "7",
    }
    values.update(overrides)
    return UploadRequest(**values)


@pytest.mark.asyncio
async def test_upload_sends_multipart_form(client, backend, jpeg_bytes):
    status = await client.upload(
        image=jpeg_bytes,
        ticket_id=42,
        media_stage="pre",
        latitude=1.0,
        longitude=2,
        uploaded_by="7",
    )

    assert status == 201
    assert backend.upload_count == 1
    request = backend.requests[0]
    assert request.method == "POST"
    assert str(request.url) == UPLOAD_URL
    assert request.headers["Accept"] == "application/json"
    assert request.headers["Content-Type"].startswith("multipart/form-data")

    assert form_field(request, "ticket_id") == "42"
    assert form_field(request, "media_stage") == "pre"
    assert form_field(request, "latitude") == "1.0"
    assert form_field(request, "longitude") == "2.0"
    assert form_field(request, "uploaded_by") == "7"
    assert form_field(request, "offline_employee_id") is None

    assert b'name="file"; filename="upload.jpg"' in request.content
    assert b"Content-Type: image/jpeg" in request.content
    assert jpeg_bytes in request.content


@pytest.mark.asyncio
async def test_upload_includes_offline_employee_id(client, backend, jpeg_bytes):
    await client.upload(
        image=jpeg_bytes,
        ticket_id=42,
        media_stage="",
        latitude=0.0,
        longitude=0.0,
        uploaded_by="7",
        offline_employee_id="7",
    )

    request = backend.requests[0]
    assert form_field(request, "media_stage") == ""
    assert form_field(request, "offline_employee_id") == "7"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code,error_class,base_class",
    [
        (429, UploadRateLimitError, TransientError),
        (500, UploadServerError, TransientError),
        (503, UploadServerError, TransientError),
        (400, UploadRejectedError, PermanentError),
        (413, UploadRejectedError, PermanentError),
    ],
)
async def test_upload_error_classification(
    client, backend, jpeg_bytes, status_code, error_class, base_class
):
    backend.status_code = status_code
    backend.body = '{"error": "nope"}'

    with pytest.raises(error_class) as exc_info:
        await client.upload(jpeg_bytes, 42, "pre", 0.0, 0.0, "7")

    assert isinstance(exc_info.value, base_class)
    assert getattr(exc_info.value, "status_code", 429) == status_code


@pytest.mark.asyncio
async def test_any_2xx_is_success(client, backend, jpeg_bytes):
    backend.status_code = 200

    assert await client.upload(jpeg_bytes, 42, "post", 0.0, 0.0, "7") == 200


@pytest.mark.asyncio
async def test_network_errors_are_transient(client, backend, jpeg_bytes):
    backend.error = httpx.ConnectError("connection refused")

    with pytest.raises(UploadNetworkError):
        await client.upload(jpeg_bytes, 42, "pre", 0.0, 0.0, "7")

    backend.error = httpx.ReadTimeout("timed out")

    with pytest.raises(UploadNetworkError) as exc_info:
        await client.upload(jpeg_bytes, 42, "pre", 0.0, 0.0, "7")
    assert "timeout" in str(exc_info.value).lower()


@pytest.mark.asyncio
async def test_executor_success_outcome(executor, backend, jpeg_bytes):
    outcomes: list[UploadOutcome] = []

    outcome = await executor.execute(make_request(jpeg_bytes), on_complete=outcomes.append)

    assert outcome == UploadOutcome(success=True, status_code=201)
    assert outcomes == [outcome]
    assert form_field(backend.requests[0], "media_stage") == "pre"


@pytest.mark.asyncio
async def test_executor_failure_outcome(executor, backend, jpeg_bytes):
    backend.status_code = 500
    received: list[UploadOutcome] = []

    async def on_complete(outcome: UploadOutcome) -> None:
        received.append(outcome)

    outcome = await executor.execute(make_request(jpeg_bytes), on_complete=on_complete)

    assert not outcome.success
    assert outcome.status_code == 500
    assert outcome.error_type == "UploadServerError"
    assert received == [outcome]


@pytest.mark.asyncio
async def test_executor_attempts_once_when_offline(executor, connectivity, backend, jpeg_bytes):
    """Offline with no wait still performs exactly one attempt."""
    await connectivity.set_connected(False)
    backend.error = httpx.ConnectError("offline")

    outcome = await executor.execute(make_request(jpeg_bytes, stage=None))

    assert not outcome.success
    assert outcome.error_type == "UploadNetworkError"
    assert backend.upload_count == 1
