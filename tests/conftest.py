"""pytest fixtures for fieldsync tests.

Provides:
- app_env: Autouse fixture marking the process as a test environment
- session_factory: Function-scoped SQLite database (file under tmp_path) with schema
- store: Loaded UploadRecordStore on that database
- media_store: FileSystemMediaStore rooted in tmp_path
- backend: Fake employee-uploads endpoint served through httpx.MockTransport
- coordinator: SyncCoordinator wired to all of the above
"""

import asyncio
import os
from io import BytesIO
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldsync.core.database import init_schema, setup_db_session
from fieldsync.services.connectivity import ConnectivityMonitor
from fieldsync.services.media_store import FileSystemMediaStore
from fieldsync.services.uploads.client import EmployeeUploadsClient
from fieldsync.services.uploads.executor import UploadExecutor
from fieldsync.stores.upload_store import UploadRecordStore
from fieldsync.workers.sync_coordinator import RetryPolicy, SyncCoordinator

UPLOAD_URL = "http://backend.test/api/employee-uploads"


@pytest.fixture(scope="session", autouse=True)
def app_env():
    """Mark the process as a test environment.

    Settings validation is skipped for APP_ENV=test.
    """
    os.environ["APP_ENV"] = "test"
    os.environ["TZ"] = "UTC"
    yield


def make_image(color: str = "red", size: tuple[int, int] = (16, 16), fmt: str = "JPEG") -> bytes:
    """Encode a solid-colour test image."""
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image()


class FakeBackend:
    """Records upload requests and answers with a configurable response."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.status_code = 201
        self.body = '{"success": true}'
        self.delay = 0.0
        self.error: Exception | None = None

    async def handler(self, request: httpx.Request) -> httpx.Response:
        await request.aread()
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, text=self.body)

    @property
    def upload_count(self) -> int:
        return len(self.requests)


def form_field(request: httpx.Request, name: str) -> str | None:
    """Extract a text field from a captured multipart request body."""
    marker = f'Content-Disposition: form-data; name="{name}"\r\n\r\n'.encode()
    content = request.content
    start = content.find(marker)
    if start == -1:
        return None
    start += len(marker)
    end = content.find(b"\r\n", start)
    return content[start:end].decode()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest_asyncio.fixture
async def http_client(backend: FakeBackend) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(backend.handler)) as client:
        yield client


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Provide a session factory on a fresh SQLite file with the schema created."""
    factory = setup_db_session(f"sqlite+aiosqlite:///{tmp_path / 'fieldsync.db'}")
    engine = factory.kw["bind"]
    await init_schema(engine)
    yield factory
    await engine.dispose()


@pytest_asyncio.fixture
async def store(session_factory) -> UploadRecordStore:
    upload_store = UploadRecordStore(session_factory)
    await upload_store.load()
    return upload_store


@pytest.fixture
def media_store(tmp_path) -> FileSystemMediaStore:
    return FileSystemMediaStore(tmp_path / "media")


@pytest.fixture
def connectivity() -> ConnectivityMonitor:
    return ConnectivityMonitor(probe_url=None, initially_connected=True)


@pytest.fixture
def executor(http_client, connectivity) -> UploadExecutor:
    client = EmployeeUploadsClient(UPLOAD_URL, timeout=5.0, http_client=http_client)
    return UploadExecutor(client, connectivity=connectivity, wait_for_connectivity=0)


@pytest.fixture
def retry_policy() -> RetryPolicy:
    return RetryPolicy()


@pytest_asyncio.fixture
async def coordinator(
    store, executor, media_store, connectivity, retry_policy
) -> AsyncGenerator[SyncCoordinator, None]:
    sync_coordinator = SyncCoordinator(
        store=store,
        executor=executor,
        media_store=media_store,
        connectivity=connectivity,
        retry_policy=retry_policy,
        uploader_id="7",
        concurrency=4,
    )
    connectivity.add_listener(sync_coordinator.handle_connectivity_change)
    yield sync_coordinator
    await sync_coordinator.drain()
