"""Composition of the sync engine from settings.

Used by both the local API lifespan and the CLI so they wire the same graph.
"""

from dataclasses import dataclass

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldsync.core.config import Settings
from fieldsync.core.database import init_schema, setup_db_session
from fieldsync.services.connectivity import ConnectivityMonitor
from fieldsync.services.media_store import FileSystemMediaStore
from fieldsync.services.uploads.client import EmployeeUploadsClient
from fieldsync.services.uploads.executor import UploadExecutor
from fieldsync.stores.upload_store import UploadRecordStore
from fieldsync.workers.sync_coordinator import RetryPolicy, SyncCoordinator

logger = structlog.get_logger(__name__)


@dataclass
class SyncEngine:
    """Everything a process needs to capture and sync uploads."""

    session_factory: async_sessionmaker[AsyncSession]
    http_client: httpx.AsyncClient
    store: UploadRecordStore
    media_store: FileSystemMediaStore
    connectivity: ConnectivityMonitor
    executor: UploadExecutor
    coordinator: SyncCoordinator

    async def aclose(self) -> None:
        """Release the HTTP client and the database engine."""
        await self.coordinator.drain()
        await self.http_client.aclose()
        engine = self.session_factory.kw.get("bind")
        if engine is not None:
            await engine.dispose()


async def build_sync_engine(
    settings: Settings,
    http_client: httpx.AsyncClient | None = None,
    initially_connected: bool = True,
) -> SyncEngine:
    """Create the database schema, load the store, and wire the coordinator.

    Args:
        settings: Application settings
        http_client: Optional shared client (tests inject a mock transport)
        initially_connected: Connectivity assumed before the first probe

    Returns:
        Ready-to-use SyncEngine (store already loaded)
    """
    session_factory = setup_db_session(settings.database_url)
    await init_schema(session_factory.kw["bind"])

    store = UploadRecordStore(session_factory)
    await store.load()

    http_client = http_client or httpx.AsyncClient(timeout=settings.upload_timeout_seconds)
    connectivity = ConnectivityMonitor(
        probe_url=settings.probe_url,
        probe_interval=settings.connectivity_probe_interval_seconds,
        initially_connected=initially_connected,
        http_client=http_client,
    )
    client = EmployeeUploadsClient(
        upload_url=settings.upload_url,
        timeout=settings.upload_timeout_seconds,
        http_client=http_client,
    )
    executor = UploadExecutor(
        client,
        connectivity=connectivity,
        wait_for_connectivity=settings.wait_for_connectivity_seconds,
    )
    media_store = FileSystemMediaStore(settings.media_dir)
    coordinator = SyncCoordinator(
        store=store,
        executor=executor,
        media_store=media_store,
        connectivity=connectivity,
        retry_policy=RetryPolicy.from_settings(settings),
        uploader_id=settings.uploader_id,
        concurrency=settings.sync_concurrency,
        jpeg_quality=settings.jpeg_quality,
    )
    connectivity.add_listener(coordinator.handle_connectivity_change)

    logger.info(
        "engine.ready",
        records=len(store),
        upload_url=settings.upload_url,
        media_dir=str(media_store.base_path),
    )

    return SyncEngine(
        session_factory=session_factory,
        http_client=http_client,
        store=store,
        media_store=media_store,
        connectivity=connectivity,
        executor=executor,
        coordinator=coordinator,
    )
