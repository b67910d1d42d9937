"""FastAPI application factory for the local upload queue API."""

import asyncio
from contextlib import asynccontextmanager
from typing import Awaitable, Callable

import structlog
import uvicorn
from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from fieldsync.api.routes import uploads
from fieldsync.core.config import Settings, configure_logging
from fieldsync.core.dependencies import build_sync_engine
from fieldsync.workers.sync_coordinator import run_sync_worker

logger = structlog.get_logger()


def create_resilient_worker(
    coro_factory: Callable[[], Awaitable[None]],
    worker_name: str,
    shutdown_event: asyncio.Event,
) -> asyncio.Task:
    """Create a worker with automatic restart on failure.

    Args:
        coro_factory: Zero-argument callable returning the worker coroutine
        worker_name: Human-readable worker name for logging
        shutdown_event: Event to signal graceful shutdown

    Returns:
        Initial task handle (will be auto-recreated on crash)
    """
    RESTART_DELAY = 1  # Fixed 1 second delay between restarts

    def on_worker_done(task: asyncio.Task):
        # Check if shutdown was requested
        if shutdown_event.is_set():
            logger.info("worker.shutdown_complete", worker=worker_name)
            return

        # Check if task was cancelled (normal shutdown)
        if task.cancelled():
            logger.info("worker.cancelled", worker=worker_name)
            return

        exc = task.exception()
        if exc:
            logger.error(
                "worker.crashed",
                worker=worker_name,
                error=str(exc),
                error_type=type(exc).__name__,
                retry_in_seconds=RESTART_DELAY,
                exc_info=exc,
            )
        else:
            # Worker stopped cleanly (unexpected for infinite loop workers)
            logger.warning(
                "worker.stopped_unexpectedly",
                worker=worker_name,
                retry_in_seconds=RESTART_DELAY,
            )

        async def restart_worker():
            await asyncio.sleep(RESTART_DELAY)

            # Check again if shutdown was requested during sleep
            if shutdown_event.is_set():
                return

            logger.info("worker.restarting", worker=worker_name)
            new_task = asyncio.create_task(coro_factory())
            new_task.add_done_callback(on_worker_done)

        asyncio.create_task(restart_worker())

    task = asyncio.create_task(coro_factory())
    task.add_done_callback(on_worker_done)
    return task


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown tasks:
    - Startup: Configure logging, create schema, load the upload store,
      start the connectivity probe and the sync worker
    - Shutdown: Stop workers, close HTTP client and database engine
    """
    settings = Settings()  # type: ignore[call-arg]
    configure_logging(settings)

    engine = await build_sync_engine(settings)

    # Store in app.state for access in routes
    app.state.session_factory = engine.session_factory
    app.state.coordinator = engine.coordinator

    shutdown_event = asyncio.Event()

    probe_task = create_resilient_worker(
        engine.connectivity.run, "connectivity_probe", shutdown_event
    )
    sync_task = create_resilient_worker(
        lambda: run_sync_worker(engine.coordinator, settings), "upload_sync", shutdown_event
    )

    logger.info("application.startup", db_url=settings.database_url, records=len(engine.store))

    yield

    logger.info("application.shutdown")
    shutdown_event.set()

    probe_task.cancel()
    sync_task.cancel()

    # Wait for cancellation to complete (ignore CancelledError)
    await asyncio.gather(probe_task, sync_task, return_exceptions=True)

    await engine.aclose()


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="fieldsync",
        description="Offline photo upload queue for field-service tickets",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(uploads.router)  # Router has prefix="/api" in definition

    # Health check endpoint with database validation
    @app.get("/health")
    async def health_check(response: Response):
        """Health check endpoint with local database test.

        Returns:
            200: {"status": "healthy", ...} if the database answers
            503: {"status": "unhealthy", "error": {...}} otherwise
        """
        try:
            async with app.state.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            coordinator = app.state.coordinator
            return {
                "status": "healthy",
                "connected": coordinator.connectivity.is_connected,
                "syncing": coordinator.is_syncing,
                "queued": len(coordinator.store.retryable()),
            }

        except Exception as e:
            logger.error(
                "health_check.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {
                "status": "unhealthy",
                "error": {
                    "type": type(e).__name__,
                    "message": str(e),
                },
            }

    return app


# Create app instance for uvicorn (see run)
app = create_app()


def run() -> None:
    """Run the local API using uvicorn.

    This is the fieldsync-api entry point defined in pyproject.toml.
    """
    settings = Settings()  # type: ignore[call-arg]
    configure_logging(settings)

    uvicorn.run(
        "fieldsync.app:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
