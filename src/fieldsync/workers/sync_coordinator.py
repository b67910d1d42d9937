"""Sync coordinator for captured photos.

Drives every retryable UploadRecord (pending or failed) through the
UploadExecutor and owns the capture entry point used right after a photo is
taken.

Per-record lifecycle:

    captured -> pending -> [transfer attempt] -> synced (terminal, artifact deleted)
                                  |
                                  +-> failed (eligible for the next trigger)

Triggers (all end up in retry_pending_uploads):
- run_sync_worker polling loop (app start + every SYNC_INTERVAL_SECONDS)
- connectivity regained (handle_connectivity_change)
- explicit user action (local API / CLI)

Failures never propagate out of the coordinator: each record is marked and the
run continues with the next one.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from uuid import UUID

import structlog

from fieldsync.core.config import Settings
from fieldsync.events import (
    ConnectivityChanged,
    EventEmitter,
    Listener,
    TicketRefreshRequested,
)
from fieldsync.models.upload_record import (
    InvalidStateTransition,
    MediaStage,
    UploadRecord,
    UploadStatus,
)
from fieldsync.services.connectivity import ConnectivityMonitor
from fieldsync.services.exceptions import ArtifactUnreadableError, MediaStoreError
from fieldsync.services.imaging import compress_to_jpeg, verify_image
from fieldsync.services.media_store import FileSystemMediaStore
from fieldsync.services.uploads.executor import UploadExecutor, UploadRequest
from fieldsync.stores.upload_store import UploadRecordStore

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Location:
    """Capture-site coordinates (0.0/0.0 when unavailable)."""

    latitude: float = 0.0
    longitude: float = 0.0


@dataclass(frozen=True)
class RetryPolicy:
    """When a failed record is picked up again by automatic sync runs.

    Attributes:
        max_attempts: Attempts after which automatic retries stop (0 = unlimited).
            The record stays failed and can still be retried explicitly.
        backoff_seconds: Base delay after a failure, doubled per attempt (0 = none)
        backoff_max_seconds: Upper bound for the delay
    """

    max_attempts: int = 0
    backoff_seconds: float = 0.0
    backoff_max_seconds: float = 900.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            backoff_seconds=settings.retry_backoff_seconds,
            backoff_max_seconds=settings.retry_backoff_max_seconds,
        )

    def delay_for(self, attempts: int) -> float:
        """Seconds to wait after the given number of failed attempts."""
        if self.backoff_seconds <= 0 or attempts <= 0:
            return 0.0
        return min(self.backoff_seconds * (2 ** (attempts - 1)), self.backoff_max_seconds)

    def is_exhausted(self, record: UploadRecord) -> bool:
        return bool(self.max_attempts) and record.attempts >= self.max_attempts

    def is_due(self, record: UploadRecord, now: datetime | None = None) -> bool:
        """True if an automatic run should attempt this record now."""
        if record.status == UploadStatus.PENDING:
            return True
        if record.status != UploadStatus.FAILED:
            return False
        if self.is_exhausted(record):
            return False
        delay = self.delay_for(record.attempts)
        if delay == 0 or record.last_attempt_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        return now >= record.last_attempt_at + timedelta(seconds=delay)


@dataclass
class SyncRunResult:
    """Summary of one retry_pending_uploads run."""

    attempted: int = 0
    synced: int = 0
    failed: int = 0
    deferred: int = 0
    already_running: bool = False
    record_ids: list[UUID] = field(default_factory=list)


@dataclass(frozen=True)
class CaptureResult:
    """Summary of one capture_and_upload call."""

    record: UploadRecord | None
    uploaded: bool
    error: str | None = None


class SyncCoordinator:
    """Orchestrates capture and replay of uploads.

    All collaborators are injected; nothing here is process-global.
    """

    def __init__(
        self,
        store: UploadRecordStore,
        executor: UploadExecutor,
        media_store: FileSystemMediaStore,
        connectivity: ConnectivityMonitor,
        retry_policy: RetryPolicy | None = None,
        uploader_id: str = "0",
        concurrency: int = 4,
        jpeg_quality: int = 80,
    ):
        """Initialize coordinator.

        Args:
            store: Upload record store (already loaded)
            executor: Performs single transfer attempts
            media_store: Local artifact storage
            connectivity: Online/offline state
            retry_policy: Backoff / attempt cap for automatic runs
            uploader_id: Default acting employee id for captures
            concurrency: Maximum simultaneous transfers in one run
            jpeg_quality: JPEG quality used when normalising captures
        """
        self.store = store
        self.executor = executor
        self.media_store = media_store
        self.connectivity = connectivity
        self.retry_policy = retry_policy or RetryPolicy()
        self.uploader_id = uploader_id
        self.concurrency = concurrency
        self.jpeg_quality = jpeg_quality

        self._is_syncing = False
        self._in_flight: set[UUID] = set()
        self._background_tasks: set[asyncio.Task] = set()
        self._ticket_refresh: EventEmitter[TicketRefreshRequested] = EventEmitter(
            "ticket_refresh_requested"
        )

    @property
    def is_syncing(self) -> bool:
        return self._is_syncing

    def add_ticket_refresh_listener(self, listener: Listener) -> None:
        """Register a TicketRefreshRequested observer."""
        self._ticket_refresh.add_listener(listener)

    # Triggers

    async def retry_pending_uploads(self) -> SyncRunResult:
        """Replay every due pending/failed record through the executor.

        A call arriving while a run is active is dropped (not queued): it
        returns immediately with already_running=True.

        Returns:
            SyncRunResult summarising the run
        """
        if self._is_syncing:
            logger.info("sync.run.skipped", reason="already_running")
            return SyncRunResult(already_running=True)

        self._is_syncing = True
        start_time = time.time()
        result = SyncRunResult()
        try:
            candidates = self.store.retryable()
            now = datetime.now(timezone.utc)
            due = [r for r in candidates if self.retry_policy.is_due(r, now)]
            result.deferred = len(candidates) - len(due)

            if not due:
                logger.debug("sync.run.idle", deferred=result.deferred)
                return result

            logger.info("sync.run.started", due=len(due), deferred=result.deferred)

            semaphore = asyncio.Semaphore(self.concurrency)

            async def run_one(record: UploadRecord) -> UploadStatus | None:
                async with semaphore:
                    return await self._process_record(record)

            outcomes = await asyncio.gather(*(run_one(r) for r in due), return_exceptions=True)

            for record, outcome in zip(due, outcomes):
                if isinstance(outcome, BaseException):
                    # _process_record already shields expected failures
                    logger.error(
                        "sync.record.crashed",
                        record_id=str(record.id),
                        error=str(outcome),
                        error_type=type(outcome).__name__,
                    )
                    continue
                if outcome is None:
                    continue
                result.attempted += 1
                result.record_ids.append(record.id)
                if outcome == UploadStatus.SYNCED:
                    result.synced += 1
                else:
                    result.failed += 1

            logger.info(
                "sync.run.completed",
                attempted=result.attempted,
                synced=result.synced,
                failed=result.failed,
                deferred=result.deferred,
                duration_seconds=time.time() - start_time,
            )
            return result
        finally:
            self._is_syncing = False

    async def retry_upload(self, record_id: UUID) -> UploadRecord | None:
        """Explicit "Retry" for one record, ignoring the retry policy schedule.

        Returns:
            The record after the attempt, or None if the id is unknown
        """
        record = self.store.get(record_id)
        if record is None:
            return None
        if record.is_retryable:
            await self._process_record(record)
        return self.store.get(record_id)

    async def cleanup_synced(self) -> int:
        """Purge synced records from the store."""
        return await self.store.cleanup_synced()

    async def discard_upload(self, record_id: UUID) -> bool:
        """Drop a record the user gave up on, together with its local artifact.

        Returns:
            True if the record existed
        """
        record = self.store.get(record_id)
        if record is None or not await self.store.remove(record_id):
            return False
        log = logger.bind(record_id=str(record_id), ticket_id=record.ticket_id)
        await self._release_artifact(record.local_artifact_ref, log)
        log.info("sync.record.discarded", status=record.status.value)
        return True

    async def handle_connectivity_change(self, event: ConnectivityChanged) -> None:
        """ConnectivityMonitor listener: regaining connectivity schedules a sync run."""
        if not event.connected:
            return
        logger.info("sync.trigger", trigger="reconnected")
        task = asyncio.create_task(self.retry_pending_uploads())
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def drain(self) -> None:
        """Wait for sync runs scheduled in the background to finish."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    # Capture

    async def capture_and_upload(
        self,
        image: bytes,
        ticket_id: int,
        stage: MediaStage | str | None = None,
        location: Location | None = None,
        uploaded_by: str | None = None,
    ) -> CaptureResult:
        """Persist a freshly captured photo and upload it if online.

        A pending record is always created before any transfer attempt, so a
        failed immediate upload remains recoverable by retry_pending_uploads.

        Args:
            image: Encoded image bytes as captured (re-encoded to JPEG)
            ticket_id: Owning ticket id
            stage: "pre", "post", or None/"" for customer uploads
            location: Capture coordinates (None means unavailable)
            uploaded_by: Acting employee id (defaults to the configured uploader)

        Returns:
            CaptureResult with the stored record (None if nothing could be stored)
        """
        media_stage = MediaStage(stage) if stage else None
        location = location or Location()
        uploaded_by = uploaded_by or self.uploader_id
        online = self.connectivity.is_connected

        log = logger.bind(ticket_id=ticket_id, media_stage=media_stage, online=online)

        try:
            # Pillow decode/encode is CPU-bound; keep it off the event loop
            jpeg = await asyncio.to_thread(compress_to_jpeg, image, quality=self.jpeg_quality)
        except ArtifactUnreadableError as e:
            log.error("capture.invalid_image", error_message=str(e))
            return CaptureResult(record=None, uploaded=False, error=str(e))

        try:
            artifact_ref = await self.media_store.save(jpeg, ticket_id)
        except MediaStoreError as e:
            if not online:
                log.error("capture.lost", error_message=str(e))
                return CaptureResult(record=None, uploaded=False, error=str(e))

            # No durable copy: a single direct attempt from memory
            log.warning("capture.save_failed_uploading_directly", error_message=str(e))
            outcome = await self.executor.execute(
                UploadRequest(
                    image=jpeg,
                    ticket_id=ticket_id,
                    stage=media_stage,
                    latitude=location.latitude,
                    longitude=location.longitude,
                    uploaded_by=uploaded_by,
                )
            )
            if outcome.success:
                await self._ticket_refresh.emit(TicketRefreshRequested(ticket_id=ticket_id))
            return CaptureResult(record=None, uploaded=outcome.success, error=outcome.error)

        record = await self.store.add(
            UploadRecord(
                ticket_id=ticket_id,
                local_artifact_ref=artifact_ref,
                stage=media_stage,
                latitude=location.latitude,
                longitude=location.longitude,
                uploaded_by=uploaded_by,
                offline_uploader_id=None if online else uploaded_by,
                status=UploadStatus.PENDING,
            )
        )
        log.info("capture.stored", record_id=str(record.id), artifact_ref=artifact_ref)

        if not online:
            return CaptureResult(record=record, uploaded=False)

        status = await self._process_record(record)
        current = self.store.get(record.id) or record
        return CaptureResult(
            record=current,
            uploaded=status == UploadStatus.SYNCED,
            error=current.last_error,
        )

    # Per-record processing

    async def _process_record(self, record: UploadRecord) -> UploadStatus | None:
        """Resolve, upload, and mark one record.

        Returns:
            Resulting status, or None if the record was skipped (already in
            flight, no longer retryable, or removed)
        """
        if record.id in self._in_flight:
            logger.debug("sync.record.in_flight", record_id=str(record.id))
            return None

        self._in_flight.add(record.id)
        try:
            # Re-read: the snapshot may be stale by the time this record runs
            current = self.store.get(record.id)
            if current is None or not current.is_retryable:
                return None

            log = logger.bind(
                record_id=str(current.id),
                ticket_id=current.ticket_id,
                attempt_number=current.attempts + 1,
            )

            # Step 1: Resolve artifact (no network call if this fails)
            try:
                image = await self.media_store.read(current.local_artifact_ref)
                await asyncio.to_thread(verify_image, image)
            except MediaStoreError as e:
                log.warning(
                    "sync.record.artifact_unresolvable",
                    artifact_ref=current.local_artifact_ref,
                    error_type=type(e).__name__,
                    error_message=str(e),
                )
                return await self._mark_failed(current.id, str(e))

            # Step 2: Transfer
            outcome = await self.executor.execute(UploadRequest.from_record(current, image))

            if not outcome.success:
                return await self._mark_failed(current.id, outcome.error)

            # Step 3: Mark synced, release artifact, ask UI to refresh the ticket
            await self.store.mark_synced(current.id)
            await self._release_artifact(current.local_artifact_ref, log)
            await self._ticket_refresh.emit(TicketRefreshRequested(ticket_id=current.ticket_id))
            log.info("sync.record.synced")
            return UploadStatus.SYNCED

        except InvalidStateTransition as e:
            logger.warning("sync.record.invalid_transition", record_id=str(record.id), error=str(e))
            return None
        finally:
            self._in_flight.discard(record.id)

    async def _mark_failed(self, record_id: UUID, error: str | None) -> UploadStatus | None:
        """Mark a record failed; None if it was removed while being processed."""
        if await self.store.mark_failed(record_id, error) is None:
            return None
        return UploadStatus.FAILED

    async def _release_artifact(self, artifact_ref: str, log: structlog.BoundLogger) -> None:
        """Delete a synced record's artifact. Failures leave an orphan file only."""
        try:
            deleted = await self.media_store.delete(artifact_ref)
        except (MediaStoreError, OSError) as e:
            log.warning(
                "sync.record.artifact_delete_failed",
                artifact_ref=artifact_ref,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            return
        if not deleted:
            log.warning("sync.record.artifact_already_gone", artifact_ref=artifact_ref)


async def run_sync_worker(coordinator: SyncCoordinator, settings: Settings) -> None:
    """Main worker loop for upload sync.

    Runs a sync pass immediately (app-open trigger), then every
    SYNC_INTERVAL_SECONDS while connected, and purges synced records every
    CLEANUP_INTERVAL_SECONDS.

    Args:
        coordinator: Sync coordinator to drive
        settings: Application settings (intervals)
    """
    logger.info(
        "worker.started",
        worker_type="upload_sync",
        sync_interval=settings.sync_interval_seconds,
        cleanup_interval=settings.cleanup_interval_seconds,
    )

    last_cleanup = time.monotonic()

    try:
        while True:
            try:
                if coordinator.connectivity.is_connected:
                    await coordinator.retry_pending_uploads()

                if time.monotonic() - last_cleanup >= settings.cleanup_interval_seconds:
                    await coordinator.cleanup_synced()
                    last_cleanup = time.monotonic()

                # Wait for next polling interval
                await asyncio.sleep(settings.sync_interval_seconds)

            except asyncio.CancelledError:
                # Propagate cancellation for graceful shutdown
                raise

            except Exception as e:
                # Unexpected error in polling loop - log and continue with backoff
                logger.error(
                    "worker.error",
                    worker_type="upload_sync",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    exc_info=True,
                )
                # Back off 5 seconds before retrying
                await asyncio.sleep(5)

    except asyncio.CancelledError:
        # Graceful shutdown
        logger.info("worker.stopped", worker_type="upload_sync")
        raise
