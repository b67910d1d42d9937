"""Upload executor - exactly one transfer attempt per call.

The executor never retries and never raises for transfer failures; it reports
an UploadOutcome (and optionally calls a completion callback). Retries are
driven by the SyncCoordinator on its next trigger.
"""

import inspect
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

import structlog

from fieldsync.models.upload_record import MediaStage, UploadRecord
from fieldsync.services.connectivity import ConnectivityMonitor
from fieldsync.services.exceptions import ServiceError
from fieldsync.services.uploads.client import EmployeeUploadsClient

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class UploadRequest:
    """Everything needed for one transfer attempt."""

    image: bytes
    ticket_id: int
    stage: MediaStage | None
    latitude: float
    longitude: float
    uploaded_by: str
    offline_uploader_id: str | None = None

    @classmethod
    def from_record(cls, record: UploadRecord, image: bytes) -> "UploadRequest":
        """Build a request from a stored record and its resolved artifact bytes."""
        return cls(
            image=image,
            ticket_id=record.ticket_id,
            stage=record.stage,
            latitude=record.latitude,
            longitude=record.longitude,
            uploaded_by=record.uploaded_by,
            offline_uploader_id=record.offline_uploader_id,
        )


@dataclass(frozen=True)
class UploadOutcome:
    """Result of one transfer attempt."""

    success: bool
    status_code: int | None = None
    error: str | None = None
    error_type: str | None = None


CompletionCallback = Callable[[UploadOutcome], None | Awaitable[None]]


class UploadExecutor:
    """Performs single upload attempts against the backend."""

    def __init__(
        self,
        client: EmployeeUploadsClient,
        connectivity: ConnectivityMonitor | None = None,
        wait_for_connectivity: float = 0.0,
    ):
        """Initialize executor.

        Args:
            client: Backend uploads client
            connectivity: Monitor consulted before sending (optional)
            wait_for_connectivity: Seconds to wait for connectivity when offline
                before attempting anyway (0 = attempt immediately)
        """
        self.client = client
        self.connectivity = connectivity
        self.wait_for_connectivity = wait_for_connectivity

    async def execute(
        self,
        request: UploadRequest,
        on_complete: CompletionCallback | None = None,
    ) -> UploadOutcome:
        """Attempt one upload.

        Args:
            request: Payload and metadata
            on_complete: Optional callback invoked with the outcome

        Returns:
            UploadOutcome (success only for a 2xx response)
        """
        start_time = time.time()
        stage = request.stage.value if request.stage else ""

        if self.connectivity is not None and not self.connectivity.is_connected:
            await self.connectivity.wait_until_connected(self.wait_for_connectivity)

        logger.info(
            "upload.started",
            ticket_id=request.ticket_id,
            media_stage=stage,
            size_bytes=len(request.image),
        )

        try:
            status_code = await self.client.upload(
                image=request.image,
                ticket_id=request.ticket_id,
                media_stage=stage,
                latitude=request.latitude,
                longitude=request.longitude,
                uploaded_by=request.uploaded_by,
                offline_employee_id=request.offline_uploader_id,
            )
            outcome = UploadOutcome(success=True, status_code=status_code)
            logger.info(
                "upload.succeeded",
                ticket_id=request.ticket_id,
                status_code=status_code,
                duration_seconds=time.time() - start_time,
            )
        except ServiceError as e:
            outcome = UploadOutcome(
                success=False,
                status_code=getattr(e, "status_code", None),
                error=str(e),
                error_type=type(e).__name__,
            )
            logger.warning(
                "upload.failed",
                ticket_id=request.ticket_id,
                error_type=type(e).__name__,
                error_message=str(e),
                duration_seconds=time.time() - start_time,
            )

        if on_complete is not None:
            result = on_complete(outcome)
            if inspect.isawaitable(result):
                await result

        return outcome
