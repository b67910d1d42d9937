"""Local upload queue API endpoints.

This module implements the endpoints the UI layer calls into:
- GET /api/uploads - List upload records (optionally by ticket and status)
- POST /api/uploads - Capture a photo (stored locally, uploaded if online)
- POST /api/uploads/sync - Retry all pending/failed uploads now
- POST /api/uploads/{record_id}/retry - Retry a single upload
- DELETE /api/uploads/synced - Purge synced records
- DELETE /api/uploads/{record_id} - Discard one upload and its local photo
- GET/PUT /api/connectivity - Read or push the current reachability
"""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from pydantic import BaseModel, Field

from fieldsync.api.dependencies import get_connectivity, get_coordinator, get_store
from fieldsync.models.upload_record import MediaStage, UploadRecord, UploadStatus
from fieldsync.services.connectivity import ConnectivityMonitor
from fieldsync.stores.upload_store import UploadRecordStore
from fieldsync.workers.sync_coordinator import Location, SyncCoordinator

logger = structlog.get_logger()
router = APIRouter(prefix="/api", tags=["uploads"])


# Request/Response Models


class UploadRecordDTO(BaseModel):
    """Data Transfer Object for upload records in API responses."""

    id: UUID
    ticket_id: int
    stage: MediaStage | None = Field(
        default=None, description="pre, post, or null for customer uploads"
    )
    status: UploadStatus = Field(..., description="pending, failed, or synced")
    latitude: float
    longitude: float
    uploaded_by: str
    attempts: int
    last_error: str | None = None
    created_at: datetime
    last_attempt_at: datetime | None = None
    synced_at: datetime | None = None

    @classmethod
    def from_record(cls, record: UploadRecord) -> "UploadRecordDTO":
        return cls.model_validate(record.model_dump())


class UploadListResponse(BaseModel):
    """Response model for upload record listings."""

    uploads: list[UploadRecordDTO]
    total: int


class CaptureResponse(BaseModel):
    """Response model for photo capture."""

    uploaded: bool = Field(..., description="True if the photo reached the backend")
    record: UploadRecordDTO | None = Field(
        default=None, description="Stored record (null if the photo could not be stored)"
    )
    error: str | None = None


class SyncRunResponse(BaseModel):
    """Response model for a sync run."""

    already_running: bool
    attempted: int
    synced: int
    failed: int
    deferred: int


class CleanupResponse(BaseModel):
    removed: int


class ConnectivityState(BaseModel):
    connected: bool


# Endpoints


@router.get("/uploads", response_model=UploadListResponse)
async def list_uploads(
    ticket_id: int | None = Query(default=None),
    upload_status: list[UploadStatus] | None = Query(default=None, alias="status"),
    store: UploadRecordStore = Depends(get_store),
) -> UploadListResponse:
    """List upload records in insertion order."""
    records = store.for_ticket(ticket_id) if ticket_id is not None else list(store.get_all())
    if upload_status:
        wanted = set(upload_status)
        records = [r for r in records if r.status in wanted]

    return UploadListResponse(
        uploads=[UploadRecordDTO.from_record(r) for r in records],
        total=len(records),
    )


@router.post("/uploads", response_model=CaptureResponse, status_code=status.HTTP_201_CREATED)
async def capture_upload(
    file: UploadFile = File(...),
    ticket_id: int = Form(...),
    stage: MediaStage | None = Form(default=None),
    latitude: float = Form(default=0.0),
    longitude: float = Form(default=0.0),
    uploaded_by: str | None = Form(default=None),
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> CaptureResponse:
    """Capture a photo for a ticket.

    The photo is always stored locally with a pending record first; when
    online it is uploaded immediately.

    Raises:
        HTTPException: 422 if the file is empty or not a decodable image
    """
    image = await file.read()
    if not image:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Empty file")

    result = await coordinator.capture_and_upload(
        image=image,
        ticket_id=ticket_id,
        stage=stage,
        location=Location(latitude=latitude, longitude=longitude),
        uploaded_by=uploaded_by,
    )

    if result.record is None and not result.uploaded:
        logger.warning("api.capture_failed", ticket_id=ticket_id, error=result.error)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=result.error or "Photo could not be stored",
        )

    return CaptureResponse(
        uploaded=result.uploaded,
        record=UploadRecordDTO.from_record(result.record) if result.record else None,
        error=result.error,
    )


@router.post("/uploads/sync", response_model=SyncRunResponse)
async def sync_uploads(
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> SyncRunResponse:
    """Retry every pending/failed upload (no-op if a run is already active)."""
    result = await coordinator.retry_pending_uploads()
    return SyncRunResponse(
        already_running=result.already_running,
        attempted=result.attempted,
        synced=result.synced,
        failed=result.failed,
        deferred=result.deferred,
    )


@router.post("/uploads/{record_id}/retry", response_model=UploadRecordDTO)
async def retry_upload(
    record_id: UUID,
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> UploadRecordDTO:
    """Retry one upload immediately, bypassing the retry schedule.

    Raises:
        HTTPException: 404 if the record does not exist
    """
    record = await coordinator.retry_upload(record_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Upload {record_id} not found"
        )
    return UploadRecordDTO.from_record(record)


@router.delete("/uploads/synced", response_model=CleanupResponse)
async def cleanup_synced(
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> CleanupResponse:
    """Purge synced records from the local store."""
    return CleanupResponse(removed=await coordinator.cleanup_synced())


@router.delete("/uploads/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def discard_upload(
    record_id: UUID,
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> None:
    """Discard one upload record and its local photo, whatever its status.

    Raises:
        HTTPException: 404 if the record does not exist
    """
    if not await coordinator.discard_upload(record_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Upload {record_id} not found"
        )


@router.get("/connectivity", response_model=ConnectivityState)
async def get_connectivity_state(
    connectivity: ConnectivityMonitor = Depends(get_connectivity),
) -> ConnectivityState:
    return ConnectivityState(connected=connectivity.is_connected)


@router.put("/connectivity", response_model=ConnectivityState)
async def set_connectivity_state(
    body: ConnectivityState,
    connectivity: ConnectivityMonitor = Depends(get_connectivity),
) -> ConnectivityState:
    """Push a reachability change from platform glue.

    Regaining connectivity schedules a sync run in the background.
    """
    await connectivity.set_connected(body.connected)
    return ConnectivityState(connected=connectivity.is_connected)
