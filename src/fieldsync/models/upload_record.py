"""UploadRecord entity - One captured photo awaiting delivery to the backend."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import field_validator, model_validator
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UploadStatus(str, Enum):
    """Upload delivery status."""

    PENDING = "pending"
    FAILED = "failed"
    SYNCED = "synced"


RETRYABLE_STATUSES = (UploadStatus.PENDING, UploadStatus.FAILED)


class MediaStage(str, Enum):
    """Purpose of an employee photo. Customer photos carry no stage."""

    PRE = "pre"
    POST = "post"


# Keys of records persisted by the mobile app before the rename
LEGACY_KEYS = {
    "ticketId": "ticket_id",
    "localFilePath": "local_artifact_ref",
    "mediaStage": "stage",
    "uploadedBy": "uploaded_by",
    "offlineEmployeeId": "offline_uploader_id",
    "syncStatus": "status",
}


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid upload state transition."""

    pass


class UploadRecord(SQLModel):
    """UploadRecord describes one locally stored photo and its sync status.

    Records are persisted as a JSON array (see UploadRecordStore), not as rows,
    so this model has no table of its own.
    """

    id: UUID = Field(default_factory=uuid4)
    ticket_id: int
    local_artifact_ref: str = Field(min_length=1)
    stage: Optional[MediaStage] = Field(default=None)
    latitude: float = Field(default=0.0)
    longitude: float = Field(default=0.0)
    uploaded_by: str
    offline_uploader_id: Optional[str] = Field(default=None)
    status: UploadStatus = Field(default=UploadStatus.PENDING)
    attempts: int = Field(default=0, ge=0)
    last_error: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=_utcnow)
    last_attempt_at: Optional[datetime] = Field(default=None)
    synced_at: Optional[datetime] = Field(default=None)

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_keys(cls, data: Any) -> Any:
        """Map the camelCase keys written by the mobile app to field names."""
        if not isinstance(data, dict):
            return data
        renamed = {}
        for key, value in data.items():
            field_name = LEGACY_KEYS.get(key, key)
            if field_name not in data or field_name == key:
                renamed[field_name] = value
        if renamed.get("offline_uploader_id") == "":
            renamed["offline_uploader_id"] = None
        return renamed

    @field_validator("status", mode="before")
    @classmethod
    def collapse_success(cls, v: Any) -> Any:
        """Read the legacy "success" terminal value as synced."""
        if v == "success":
            return UploadStatus.SYNCED
        return v

    @field_validator("stage", mode="before")
    @classmethod
    def empty_stage_is_customer(cls, v: Any) -> Any:
        """An empty stage string means a customer upload."""
        if v == "":
            return None
        return v

    @property
    def is_retryable(self) -> bool:
        """True while the record still needs a transfer attempt."""
        return self.status in RETRYABLE_STATUSES

    @property
    def stage_value(self) -> str:
        """Stage as sent on the wire (empty string for customer uploads)."""
        return self.stage.value if self.stage else ""

    def mark_synced(self) -> None:
        """Transition from pending/failed to synced.

        Raises:
            InvalidStateTransition: If the record is already synced
        """
        if self.status == UploadStatus.SYNCED:
            raise InvalidStateTransition(
                f"Cannot mark synced from {self.status.value}. Record is already terminal."
            )
        now = _utcnow()
        self.attempts += 1
        self.last_attempt_at = now
        self.synced_at = now
        self.last_error = None
        self.status = UploadStatus.SYNCED

    def mark_failed(self, error: str | None = None) -> None:
        """Transition from pending/failed to failed.

        Args:
            error: Optional failure description (truncated to 1000 characters)

        Raises:
            InvalidStateTransition: If the record is already synced
        """
        if self.status == UploadStatus.SYNCED:
            raise InvalidStateTransition(
                f"Cannot mark failed from terminal state {self.status.value}."
            )
        self.attempts += 1
        self.last_attempt_at = _utcnow()
        self.last_error = error[:1000] if error else None
        self.status = UploadStatus.FAILED
