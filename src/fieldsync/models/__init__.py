"""SQLModel entities.

All table models are imported here to ensure they're registered with SQLModel metadata
before the schema is created.
"""

from fieldsync.models.local_state import LocalState
from fieldsync.models.upload_record import (
    RETRYABLE_STATUSES,
    InvalidStateTransition,
    MediaStage,
    UploadRecord,
    UploadStatus,
)

__all__ = [
    "LocalState",
    "UploadRecord",
    "UploadStatus",
    "MediaStage",
    "InvalidStateTransition",
    "RETRYABLE_STATUSES",
]
