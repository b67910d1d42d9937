"""Background workers and the upload sync coordinator."""

from fieldsync.workers.sync_coordinator import (
    CaptureResult,
    Location,
    RetryPolicy,
    SyncCoordinator,
    SyncRunResult,
    run_sync_worker,
)

__all__ = [
    "SyncCoordinator",
    "RetryPolicy",
    "Location",
    "SyncRunResult",
    "CaptureResult",
    "run_sync_worker",
]
