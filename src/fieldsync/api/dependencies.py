"""FastAPI dependencies for the local uploads API.

The sync engine is created in the application lifespan and stored on
app.state; routes reach its components through these dependencies.
"""

from fastapi import Request

from fieldsync.services.connectivity import ConnectivityMonitor
from fieldsync.stores.upload_store import UploadRecordStore
from fieldsync.workers.sync_coordinator import SyncCoordinator


def get_coordinator(request: Request) -> SyncCoordinator:
    """Get SyncCoordinator from app state.

    Example:
        >>> @router.post("/sync")
        >>> async def sync(coordinator=Depends(get_coordinator)):
        ...     return await coordinator.retry_pending_uploads()
    """
    return request.app.state.coordinator


def get_store(request: Request) -> UploadRecordStore:
    """Get UploadRecordStore from app state."""
    return request.app.state.coordinator.store


def get_connectivity(request: Request) -> ConnectivityMonitor:
    """Get ConnectivityMonitor from app state."""
    return request.app.state.coordinator.connectivity
