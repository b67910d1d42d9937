"""Notification side-channel for UI collaborators.

Components own an EventEmitter and expose add_listener/remove_listener.
Listeners may be plain callables or coroutine functions.
"""

import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar
from uuid import UUID

import structlog

from fieldsync.models.upload_record import UploadStatus

logger = structlog.get_logger(__name__)

E = TypeVar("E")

Listener = Callable[[E], None | Awaitable[None]]


@dataclass(frozen=True)
class SyncStatusChanged:
    """An upload record was added or changed status."""

    record_id: UUID
    ticket_id: int
    status: UploadStatus
    previous_status: UploadStatus | None = None


@dataclass(frozen=True)
class ConnectivityChanged:
    """Network reachability flipped."""

    connected: bool


@dataclass(frozen=True)
class TicketRefreshRequested:
    """A ticket gained server-side media and should be re-fetched by the UI."""

    ticket_id: int


class EventEmitter(Generic[E]):
    """Fan-out of one event type to registered listeners.

    Listener exceptions are logged and swallowed so one misbehaving observer
    cannot abort the mutation that produced the event.
    """

    def __init__(self, name: str):
        self.name = name
        self._listeners: list[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def __len__(self) -> int:
        return len(self._listeners)

    async def emit(self, event: E) -> None:
        """Deliver event to every listener in registration order."""
        for listener in list(self._listeners):
            try:
                result: Any = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    "events.listener_failed",
                    emitter=self.name,
                    listener=getattr(listener, "__name__", repr(listener)),
                    error=str(e),
                    error_type=type(e).__name__,
                )
