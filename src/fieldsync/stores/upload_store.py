"""UploadRecordStore - durable, observable collection of upload records.

The whole collection is persisted as one JSON array under the "local_uploads"
key of the local key-value table. Every mutation re-serializes and rewrites the
array in a single upsert, so a save either lands completely or not at all.

Mutations are serialized with an asyncio.Lock: one mutation, including its
persist step, completes before the next begins. Persistence failures are
logged and swallowed; the in-memory view stays authoritative for the lifetime
of the process.
"""

import asyncio
from typing import Callable, Iterable
from uuid import UUID

import structlog
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldsync.events import EventEmitter, Listener, SyncStatusChanged
from fieldsync.models.upload_record import (
    RETRYABLE_STATUSES,
    UploadRecord,
    UploadStatus,
)
from fieldsync.repositories.local_state import LocalStateRepository

logger = structlog.get_logger(__name__)

STORAGE_KEY = "local_uploads"


class UploadRecordStore:
    """Store owning every UploadRecord.

    Callers receive copies; only the store's own methods mutate records.

    Example:
        store = UploadRecordStore(session_factory)
        await store.load()
        await store.add(record)
        for record in store.retryable():
            ...
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        storage_key: str = STORAGE_KEY,
    ):
        """Initialize store.

        Args:
            session_factory: Factory for sessions on the local database
            storage_key: Key under which the JSON array is persisted
        """
        self.session_factory = session_factory
        self.storage_key = storage_key
        self._records: dict[UUID, UploadRecord] = {}
        self._lock = asyncio.Lock()
        self._events: EventEmitter[SyncStatusChanged] = EventEmitter("sync_status_changed")

    # Observers

    def add_listener(self, listener: Listener) -> None:
        """Register a SyncStatusChanged observer."""
        self._events.add_listener(listener)

    def remove_listener(self, listener: Listener) -> None:
        """Unregister a SyncStatusChanged observer."""
        self._events.remove_listener(listener)

    # Queries

    def get_all(self) -> tuple[UploadRecord, ...]:
        """Snapshot of all records in insertion order."""
        return tuple(record.model_copy() for record in self._records.values())

    def get(self, record_id: UUID) -> UploadRecord | None:
        """Copy of one record, or None if unknown."""
        record = self._records.get(record_id)
        return record.model_copy() if record else None

    def filter_by_status(self, *statuses: UploadStatus) -> list[UploadRecord]:
        """Records whose status is one of statuses, in insertion order."""
        wanted = set(statuses)
        return [r.model_copy() for r in self._records.values() if r.status in wanted]

    def retryable(self) -> list[UploadRecord]:
        """Records still awaiting delivery (pending ∪ failed)."""
        return self.filter_by_status(*RETRYABLE_STATUSES)

    def for_ticket(self, ticket_id: int) -> list[UploadRecord]:
        """Records captured for one ticket, in insertion order."""
        return [r.model_copy() for r in self._records.values() if r.ticket_id == ticket_id]

    def __len__(self) -> int:
        return len(self._records)

    # Mutations

    async def load(self) -> int:
        """Replace the in-memory view with the persisted array.

        A missing key yields an empty store. Entries that cannot be decoded are
        logged and skipped one by one; every decodable entry is kept.

        Returns:
            Number of records loaded
        """
        async with self._lock:
            try:
                async with self.session_factory() as session:
                    payload = await LocalStateRepository(session).get_state(self.storage_key)
            except SQLAlchemyError as e:
                logger.error(
                    "store.load_failed",
                    key=self.storage_key,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return len(self._records)

            records: dict[UUID, UploadRecord] = {}
            skipped = 0
            if payload is not None and not isinstance(payload, list):
                logger.error(
                    "store.decode_failed",
                    key=self.storage_key,
                    error=f"Expected a JSON array, got {type(payload).__name__}",
                )
                payload = None

            for index, item in enumerate(payload or []):
                try:
                    record = UploadRecord.model_validate(item)
                except (TypeError, ValidationError) as e:
                    # Drop only the undecodable entry; the rest of the queue survives
                    skipped += 1
                    logger.error(
                        "store.record_decode_failed",
                        key=self.storage_key,
                        index=index,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    continue
                records[record.id] = record

            self._records = records
            logger.info("store.loaded", key=self.storage_key, count=len(records), skipped=skipped)
            return len(records)

    async def add(self, record: UploadRecord) -> UploadRecord:
        """Insert a new record, persist, and notify observers.

        Raises:
            ValueError: If a record with the same id already exists
        """
        async with self._lock:
            if record.id in self._records:
                raise ValueError(f"Upload record {record.id} already exists")
            stored = record.model_copy()
            self._records[stored.id] = stored
            await self._save()
            snapshot = stored.model_copy()

        logger.info(
            "store.record_added",
            record_id=str(snapshot.id),
            ticket_id=snapshot.ticket_id,
            status=snapshot.status.value,
        )
        await self._events.emit(
            SyncStatusChanged(
                record_id=snapshot.id,
                ticket_id=snapshot.ticket_id,
                status=snapshot.status,
            )
        )
        return snapshot

    async def mark_synced(self, record_id: UUID) -> UploadRecord | None:
        """Transition a record to synced. Unknown ids are ignored.

        Raises:
            InvalidStateTransition: If the record is already synced
        """
        return await self._transition(record_id, lambda r: r.mark_synced())

    async def mark_failed(self, record_id: UUID, error: str | None = None) -> UploadRecord | None:
        """Transition a record to failed. Unknown ids are ignored.

        Raises:
            InvalidStateTransition: If the record is already synced
        """
        return await self._transition(record_id, lambda r: r.mark_failed(error))

    async def remove(self, record_id: UUID) -> bool:
        """Drop a record regardless of status.

        Returns:
            True if a record was removed
        """
        async with self._lock:
            if self._records.pop(record_id, None) is None:
                return False
            await self._save()

        logger.info("store.record_removed", record_id=str(record_id))
        return True

    async def cleanup_synced(self) -> int:
        """Remove every synced record (idempotent).

        Returns:
            Number of records removed
        """
        async with self._lock:
            synced_ids = [
                record_id
                for record_id, record in self._records.items()
                if record.status == UploadStatus.SYNCED
            ]
            if not synced_ids:
                return 0
            for record_id in synced_ids:
                del self._records[record_id]
            await self._save()

        logger.info("store.cleanup_synced", removed=len(synced_ids))
        return len(synced_ids)

    # Internals

    async def _transition(
        self, record_id: UUID, apply: Callable[[UploadRecord], None]
    ) -> UploadRecord | None:
        async with self._lock:
            record = self._records.get(record_id)
            if record is None:
                logger.warning("store.record_not_found", record_id=str(record_id))
                return None
            previous_status = record.status
            apply(record)
            await self._save()
            snapshot = record.model_copy()

        logger.info(
            "store.status_changed",
            record_id=str(record_id),
            ticket_id=snapshot.ticket_id,
            previous_status=previous_status.value,
            status=snapshot.status.value,
            attempts=snapshot.attempts,
        )
        await self._events.emit(
            SyncStatusChanged(
                record_id=snapshot.id,
                ticket_id=snapshot.ticket_id,
                status=snapshot.status,
                previous_status=previous_status,
            )
        )
        return snapshot

    async def _save(self) -> bool:
        """Persist the full collection (caller holds the lock).

        Returns:
            True if the write committed, False if it was swallowed
        """
        payload = self._serialize(self._records.values())
        try:
            async with self.session_factory() as session:
                await LocalStateRepository(session).set_state(self.storage_key, payload)
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.warning(
                "store.persist_failed",
                key=self.storage_key,
                count=len(payload),
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        return True

    @staticmethod
    def _serialize(records: Iterable[UploadRecord]) -> list[dict]:
        return [record.model_dump(mode="json") for record in records]
