"""LocalState repository.

Provides data access methods for the LocalState key-value store.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession

from fieldsync.models.local_state import LocalState


class LocalStateRepository:
    """Repository for LocalState key-value store.

    Provides UPSERT behavior (INSERT ... ON CONFLICT DO UPDATE) for setting state.
    Values are stored as JSON and automatically serialized/deserialized.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_state(self, key: str) -> Any | None:
        """Retrieve state value for a key.

        Args:
            key: State key (e.g., "local_uploads")

        Returns:
            Deserialized state value if found, None otherwise
        """
        result = await self.session.execute(select(LocalState).where(LocalState.key == key))  # type: ignore[arg-type]
        state = result.scalar_one_or_none()
        return state.value if state else None

    async def set_state(self, key: str, value: Any) -> None:
        """Set state value for a key (UPSERT).

        The whole value is replaced in a single statement, so a reader never
        observes a partially written document.

        Args:
            key: State key (alphanumeric + underscores only)
            value: State value (must be JSON-serializable)
        """
        now = datetime.now(timezone.utc)
        stmt = insert(LocalState).values(key=key, value=value, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"],
            set_={"value": value, "updated_at": now},
        )
        await self.session.execute(stmt)
        await self.session.flush()
