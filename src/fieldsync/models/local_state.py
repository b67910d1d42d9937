"""LocalState entity - Key-value store for durable on-device state."""

from datetime import datetime, timezone
from typing import Any

from pydantic import field_validator
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LocalState(SQLModel, table=True):
    """LocalState is a key-value store holding JSON documents (e.g. "local_uploads")."""

    __tablename__ = "local_state"  # type: ignore[assignment]

    key: str = Field(primary_key=True, max_length=255)
    value: Any = Field(default=None, sa_column=Column(JSON))
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        """Validate key is alphanumeric + underscores only."""
        if not v.replace("_", "").isalnum():
            raise ValueError("Key must be alphanumeric with underscores only")
        return v
