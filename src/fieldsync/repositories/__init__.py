"""Repository layer for local data access."""

from fieldsync.repositories.local_state import LocalStateRepository

__all__ = ["LocalStateRepository"]
