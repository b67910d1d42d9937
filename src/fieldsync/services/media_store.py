"""Async filesystem store for captured photos awaiting upload.

Artifacts live in: {base_path}/{ticket_id}/{uuid}.jpg

The identifier handed out by save() is the path relative to base_path; it is
the opaque local_artifact_ref stored on an UploadRecord.
"""

from pathlib import Path
from uuid import uuid4

import aiofiles
import aiofiles.os

from fieldsync.services.exceptions import (
    ArtifactNotFoundError,
    ArtifactUnreadableError,
    MediaStoreError,
)


class FileSystemMediaStore:
    """Async file storage with one directory per ticket."""

    def __init__(self, base_path: Path | str) -> None:
        """Initialize media store.

        Args:
            base_path: Root directory for artifacts. Created if it doesn't exist.
        """
        self.base_path = Path(base_path).resolve()
        # Create base path synchronously on init (one-time operation)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve(self, identifier: str) -> Path:
        if not identifier:
            raise ArtifactUnreadableError("Empty artifact identifier")
        path = (self.base_path / identifier).resolve()
        if not path.is_relative_to(self.base_path):
            raise ArtifactUnreadableError(f"Artifact identifier escapes media root: {identifier}")
        return path

    async def save(self, data: bytes, ticket_id: int) -> str:
        """Store image bytes for a ticket.

        Args:
            data: JPEG bytes to store
            ticket_id: Owning ticket (used for directory partitioning)

        Returns:
            Identifier of the stored artifact

        Raises:
            MediaStoreError: If the file cannot be written
        """
        ticket_dir = self.base_path / str(ticket_id)
        identifier = f"{ticket_id}/{uuid4().hex}.jpg"
        try:
            await aiofiles.os.makedirs(ticket_dir, exist_ok=True)
            async with aiofiles.open(self.base_path / identifier, "wb") as f:
                await f.write(data)
        except OSError as e:
            raise MediaStoreError(f"Failed to save artifact for ticket {ticket_id}: {e}") from e
        return identifier

    async def read(self, identifier: str) -> bytes:
        """Retrieve artifact bytes.

        Raises:
            ArtifactNotFoundError: If the artifact does not exist
            ArtifactUnreadableError: If the artifact is empty or cannot be read
        """
        path = self._resolve(identifier)
        try:
            async with aiofiles.open(path, "rb") as f:
                data = await f.read()
        except FileNotFoundError as e:
            raise ArtifactNotFoundError(f"Artifact not found: {identifier}") from e
        except OSError as e:
            raise ArtifactUnreadableError(f"Cannot read artifact {identifier}: {e}") from e

        if not data:
            raise ArtifactUnreadableError(f"Artifact is empty: {identifier}")
        return data

    async def delete(self, identifier: str) -> bool:
        """Delete an artifact.

        Returns:
            True if the file was deleted, False if it did not exist

        Raises:
            MediaStoreError: If the file exists but cannot be removed
        """
        path = self._resolve(identifier)
        try:
            await aiofiles.os.remove(path)
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise MediaStoreError(f"Failed to delete artifact {identifier}: {e}") from e

    async def exists(self, identifier: str) -> bool:
        """True if the artifact is present on disk."""
        try:
            path = self._resolve(identifier)
        except ArtifactUnreadableError:
            return False
        return await aiofiles.os.path.exists(path)
