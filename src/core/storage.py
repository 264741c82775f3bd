"""Local filesystem storage for uploaded documents."""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Protocol

from src.core.exceptions import StorageError

logger = logging.getLogger(__name__)


class Storage(Protocol):
    async def read(self, location: str) -> bytes: ...

    async def upload(self, data: bytes, file_name: str, user_id: str) -> str: ...

    async def delete(self, location: str) -> None: ...


class LocalStorage:
    """Stores files under ``root/<user_id>/<uuid>_<name>``.

    Locations are relative paths; anything resolving outside ``root`` is
    rejected.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    def _path(self, location: str) -> Path:
        path = (self.root / location).resolve()
        if not path.is_relative_to(self.root):
            raise StorageError(f"Location escapes storage root: {location}")
        return path

    async def read(self, location: str) -> bytes:
        path = self._path(location)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as e:
            raise StorageError(f"File not found: {location}") from e
        except OSError as e:
            raise StorageError(f"Cannot read {location}: {e}") from e

    async def upload(self, data: bytes, file_name: str, user_id: str) -> str:
        safe_name = Path(file_name).name or "document"
        location = f"{user_id}/{uuid.uuid4().hex}_{safe_name}"
        path = self._path(location)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StorageError(f"Cannot write {location}: {e}") from e
        logger.debug("Stored %d bytes at %s", len(data), location)
        return location

    async def delete(self, location: str) -> None:
        path = self._path(location)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot delete {location}: {e}") from e
