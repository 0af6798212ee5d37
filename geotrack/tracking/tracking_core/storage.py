"""Durable key-value storage backing the path log.

Each key lives in its own file under a store directory. Writes go to a
temporary file that is fsynced and then atomically renamed over the target,
so a reader never observes a half-written payload.
"""

from __future__ import annotations

import asyncio
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import aiofiles

from geotrack.core.file_sync_utils import atomic_write_bytes
from .errors import StorageFailure

_SAFE_KEY = re.compile(r"^[A-Za-z0-9._-]+$")


class KeyValueStore(ABC):
    """Byte-oriented key-value boundary used by the PathStore."""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Return the stored payload, or None when the key does not exist.

        Raises:
            StorageFailure: The payload exists but could not be read.
        """

    @abstractmethod
    async def set(self, key: str, value: bytes) -> None:
        """Durably store ``value`` under ``key``.

        Raises:
            StorageFailure: The payload could not be written.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``; deleting a missing key is not an error."""


class JsonFileKeyValueStore(KeyValueStore):
    """Stores each key as ``<directory>/<key>.json``."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Unsafe storage key: {key!r}")
        return self.directory / f"{key}.json"

    async def get(self, key: str) -> Optional[bytes]:
        path = self.path_for(key)
        if not await asyncio.to_thread(path.exists):
            return None
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except OSError as exc:
            raise StorageFailure(f"Failed to read {path}: {exc}") from exc

    async def set(self, key: str, value: bytes) -> None:
        path = self.path_for(key)
        try:
            await asyncio.to_thread(atomic_write_bytes, path, value)
        except OSError as exc:
            raise StorageFailure(f"Failed to write {path}: {exc}") from exc

    async def delete(self, key: str) -> None:
        path = self.path_for(key)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as exc:
            raise StorageFailure(f"Failed to delete {path}: {exc}") from exc


__all__ = ["KeyValueStore", "JsonFileKeyValueStore"]
