"""Durable, append-only log of recorded positions."""

from __future__ import annotations

import asyncio
import json
from typing import List, Optional

from geotrack.core.logging_utils import get_module_logger
from .constants import PATH_STORE_KEY
from .errors import StorageFailure
from .storage import KeyValueStore
from .types import Position

logger = get_module_logger(__name__)


class PathStore:
    """Keeps a durable mirror of the tracked path under one storage key.

    The whole path is stored as a single JSON array. The store holds an
    in-memory copy of that array; every append re-writes the full payload.
    A point whose write failed stays in the in-memory copy, so the next
    successful write persists it and no point is ever written twice.

    The stored log is never written over unless it was read first. While
    the backend cannot be read, appends fail and the points wait in a
    backlog until a read succeeds.

    Example:
        store = PathStore(JsonFileKeyValueStore(store_dir))
        path = await store.load_all()
        await store.append(position)
    """

    def __init__(self, backend: KeyValueStore, key: str = PATH_STORE_KEY):
        self._backend = backend
        self._key = key
        self._points: Optional[List[Position]] = None
        self._backlog: List[Position] = []
        self._write_lock = asyncio.Lock()

    @property
    def key(self) -> str:
        return self._key

    async def load_all(self) -> List[Position]:
        """Return the full durable log in stored order.

        A missing, unreadable, or malformed payload yields an empty path.
        """
        async with self._write_lock:
            try:
                self._points = await self._read_points()
            except StorageFailure as exc:
                logger.warning("Path log unreadable: %s", exc)
                return []
            return list(self._points)

    async def append(self, position: Position) -> None:
        """Durably record one position.

        Raises:
            StorageFailure: The point could not be persisted, or the stored
                log could not be read to append to.
        """
        async with self._write_lock:
            self._backlog.append(position)
            if self._points is None:
                self._points = await self._read_points()
            self._points.extend(self._backlog)
            self._backlog.clear()
            payload = json.dumps([p.to_dict() for p in self._points]).encode("utf-8")
            await self._backend.set(self._key, payload)

    async def clear(self) -> None:
        """Erase the durable log.

        Raises:
            StorageFailure: The log could not be removed.
        """
        async with self._write_lock:
            await self._backend.delete(self._key)
            self._points = []
            self._backlog.clear()
            logger.info("Cleared durable path log '%s'", self._key)

    async def _read_points(self) -> List[Position]:
        # StorageFailure from the backend propagates; only bad content reads as empty
        raw = await self._backend.get(self._key)
        if raw is None:
            return []

        try:
            decoded = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("Malformed path log payload, starting empty: %s", exc)
            return []

        if not isinstance(decoded, list):
            logger.warning("Path log payload is %s, not a list; starting empty", type(decoded).__name__)
            return []

        points: List[Position] = []
        skipped = 0
        for entry in decoded:
            try:
                points.append(Position.from_dict(entry))
            except (KeyError, TypeError, ValueError, AttributeError):
                skipped += 1
        if skipped:
            logger.warning("Skipped %d malformed path records", skipped)

        logger.debug("Loaded %d path points from '%s'", len(points), self._key)
        return points


__all__ = ["PathStore"]
