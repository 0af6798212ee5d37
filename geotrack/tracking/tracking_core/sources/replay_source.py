"""Position source that replays a recorded track file.

Accepted formats:
    JSON: a list of objects with ``lat``/``lng`` (or ``latitude``/``longitude``)
          and an optional ``accuracy``.
    CSV:  a header row with ``latitude,longitude[,accuracy]`` columns
          (``lat``/``lng`` also accepted).
"""

from __future__ import annotations

import asyncio
import csv
import io
import json
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Tuple

import aiofiles

from geotrack.core.logging_utils import get_module_logger
from ..constants import DEFAULT_REPLAY_INTERVAL_S
from ..errors import PositionTimeout, SensorUnavailable
from ..types import Position, PositionRequest, now_ms
from .base_source import ErrorCallback, PositionCallback, PositionSource

logger = get_module_logger(__name__)

TrackPoint = Tuple[float, float, Optional[float]]

_LAT_KEYS = ("lat", "latitude")
_LON_KEYS = ("lng", "lon", "longitude")


def _first(record: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = record.get(key)
        if value not in (None, ""):
            return value
    return None


def _to_point(record: Mapping[str, Any]) -> Optional[TrackPoint]:
    lat = _first(record, _LAT_KEYS)
    lon = _first(record, _LON_KEYS)
    if lat is None or lon is None:
        return None
    try:
        accuracy = record.get("accuracy")
        return (
            float(lat),
            float(lon),
            float(accuracy) if accuracy not in (None, "") else None,
        )
    except (TypeError, ValueError):
        return None


def parse_track(text: str, suffix: str = "") -> List[TrackPoint]:
    """Parse track file contents into (lat, lon, accuracy) tuples.

    JSON is tried first unless the file is named ``*.csv``. Rows that do not
    carry a usable coordinate pair are skipped.

    Raises:
        ValueError: The content is neither a JSON list nor a CSV with a header.
    """
    records: List[Mapping[str, Any]]
    if suffix.lower() != ".csv" and text.lstrip().startswith(("[", "{")):
        decoded = json.loads(text)
        if not isinstance(decoded, list):
            raise ValueError("JSON track must be a list of points")
        records = [r for r in decoded if isinstance(r, Mapping)]
    else:
        reader = csv.DictReader(io.StringIO(text))
        if not reader.fieldnames:
            raise ValueError("CSV track has no header row")
        records = [
            {key.strip().lower(): (value or "").strip() for key, value in row.items() if key}
            for row in reader
        ]

    points = [point for point in (_to_point(r) for r in records) if point is not None]
    skipped = len(records) - len(points)
    if skipped:
        logger.warning("Skipped %d unusable track rows", skipped)
    return points


class ReplayPositionSource(PositionSource):
    """Replays fixes from a track file at a fixed interval.

    ``get_once`` reports the point under the replay cursor without advancing
    it; each watch emission advances the cursor.
    """

    name = "replay"

    def __init__(
        self,
        track_file: Path,
        interval_s: float = DEFAULT_REPLAY_INTERVAL_S,
        loop: bool = False,
    ):
        super().__init__()
        self.track_file = Path(track_file)
        self.interval_s = max(0.0, interval_s)
        self.loop = loop
        self._points: Optional[List[TrackPoint]] = None
        self._cursor = 0

    @property
    def cursor(self) -> int:
        return self._cursor

    async def is_available(self) -> bool:
        try:
            points = await self._load()
        except SensorUnavailable as exc:
            logger.warning("Replay source unavailable: %s", exc.message)
            return False
        return bool(points)

    async def get_once(self, request: PositionRequest) -> Position:
        points = await self._load()
        point = self._current(points)
        if point is None:
            raise PositionTimeout(f"Track {self.track_file.name} is exhausted")
        return self._make_position(point)

    async def _watch(self, request: PositionRequest, on_position: PositionCallback, on_error: ErrorCallback) -> None:
        points = await self._load()
        while True:
            point = self._current(points)
            if point is None:
                on_error(PositionTimeout(f"Track {self.track_file.name} is exhausted"))
                if request.timeout_ms <= 0:
                    # No timeout requested: report once, then idle until unsubscribed
                    await asyncio.Event().wait()
                await asyncio.sleep(request.timeout_s)
                continue

            on_position(self._make_position(point))
            self._cursor += 1
            await asyncio.sleep(self.interval_s)

    def _current(self, points: List[TrackPoint]) -> Optional[TrackPoint]:
        if self._cursor >= len(points):
            if not self.loop or not points:
                return None
            logger.debug("Replay track %s restarting", self.track_file.name)
            self._cursor = 0
        return points[self._cursor]

    @staticmethod
    def _make_position(point: TrackPoint) -> Position:
        lat, lon, accuracy = point
        return Position(latitude=lat, longitude=lon, timestamp=now_ms(), accuracy=accuracy)

    async def _load(self) -> List[TrackPoint]:
        if self._points is not None:
            return self._points

        try:
            async with aiofiles.open(self.track_file, "r", encoding="utf-8") as f:
                text = await f.read()
        except OSError as exc:
            raise SensorUnavailable(f"cannot read track file {self.track_file}: {exc}") from exc

        try:
            points = parse_track(text, self.track_file.suffix)
        except (ValueError, csv.Error) as exc:
            raise SensorUnavailable(f"malformed track file {self.track_file}: {exc}") from exc

        logger.info("Loaded %d track points from %s", len(points), self.track_file)
        self._points = points
        return points


__all__ = ["ReplayPositionSource", "parse_track"]
