"""Tracking data types and structures."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .constants import DEFAULT_HIGH_ACCURACY, DEFAULT_MAX_AGE_MS, DEFAULT_TIMEOUT_MS


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class Position:
    """A single sensor-reported fix.

    Attributes:
        latitude: Latitude in decimal degrees.
        longitude: Longitude in decimal degrees.
        timestamp: Unix epoch milliseconds.
        accuracy: Horizontal accuracy in meters, when the sensor reports one.
    """

    latitude: float
    longitude: float
    timestamp: int
    accuracy: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the durable-log key names."""
        return {
            "lat": self.latitude,
            "lng": self.longitude,
            "timestamp": self.timestamp,
            "accuracy": self.accuracy,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Position":
        """Inverse of :meth:`to_dict`; raises ValueError/KeyError/TypeError on bad input."""
        accuracy = data.get("accuracy")
        return cls(
            latitude=float(data["lat"]),
            longitude=float(data["lng"]),
            timestamp=int(data["timestamp"]),
            accuracy=float(accuracy) if accuracy is not None else None,
        )


@dataclass(frozen=True, slots=True)
class PositionRequest:
    """Options for one-shot and continuous position requests."""

    high_accuracy: bool = DEFAULT_HIGH_ACCURACY
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_age_ms: int = DEFAULT_MAX_AGE_MS

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0


class SessionState(Enum):
    """Lifecycle states of a tracking session."""

    IDLE = "idle"
    STARTING = "starting"
    TRACKING = "tracking"
    STOPPING = "stopping"
    ERROR = "error"


class ErrorKind(Enum):
    """Error kinds reported by sensors, storage, and background features."""

    SENSOR_UNAVAILABLE = "sensor_unavailable"
    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"
    STORAGE_FAILURE = "storage_failure"
    CAPABILITY_ABSENT = "capability_absent"

    @property
    def fatal(self) -> bool:
        """Fatal kinds halt sampling and force the ERROR state."""
        return self in (ErrorKind.SENSOR_UNAVAILABLE, ErrorKind.PERMISSION_DENIED)


@dataclass(frozen=True, slots=True)
class ErrorRecord:
    """The last error surfaced to consumers."""

    kind: ErrorKind
    message: str
    timestamp: int = field(default_factory=now_ms)

    @property
    def fatal(self) -> bool:
        return self.kind.fatal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "timestamp": self.timestamp,
            "fatal": self.fatal,
        }


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """Read-only view of a session handed to consumers."""

    state: SessionState
    path: Tuple[Position, ...]
    current_position: Optional[Position]
    last_error: Optional[ErrorRecord]
    diagnostic_log: Tuple[str, ...]
    center: Tuple[float, float]

    @property
    def is_tracking(self) -> bool:
        return self.state in (SessionState.STARTING, SessionState.TRACKING)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "is_tracking": self.is_tracking,
            "path": [p.to_dict() for p in self.path],
            "current_position": self.current_position.to_dict() if self.current_position else None,
            "last_error": self.last_error.to_dict() if self.last_error else None,
            "diagnostic_log": list(self.diagnostic_log),
            "center": {"lat": self.center[0], "lng": self.center[1]},
        }


__all__ = [
    "now_ms",
    "Position",
    "PositionRequest",
    "SessionState",
    "ErrorKind",
    "ErrorRecord",
    "SessionSnapshot",
]
