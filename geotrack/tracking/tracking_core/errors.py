"""Exception taxonomy for the tracking session core."""

from __future__ import annotations

from .types import ErrorKind


class TrackingError(Exception):
    """Base class for all tracking errors."""


class PositionError(TrackingError):
    """A failure reported by a position source."""

    kind: ErrorKind = ErrorKind.POSITION_UNAVAILABLE

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value

    @property
    def fatal(self) -> bool:
        return self.kind.fatal

    @classmethod
    def from_kind(cls, kind: ErrorKind, message: str = "") -> "PositionError":
        """Build the concrete subclass for ``kind``."""
        for subclass in (SensorUnavailable, PermissionDenied, PositionUnavailable, PositionTimeout):
            if subclass.kind is kind:
                return subclass(message)
        raise ValueError(f"Not a position error kind: {kind}")


class SensorUnavailable(PositionError):
    kind = ErrorKind.SENSOR_UNAVAILABLE


class PermissionDenied(PositionError):
    kind = ErrorKind.PERMISSION_DENIED


class PositionUnavailable(PositionError):
    kind = ErrorKind.POSITION_UNAVAILABLE


class PositionTimeout(PositionError):
    kind = ErrorKind.TIMEOUT


class StorageFailure(TrackingError):
    """Durable storage could not be read or written."""


class CapabilityAbsent(TrackingError):
    """A background-execution feature is not offered by this platform."""


__all__ = [
    "TrackingError",
    "PositionError",
    "SensorUnavailable",
    "PermissionDenied",
    "PositionUnavailable",
    "PositionTimeout",
    "StorageFailure",
    "CapabilityAbsent",
]
