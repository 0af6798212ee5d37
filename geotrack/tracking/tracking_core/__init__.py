"""Tracking core package - session state machine and its collaborators."""

from .constants import (
    DEFAULT_THRESHOLD_DEGREES,
    DEFAULT_HIGH_ACCURACY,
    DEFAULT_TIMEOUT_MS,
    DEFAULT_MAX_AGE_MS,
    DEFAULT_CENTER_LAT,
    DEFAULT_CENTER_LON,
    PATH_STORE_KEY,
    DEFERRED_SYNC_TASK,
    DEFAULT_DIAGNOSTIC_LINES,
)
from .types import (
    ErrorKind,
    ErrorRecord,
    Position,
    PositionRequest,
    SessionSnapshot,
    SessionState,
    now_ms,
)
from .errors import (
    CapabilityAbsent,
    PermissionDenied,
    PositionError,
    PositionTimeout,
    PositionUnavailable,
    SensorUnavailable,
    StorageFailure,
    TrackingError,
)
from .movement_filter import is_significant
from .storage import JsonFileKeyValueStore, KeyValueStore
from .path_store import PathStore
from .diagnostics import DiagnosticLog
from .background import (
    BackgroundExecutionCoordinator,
    BackgroundPlatform,
    KeepAliveHandle,
    NullBackgroundPlatform,
    PermissionStatus,
    SystemBackgroundPlatform,
)
from .sources import PositionSource, SubscriptionHandle
from .controller import SnapshotObserver, TrackingSessionController

__all__ = [
    # Constants
    "DEFAULT_THRESHOLD_DEGREES",
    "DEFAULT_HIGH_ACCURACY",
    "DEFAULT_TIMEOUT_MS",
    "DEFAULT_MAX_AGE_MS",
    "DEFAULT_CENTER_LAT",
    "DEFAULT_CENTER_LON",
    "PATH_STORE_KEY",
    "DEFERRED_SYNC_TASK",
    "DEFAULT_DIAGNOSTIC_LINES",
    # Types
    "ErrorKind",
    "ErrorRecord",
    "Position",
    "PositionRequest",
    "SessionSnapshot",
    "SessionState",
    "now_ms",
    # Errors
    "TrackingError",
    "PositionError",
    "SensorUnavailable",
    "PermissionDenied",
    "PositionUnavailable",
    "PositionTimeout",
    "StorageFailure",
    "CapabilityAbsent",
    # Filter and storage
    "is_significant",
    "KeyValueStore",
    "JsonFileKeyValueStore",
    "PathStore",
    "DiagnosticLog",
    # Background execution
    "BackgroundExecutionCoordinator",
    "BackgroundPlatform",
    "KeepAliveHandle",
    "NullBackgroundPlatform",
    "PermissionStatus",
    "SystemBackgroundPlatform",
    # Sources
    "PositionSource",
    "SubscriptionHandle",
    # Controller
    "SnapshotObserver",
    "TrackingSessionController",
]
