"""Tracking session state machine.

The controller is the only writer of session state. Sensor callbacks,
durable appends and background requests all run on one event loop; every
callback carries the generation of the session that created it, so work
belonging to a stopped or restarted session is discarded.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from functools import partial
from typing import Awaitable, Callable, List, Optional, Set, Tuple

from geotrack.core.asyncio_utils import cancel_tasks, create_logged_task, drain_tasks
from geotrack.core.logging_utils import get_module_logger
from .background import BackgroundExecutionCoordinator, KeepAliveHandle, NullBackgroundPlatform
from .constants import DEFAULT_CENTER_LAT, DEFAULT_CENTER_LON, DEFAULT_THRESHOLD_DEGREES
from .diagnostics import DiagnosticLog
from .errors import PositionError, StorageFailure
from .movement_filter import is_significant
from .path_store import PathStore
from .sources.base_source import PositionSource, SubscriptionHandle
from .types import ErrorKind, ErrorRecord, Position, PositionRequest, SessionSnapshot, SessionState

logger = get_module_logger(__name__)

SnapshotObserver = Callable[[SessionSnapshot], None]

_ACTIVE_STATES = (SessionState.STARTING, SessionState.TRACKING)


@dataclass
class _SessionResources:
    """Handles detached from a session at teardown."""

    subscription: Optional[SubscriptionHandle] = None
    keep_alive: Optional[KeepAliveHandle] = None
    sync_registered: bool = False
    seed_task: Optional[asyncio.Task] = None


class TrackingSessionController:
    """Owns the lifecycle of a tracking session.

    Example:
        controller = TrackingSessionController(source, PathStore(backend))
        await controller.start()
        ...
        await controller.close()
    """

    def __init__(
        self,
        source: PositionSource,
        store: PathStore,
        coordinator: Optional[BackgroundExecutionCoordinator] = None,
        *,
        threshold_degrees: float = DEFAULT_THRESHOLD_DEGREES,
        request: Optional[PositionRequest] = None,
        diagnostics: Optional[DiagnosticLog] = None,
        center: Tuple[float, float] = (DEFAULT_CENTER_LAT, DEFAULT_CENTER_LON),
    ):
        self.source = source
        self.store = store
        self.coordinator = coordinator or BackgroundExecutionCoordinator(NullBackgroundPlatform())
        self.threshold_degrees = threshold_degrees
        self.request = request or PositionRequest()
        self.diagnostics = diagnostics or DiagnosticLog(logger=logger)
        self.default_center = center

        self.coordinator.set_diagnostics(self._record)

        self._state = SessionState.IDLE
        self._path: List[Position] = []
        self._current_position: Optional[Position] = None
        self._last_error: Optional[ErrorRecord] = None
        self._resources = _SessionResources()
        self._generation = 0

        self._observers: List[SnapshotObserver] = []
        self._pending_tasks: Set[asyncio.Task] = set()

    # =========================================================================
    # Consumer view
    # =========================================================================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_tracking(self) -> bool:
        return self._state in _ACTIVE_STATES

    @property
    def path(self) -> Tuple[Position, ...]:
        return tuple(self._path)

    @property
    def current_position(self) -> Optional[Position]:
        return self._current_position

    @property
    def last_error(self) -> Optional[ErrorRecord]:
        return self._last_error

    @property
    def center(self) -> Tuple[float, float]:
        """Last path point, else the current position, else the default centre."""
        if self._path:
            return (self._path[-1].latitude, self._path[-1].longitude)
        if self._current_position is not None:
            return (self._current_position.latitude, self._current_position.longitude)
        return self.default_center

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            state=self._state,
            path=tuple(self._path),
            current_position=self._current_position,
            last_error=self._last_error,
            diagnostic_log=self.diagnostics.lines(),
            center=self.center,
        )

    def add_observer(self, observer: SnapshotObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def remove_observer(self, observer: SnapshotObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    # =========================================================================
    # Commands
    # =========================================================================

    async def start(self) -> None:
        """Start a session from IDLE or ERROR; a no-op in any other state."""
        if self._state not in (SessionState.IDLE, SessionState.ERROR):
            self._record(f"Start ignored: session is {self._state.value}", logging.DEBUG)
            return

        self._generation += 1
        generation = self._generation
        self._last_error = None
        self._set_state(SessionState.STARTING)
        self._record("Starting tracking session")

        try:
            available = await self.source.is_available()
        except Exception as exc:
            logger.exception("Position source probe failed")
            self._record(f"Position source probe failed: {exc}", logging.ERROR)
            available = False

        if not self._is_current(generation, SessionState.STARTING):
            return
        if not available:
            self._fail(ErrorKind.SENSOR_UNAVAILABLE, f"Position sensor '{self.source.name}' is not available")
            return

        path = await self.store.load_all()
        if not self._is_current(generation, SessionState.STARTING):
            return
        self._path = path
        self._record(f"Loaded {len(path)} stored points")

        self._spawn(self._acquire_background(generation), "background-acquire")
        self._resources.seed_task = self._spawn(self._seed(generation), "seed-fix")
        self._resources.subscription = self.source.subscribe(
            self.request,
            partial(self._on_position, generation),
            partial(self._on_error, generation),
        )
        self._set_state(SessionState.TRACKING)
        self._record(f"Tracking with {self.source.name} source")

    async def stop(self) -> None:
        """Stop an active session; a no-op in IDLE, ERROR or STOPPING."""
        if self._state not in _ACTIVE_STATES:
            logger.debug("Stop ignored: session is %s", self._state.value)
            return

        # State flips before the first await so late callbacks are discarded.
        self._set_state(SessionState.STOPPING)
        self._record("Stopping tracking session")
        await self._release(self._detach_resources())
        self._set_state(SessionState.IDLE)
        self._record("Tracking session stopped")

    async def close(self) -> None:
        """Stop the session and wait for outstanding durable appends."""
        await self.stop()
        await drain_tasks(self._pending_tasks)
        logger.debug("Controller closed")

    # =========================================================================
    # Sensor callbacks
    # =========================================================================

    def _on_position(self, generation: int, position: Position) -> None:
        if not self._is_current(generation, *_ACTIVE_STATES):
            logger.debug("Discarded fix from inactive session")
            return

        self._current_position = position
        self._last_error = None

        last = self._path[-1] if self._path else None
        if is_significant(position, last, self.threshold_degrees):
            self._path.append(position)
            self._spawn(self._persist(position), "path-append")
            self._record(
                f"Recorded fix {position.latitude:.6f}, {position.longitude:.6f} "
                f"(#{len(self._path)})",
                logging.DEBUG,
            )
        else:
            self._record("Ignored fix below movement threshold", logging.DEBUG)

        self._publish()

    def _on_error(self, generation: int, error: PositionError) -> None:
        if not self._is_current(generation, SessionState.TRACKING):
            logger.debug("Discarded %s from inactive session", error.kind.value)
            return

        self._last_error = ErrorRecord(error.kind, error.message)
        if error.fatal:
            self._record(f"Sensor failure ({error.kind.value}): {error.message}", logging.ERROR)
            resources = self._detach_resources()
            self._set_state(SessionState.ERROR)
            self._spawn(self._release(resources), "error-teardown")
        else:
            self._record(f"Sensor error ({error.kind.value}): {error.message}", logging.WARNING)
            self._publish()

    # =========================================================================
    # Background work
    # =========================================================================

    async def _seed(self, generation: int) -> None:
        try:
            position = await self.source.get_once(self.request)
        except PositionError as exc:
            self._on_error(generation, exc)
            return
        if self._is_current(generation, *_ACTIVE_STATES):
            self._record("Initial fix received", logging.DEBUG)
        self._on_position(generation, position)

    async def _persist(self, position: Position) -> None:
        try:
            await self.store.append(position)
        except StorageFailure as exc:
            self._record(f"Failed to persist fix: {exc}", logging.WARNING)

    async def _acquire_background(self, generation: int) -> None:
        await self.coordinator.check_capability()

        pending = await self.coordinator.pending_deferred_sync()
        if pending:
            self._record(
                f"Previous session left deferred sync registered: {', '.join(pending)}",
                logging.WARNING,
            )

        handle = await self.coordinator.acquire_keep_alive()
        if not self._is_current(generation, *_ACTIVE_STATES):
            await self.coordinator.release_keep_alive(handle)
            return
        self._resources.keep_alive = handle

        registered = await self.coordinator.register_deferred_sync()
        if not self._is_current(generation, *_ACTIVE_STATES):
            if registered:
                await self.coordinator.unregister_deferred_sync()
            return
        self._resources.sync_registered = registered

    # =========================================================================
    # Teardown
    # =========================================================================

    def _detach_resources(self) -> _SessionResources:
        resources = self._resources
        self._resources = _SessionResources()
        return resources

    async def _release(self, resources: _SessionResources) -> None:
        """Single teardown path for stop, fatal error and close."""
        if resources.seed_task is not None and resources.seed_task is not asyncio.current_task():
            await cancel_tasks({resources.seed_task})
        await self.source.unsubscribe(resources.subscription)
        await self.coordinator.release_keep_alive(resources.keep_alive)
        if resources.sync_registered:
            await self.coordinator.unregister_deferred_sync()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _is_current(self, generation: int, *states: SessionState) -> bool:
        return generation == self._generation and self._state in states

    def _fail(self, kind: ErrorKind, message: str) -> None:
        self._last_error = ErrorRecord(kind, message)
        self._record(message, logging.ERROR)
        self._set_state(SessionState.ERROR)

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        logger.debug("Session %s -> %s", self._state.value, state.value)
        self._state = state
        self._publish()

    def _record(self, message: str, level: int = logging.INFO) -> None:
        self.diagnostics.record(message, level)

    def _publish(self) -> None:
        if not self._observers:
            return
        snapshot = self.snapshot()
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception:
                logger.exception("Snapshot observer %r failed", observer)

    def _spawn(self, coro: Awaitable[None], context: str) -> asyncio.Task:
        return create_logged_task(coro, logger=logger, context=context, pending=self._pending_tasks)


__all__ = ["SnapshotObserver", "TrackingSessionController"]
