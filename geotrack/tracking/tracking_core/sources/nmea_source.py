"""Position source backed by an NMEA-0183 GPS receiver.

A single pump task owns the transport while anyone is listening. It parses
each line and fans the result out to every listener queue, so a one-shot
request and a continuous watch can share the receiver.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional, Set, Union

from geotrack.core.asyncio_utils import create_logged_task
from geotrack.core.logging_utils import get_module_logger
from ..constants import DEFAULT_RECONNECT_DELAY
from ..errors import PositionError, PositionTimeout, PositionUnavailable, SensorUnavailable
from ..types import ErrorKind, Position, PositionRequest, now_ms
from .base_source import ErrorCallback, PositionCallback, PositionSource
from .nmea_parser import NMEAParser
from .transports import BaseLineTransport

logger = get_module_logger(__name__)


@dataclass(frozen=True, slots=True)
class _NoFix:
    """The receiver is talking but reports no valid position."""

    sentence_type: str


_Event = Union[Position, PositionError, _NoFix]


class NMEAPositionSource(PositionSource):
    """Position source reading NMEA sentences from a line transport.

    Example:
        source = NMEAPositionSource(SerialLineTransport("/dev/serial0", 9600))
        fix = await source.get_once(PositionRequest())
    """

    name = "nmea"

    def __init__(
        self,
        transport: BaseLineTransport,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        read_timeout: float = 1.0,
    ):
        super().__init__()
        self.transport = transport
        self.reconnect_delay = reconnect_delay
        self.read_timeout = read_timeout

        self._log = logger.bind(device=self._describe_transport())
        self._parser = NMEAParser(validate_checksums=True)
        self._listeners: Set[asyncio.Queue[_Event]] = set()
        self._pump_task: Optional[asyncio.Task] = None

        self._last_fix: Optional[Position] = None
        self._last_fix_at: float = 0.0
        self._logged_first_fix = False

    async def is_available(self) -> bool:
        return await asyncio.to_thread(self.transport.device_present)

    # =========================================================================
    # PositionSource API
    # =========================================================================

    async def get_once(self, request: PositionRequest) -> Position:
        cached = self._cached_fix(request)
        if cached is not None:
            return cached

        if not await self.is_available():
            raise SensorUnavailable(f"GPS device not found: {self._describe_transport()}")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + request.timeout_s
        queue = self._add_listener()
        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise PositionTimeout(f"No fix within {request.timeout_ms} ms")
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=remaining)
                except asyncio.TimeoutError:
                    raise PositionTimeout(f"No fix within {request.timeout_ms} ms") from None

                if isinstance(event, PositionError):
                    raise event
                if isinstance(event, Position) and self._acceptable(event, request):
                    return event
        finally:
            await self._remove_listener(queue)

    async def _watch(self, request: PositionRequest, on_position: PositionCallback, on_error: ErrorCallback) -> None:
        loop = asyncio.get_running_loop()
        queue = self._add_listener()
        last_fix_at = loop.time()
        no_fix_reported = False
        try:
            while True:
                wait = None
                if request.timeout_ms > 0:
                    wait = max(0.0, request.timeout_s - (loop.time() - last_fix_at))
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=wait)
                except asyncio.TimeoutError:
                    on_error(PositionTimeout(f"No fix within {request.timeout_ms} ms"))
                    last_fix_at = loop.time()
                    continue

                if isinstance(event, PositionError):
                    if event.fatal:
                        raise event
                    on_error(event)
                elif isinstance(event, _NoFix):
                    if not no_fix_reported:
                        no_fix_reported = True
                        on_error(PositionUnavailable(f"Receiver reports no fix ({event.sentence_type})"))
                elif self._acceptable(event, request):
                    no_fix_reported = False
                    last_fix_at = loop.time()
                    on_position(event)
        finally:
            await self._remove_listener(queue)

    async def close(self) -> None:
        await super().close()
        await self._stop_pump()

    # =========================================================================
    # Fix helpers
    # =========================================================================

    def _cached_fix(self, request: PositionRequest) -> Optional[Position]:
        if self._last_fix is None or request.max_age_ms <= 0:
            return None
        age_ms = (asyncio.get_running_loop().time() - self._last_fix_at) * 1000.0
        if age_ms > request.max_age_ms or not self._acceptable(self._last_fix, request):
            return None
        return self._last_fix

    @staticmethod
    def _acceptable(position: Position, request: PositionRequest) -> bool:
        # High accuracy requires a known HDOP so the fix carries an accuracy.
        return not request.high_accuracy or position.accuracy is not None

    def _describe_transport(self) -> str:
        return getattr(self.transport, "port", type(self.transport).__name__)

    # =========================================================================
    # Pump
    # =========================================================================

    def _add_listener(self) -> asyncio.Queue[_Event]:
        queue: asyncio.Queue[_Event] = asyncio.Queue()
        self._listeners.add(queue)
        if self._pump_task is None or self._pump_task.done():
            self._pump_task = create_logged_task(self._pump(), logger=self._log, context="nmea-pump")
        return queue

    async def _remove_listener(self, queue: asyncio.Queue[_Event]) -> None:
        self._listeners.discard(queue)
        if not self._listeners:
            await self._stop_pump()

    async def _stop_pump(self) -> None:
        task = self._pump_task
        self._pump_task = None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _broadcast(self, event: _Event) -> None:
        for queue in list(self._listeners):
            queue.put_nowait(event)

    async def _pump(self) -> None:
        self._log.debug("NMEA pump started")
        try:
            while self._listeners:
                if not self.transport.is_connected:
                    if not await self._connect():
                        return
                    continue

                line = await self.transport.read_line(timeout=self.read_timeout)
                if line is None:
                    if not self.transport.is_connected:
                        self._broadcast(PositionUnavailable(
                            f"GPS stream interrupted: {self.transport.last_error or 'disconnected'}"
                        ))
                        await asyncio.sleep(self.reconnect_delay)
                    continue

                self._process_line(line)
        finally:
            await self.transport.disconnect()
            self._log.debug("NMEA pump stopped")

    async def _connect(self) -> bool:
        """Open the transport; returns False when the pump must end."""
        if await self.transport.connect():
            return True

        kind = self.transport.last_failure_kind or ErrorKind.POSITION_UNAVAILABLE
        detail = self.transport.last_error or "connect failed"
        self._broadcast(PositionError.from_kind(kind, f"{self._describe_transport()}: {detail}"))
        if kind.fatal:
            return False
        await asyncio.sleep(self.reconnect_delay)
        return True

    def _process_line(self, line: str) -> None:
        if not line.startswith("$"):
            return
        fix = self._parser.parse_sentence(line)
        if fix is None:
            return

        if not fix.has_position:
            self._broadcast(_NoFix(fix.sentence_type))
            return

        position = Position(
            latitude=fix.latitude,
            longitude=fix.longitude,
            timestamp=now_ms(),
            accuracy=fix.accuracy_m,
        )
        self._last_fix = position
        self._last_fix_at = asyncio.get_running_loop().time()

        if not self._logged_first_fix:
            self._logged_first_fix = True
            self._log.info("First GPS fix: lat=%.6f, lon=%.6f", position.latitude, position.longitude)
        self._broadcast(position)


__all__ = ["NMEAPositionSource"]
