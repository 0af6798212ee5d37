"""Line-oriented transports feeding the NMEA position source."""

from __future__ import annotations

import asyncio
import errno
import os
from abc import ABC, abstractmethod
from typing import Optional

import serial
import serial_asyncio

from geotrack.core.logging_utils import get_module_logger
from ..constants import DEFAULT_BAUD_RATE
from ..types import ErrorKind

logger = get_module_logger(__name__)

_PERMISSION_ERRNOS = {errno.EACCES, errno.EPERM}
_MISSING_ERRNOS = {errno.ENOENT, errno.ENODEV, errno.ENXIO}


class BaseLineTransport(ABC):
    """Read-only transport that yields text lines."""

    def __init__(self) -> None:
        self._connected = False
        self.last_error: Optional[str] = None
        self.last_failure_kind: Optional[ErrorKind] = None

    @property
    def is_connected(self) -> bool:
        return self._connected

    @abstractmethod
    def device_present(self) -> bool:
        """Cheap check that the underlying device exists."""

    @abstractmethod
    async def connect(self) -> bool:
        """Open the transport; on failure set ``last_failure_kind``."""

    @abstractmethod
    async def disconnect(self) -> None:
        ...

    @abstractmethod
    async def read_line(self, timeout: float = 1.0) -> Optional[str]:
        """Return one decoded line, or None on timeout, EOF, or read error."""


class SerialLineTransport(BaseLineTransport):
    """NMEA lines from a UART/USB receiver through pyserial-asyncio.

    ``port`` may also be a pyserial URL (``socket://host:port``, ``loop://``).
    """

    CLOSE_TIMEOUT_S = 1.0

    def __init__(self, port: str, baudrate: int = DEFAULT_BAUD_RATE):
        super().__init__()
        self.port = port
        self.baudrate = baudrate
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._log = logger.bind(port=port)

    @property
    def is_connected(self) -> bool:
        return self._connected and self._reader is not None

    def device_present(self) -> bool:
        # pyserial URLs have no device node
        return "://" in self.port or os.path.exists(self.port)

    async def connect(self) -> bool:
        if self.is_connected:
            return True
        try:
            self._reader, self._writer = await serial_asyncio.open_serial_connection(
                url=self.port, baudrate=self.baudrate
            )
        except (serial.SerialException, OSError, ValueError) as exc:
            self._reader = self._writer = None
            self._drop(str(exc))
            self.last_failure_kind = self._classify(exc)
            self._log.warning("Open failed (%s): %s", self.last_failure_kind.value, exc)
            return False

        self._connected = True
        self.last_error = self.last_failure_kind = None
        self._log.info("Receiver opened at %d baud", self.baudrate)
        return True

    @staticmethod
    def _classify(exc: BaseException) -> ErrorKind:
        code = getattr(exc, "errno", None)
        if isinstance(exc, PermissionError) or code in _PERMISSION_ERRNOS:
            return ErrorKind.PERMISSION_DENIED
        if isinstance(exc, FileNotFoundError) or code in _MISSING_ERRNOS:
            return ErrorKind.SENSOR_UNAVAILABLE
        return ErrorKind.POSITION_UNAVAILABLE

    def _drop(self, reason: Optional[str]) -> None:
        self._connected = False
        if reason is not None:
            self.last_error = reason

    async def disconnect(self) -> None:
        writer, self._writer, self._reader = self._writer, None, None
        self._drop(None)
        if writer is None:
            return

        writer.close()
        try:
            await asyncio.wait_for(writer.wait_closed(), timeout=self.CLOSE_TIMEOUT_S)
        except asyncio.TimeoutError:
            self._log.debug("Close did not complete within %.1f s", self.CLOSE_TIMEOUT_S)
        except (OSError, serial.SerialException) as exc:
            self._log.debug("Close raised %s", exc)
        self._log.info("Receiver closed")

    async def read_line(self, timeout: float = 1.0) -> Optional[str]:
        reader = self._reader
        if not self._connected or reader is None:
            return None
        try:
            raw = await asyncio.wait_for(reader.readline(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
        except (OSError, serial.SerialException) as exc:
            self._drop(str(exc))
            self._log.warning("Read failed: %s", exc)
            return None

        if not raw:
            self._drop("Stream ended (EOF)")
            self._log.warning("Receiver stream ended")
            return None
        # NMEA is 7-bit ASCII; line noise is dropped
        return raw.decode("ascii", errors="ignore").strip() or None



__all__ = ["BaseLineTransport", "SerialLineTransport"]
