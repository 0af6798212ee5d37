"""Best-effort background execution support.

Sampling only continues while the host stays awake. The coordinator asks the
platform to hold off suspension (keep-alive) and leaves a deferred-sync
marker behind so a revived process knows an earlier session was interrupted.
Every request may fail with CapabilityAbsent; the coordinator records the
failure and carries on in degraded mode.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional

import aiofiles

from geotrack.core.file_sync_utils import atomic_write_bytes
from geotrack.core.logging_utils import get_module_logger
from geotrack.core.paths import DEFERRED_SYNC_FILE
from .constants import (
    DEFERRED_SYNC_PERMISSION,
    DEFERRED_SYNC_TASK,
    KEEP_ALIVE_PERMISSION,
    KEEP_ALIVE_REASON,
)
from .errors import CapabilityAbsent

logger = get_module_logger(__name__)

DiagnosticSink = Callable[[str, int], None]


class PermissionStatus(Enum):
    GRANTED = "granted"
    DENIED = "denied"
    PROMPT = "prompt"


@dataclass(eq=False)
class KeepAliveHandle:
    """Opaque token for an acquired keep-alive."""

    resource: Any = None
    released: bool = field(default=False)


# =============================================================================
# Platform boundary
# =============================================================================


class BackgroundPlatform(ABC):
    """Host facilities the coordinator can ask for."""

    @abstractmethod
    async def query_permission(self, name: str) -> PermissionStatus:
        """Raises CapabilityAbsent when the platform cannot answer."""

    @abstractmethod
    async def acquire_keep_alive(self) -> KeepAliveHandle:
        """Raises CapabilityAbsent when no keep-alive mechanism exists."""

    @abstractmethod
    async def release_keep_alive(self, handle: KeepAliveHandle) -> None:
        ...

    @abstractmethod
    async def register_deferred_sync(self, task_name: str) -> None:
        """Raises CapabilityAbsent when registration is impossible."""

    @abstractmethod
    async def unregister_deferred_sync(self, task_name: str) -> None:
        ...

    @abstractmethod
    async def pending_deferred_sync(self) -> List[str]:
        ...


class NullBackgroundPlatform(BackgroundPlatform):
    """Platform without any background support."""

    async def query_permission(self, name: str) -> PermissionStatus:
        raise CapabilityAbsent("permission queries are not supported")

    async def acquire_keep_alive(self) -> KeepAliveHandle:
        raise CapabilityAbsent("keep-alive is not supported")

    async def release_keep_alive(self, handle: KeepAliveHandle) -> None:
        handle.released = True

    async def register_deferred_sync(self, task_name: str) -> None:
        raise CapabilityAbsent("deferred sync is not supported")

    async def unregister_deferred_sync(self, task_name: str) -> None:
        return None

    async def pending_deferred_sync(self) -> List[str]:
        return []


class SystemBackgroundPlatform(BackgroundPlatform):
    """Keep-alive via a ``systemd-inhibit`` child, deferred sync via a marker file.

    The inhibitor process blocks idle and sleep for as long as it runs;
    releasing the handle terminates it.
    """

    INHIBIT_BINARY = "systemd-inhibit"

    def __init__(self, marker_path: Path = DEFERRED_SYNC_FILE, startup_grace_s: float = 0.2):
        self.marker_path = Path(marker_path)
        self._startup_grace_s = startup_grace_s

    def _inhibit_binary(self) -> Optional[str]:
        return shutil.which(self.INHIBIT_BINARY)

    async def query_permission(self, name: str) -> PermissionStatus:
        if name == KEEP_ALIVE_PERMISSION:
            if self._inhibit_binary() is None:
                raise CapabilityAbsent(f"{self.INHIBIT_BINARY} not found")
            return PermissionStatus.GRANTED
        if name == DEFERRED_SYNC_PERMISSION:
            writable = await asyncio.to_thread(self._marker_dir_writable)
            return PermissionStatus.GRANTED if writable else PermissionStatus.DENIED
        raise CapabilityAbsent(f"unknown permission '{name}'")

    def _marker_dir_writable(self) -> bool:
        directory = self.marker_path.parent
        while not directory.exists() and directory != directory.parent:
            directory = directory.parent
        return os.access(directory, os.W_OK)

    async def acquire_keep_alive(self) -> KeepAliveHandle:
        binary = self._inhibit_binary()
        if binary is None:
            raise CapabilityAbsent(f"{self.INHIBIT_BINARY} not found")

        try:
            process = await asyncio.create_subprocess_exec(
                binary,
                "--what=sleep:idle",
                "--who=geotrack",
                f"--why={KEEP_ALIVE_REASON}",
                "--mode=block",
                "sleep",
                "infinity",
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            raise CapabilityAbsent(f"could not start {self.INHIBIT_BINARY}: {exc}") from exc

        # An inhibitor that exits right away was refused (no logind, no bus).
        try:
            returncode = await asyncio.wait_for(process.wait(), timeout=self._startup_grace_s)
        except asyncio.TimeoutError:
            logger.debug("Keep-alive inhibitor running (pid %s)", process.pid)
            return KeepAliveHandle(resource=process)
        raise CapabilityAbsent(f"{self.INHIBIT_BINARY} exited with code {returncode}")

    async def release_keep_alive(self, handle: KeepAliveHandle) -> None:
        if handle.released:
            return
        handle.released = True
        process = handle.resource
        if process is None or process.returncode is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=2.0)
        except asyncio.TimeoutError:
            logger.warning("Keep-alive inhibitor did not exit, killing pid %s", process.pid)
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()

    async def register_deferred_sync(self, task_name: str) -> None:
        tasks = await self.pending_deferred_sync()
        if task_name not in tasks:
            tasks.append(task_name)
        try:
            await asyncio.to_thread(self._write_marker, tasks)
        except OSError as exc:
            raise CapabilityAbsent(f"cannot write {self.marker_path}: {exc}") from exc

    async def unregister_deferred_sync(self, task_name: str) -> None:
        tasks = [t for t in await self.pending_deferred_sync() if t != task_name]
        try:
            if tasks:
                await asyncio.to_thread(self._write_marker, tasks)
            else:
                await asyncio.to_thread(self.marker_path.unlink, missing_ok=True)
        except OSError as exc:
            raise CapabilityAbsent(f"cannot update {self.marker_path}: {exc}") from exc

    async def pending_deferred_sync(self) -> List[str]:
        if not await asyncio.to_thread(self.marker_path.exists):
            return []
        try:
            async with aiofiles.open(self.marker_path, "r", encoding="utf-8") as f:
                state = json.loads(await f.read())
            return [str(task) for task in state.get("tasks", [])]
        except (OSError, ValueError, AttributeError) as exc:
            logger.warning("Ignoring unreadable deferred-sync marker %s: %s", self.marker_path, exc)
            return []

    def _write_marker(self, tasks: List[str]) -> None:
        state = {
            "registered_at": datetime.now().isoformat(),
            "pid": os.getpid(),
            "tasks": tasks,
        }
        atomic_write_bytes(
            self.marker_path,
            json.dumps(state, indent=2).encode("utf-8"),
            sync_directory=False,
        )


# =============================================================================
# Coordinator
# =============================================================================


class BackgroundExecutionCoordinator:
    """Issues best-effort background requests on behalf of a session.

    No method raises: CapabilityAbsent and unexpected platform errors are
    reported to the diagnostic sink and answered with a degraded result.
    """

    def __init__(
        self,
        platform: BackgroundPlatform,
        diagnostics: Optional[DiagnosticSink] = None,
        *,
        keep_alive_enabled: bool = True,
        deferred_sync_enabled: bool = True,
        task_name: str = DEFERRED_SYNC_TASK,
    ):
        self.platform = platform
        self.task_name = task_name
        self.keep_alive_enabled = keep_alive_enabled
        self.deferred_sync_enabled = deferred_sync_enabled
        self._diagnostics = diagnostics

    def set_diagnostics(self, diagnostics: Optional[DiagnosticSink]) -> None:
        self._diagnostics = diagnostics

    def _report(self, message: str, level: int = logging.WARNING) -> None:
        if self._diagnostics is not None:
            self._diagnostics(message, level)
        else:
            logger.log(level, message)

    async def check_capability(self) -> bool:
        """Whether the platform can answer background permission queries."""
        try:
            status = await self.platform.query_permission(KEEP_ALIVE_PERMISSION)
        except CapabilityAbsent as exc:
            self._report(f"Background permission query unavailable: {exc}")
            return False
        except Exception as exc:
            self._report(f"Background permission query failed: {exc}", logging.ERROR)
            return False
        self._report(f"Background permission '{KEEP_ALIVE_PERMISSION}': {status.value}", logging.INFO)
        return True

    async def acquire_keep_alive(self) -> Optional[KeepAliveHandle]:
        """Return a keep-alive handle, or None in degraded mode."""
        if not self.keep_alive_enabled:
            return None
        try:
            handle = await self.platform.acquire_keep_alive()
        except CapabilityAbsent as exc:
            self._report(f"Keep-alive unavailable, sampling may pause in background: {exc}")
            return None
        except Exception as exc:
            self._report(f"Keep-alive request failed: {exc}", logging.ERROR)
            return None
        self._report("Keep-alive acquired", logging.INFO)
        return handle

    async def release_keep_alive(self, handle: Optional[KeepAliveHandle]) -> None:
        if handle is None or handle.released:
            return
        try:
            await self.platform.release_keep_alive(handle)
        except Exception as exc:
            handle.released = True
            self._report(f"Keep-alive release failed: {exc}", logging.ERROR)
            return
        self._report("Keep-alive released", logging.INFO)

    async def register_deferred_sync(self) -> bool:
        if not self.deferred_sync_enabled:
            return False
        try:
            await self.platform.register_deferred_sync(self.task_name)
        except CapabilityAbsent as exc:
            self._report(f"Deferred sync unavailable: {exc}")
            return False
        except Exception as exc:
            self._report(f"Deferred sync registration failed: {exc}", logging.ERROR)
            return False
        self._report(f"Deferred sync '{self.task_name}' registered", logging.INFO)
        return True

    async def unregister_deferred_sync(self) -> None:
        try:
            await self.platform.unregister_deferred_sync(self.task_name)
        except Exception as exc:
            self._report(f"Deferred sync unregistration failed: {exc}")

    async def pending_deferred_sync(self) -> List[str]:
        """Task names a previous, interrupted process left registered."""
        try:
            return await self.platform.pending_deferred_sync()
        except Exception as exc:
            self._report(f"Could not read deferred sync state: {exc}")
            return []


__all__ = [
    "PermissionStatus",
    "KeepAliveHandle",
    "BackgroundPlatform",
    "NullBackgroundPlatform",
    "SystemBackgroundPlatform",
    "BackgroundExecutionCoordinator",
]
