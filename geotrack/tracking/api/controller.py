"""
Tracking API controller.

Adapts a TrackingSessionController to the plain dict results the HTTP
routes serialize.
"""

import time
from typing import Any, Dict, Optional

from ..tracking_core.controller import TrackingSessionController
from ..tracking_core.types import SessionState


class TrackingAPIController:
    """Read-only snapshot access plus the start/stop commands."""

    def __init__(self, session: TrackingSessionController):
        self.session = session
        self._started_at = time.monotonic()

    async def health_check(self) -> Dict[str, Any]:
        from geotrack import __version__

        return {
            "status": "healthy",
            "version": __version__,
            "uptime_s": round(time.monotonic() - self._started_at, 3),
            "session_state": self.session.state.value,
        }

    async def get_snapshot(self) -> Dict[str, Any]:
        return self.session.snapshot().to_dict()

    async def get_path(self) -> Dict[str, Any]:
        path = self.session.path
        return {
            "count": len(path),
            "path": [position.to_dict() for position in path],
        }

    async def get_diagnostics(self, limit: Optional[int] = None) -> Dict[str, Any]:
        """Diagnostic lines, oldest first; ``limit`` keeps only the newest."""
        lines = self.session.diagnostics.lines(limit)
        return {"count": len(lines), "lines": list(lines)}

    async def start_tracking(self) -> Dict[str, Any]:
        """Start a session.

        Returns:
            Dict with success flag, the resulting state, and the last error
            when the start failed.
        """
        await self.session.start()
        state = self.session.state
        last_error = self.session.last_error
        result: Dict[str, Any] = {
            "success": state in (SessionState.STARTING, SessionState.TRACKING),
            "state": state.value,
        }
        if not result["success"] and last_error is not None:
            result["error"] = last_error.message
            result["error_code"] = last_error.kind.value.upper()
        return result

    async def stop_tracking(self) -> Dict[str, Any]:
        await self.session.stop()
        return {"success": True, "state": self.session.state.value}


__all__ = ["TrackingAPIController"]
