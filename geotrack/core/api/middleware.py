"""
API middleware: loopback-only access, request timing and JSON errors.

Every error leaves the server in one shape::

    {"error": {"code": "VALIDATION_ERROR", "message": "...", "details": {...}}, "status": 400}
"""

import time
import traceback
from typing import Any, Awaitable, Callable, Dict, Optional

from aiohttp import web

from geotrack.core.logging_utils import get_module_logger


logger = get_module_logger("APIMiddleware")

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

LOCALHOST_IPS = frozenset({"127.0.0.1", "::1", "::ffff:127.0.0.1"})

_debug_mode = False


def set_debug_mode(enabled: bool) -> None:
    """Include tracebacks in 500 responses when enabled."""
    global _debug_mode
    _debug_mode = enabled


def is_debug_mode() -> bool:
    return _debug_mode


def create_error_response(
    code: str,
    message: str,
    status: int = 400,
    details: Optional[Dict[str, Any]] = None,
) -> web.Response:
    """Build the JSON error body used by every route."""
    error: Dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return web.json_response({"error": error, "status": status}, status=status)


def _http_error_code(exc: web.HTTPException) -> str:
    # "Method Not Allowed" -> "METHOD_NOT_ALLOWED"
    return exc.reason.upper().replace(" ", "_") if exc.reason else "HTTP_ERROR"


@web.middleware
async def localhost_only_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Reject peers outside the loopback interface with 403."""
    peer = request.remote
    if peer and peer not in LOCALHOST_IPS:
        logger.warning("Refused %s %s from %s", request.method, request.path, peer)
        return create_error_response(
            "ACCESS_DENIED",
            "API access is restricted to localhost only",
            status=403,
        )
    return await handler(request)


@web.middleware
async def request_logging_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Log method, path, status and latency at DEBUG."""
    started = time.perf_counter()
    response = await handler(request)
    logger.debug(
        "%s %s -> %d in %.1f ms",
        request.method, request.path_qs, response.status, (time.perf_counter() - started) * 1000.0,
    )
    return response


@web.middleware
async def error_handling_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Turn routing errors, ValueError and unexpected exceptions into JSON errors."""
    try:
        return await handler(request)
    except web.HTTPException as exc:
        if exc.status < 400:
            raise
        return create_error_response(_http_error_code(exc), exc.text or str(exc), status=exc.status)
    except ValueError as exc:
        logger.warning("Rejected %s %s: %s", request.method, request.path_qs, exc)
        return create_error_response("VALIDATION_ERROR", str(exc), status=400)
    except Exception as exc:
        logger.exception("Unhandled error in %s %s", request.method, request.path)
        details: Dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
        if _debug_mode:
            details["traceback"] = traceback.format_exc().splitlines()
        return create_error_response(
            "INTERNAL_ERROR",
            "An unexpected error occurred",
            status=500,
            details=details,
        )


__all__ = [
    "LOCALHOST_IPS",
    "set_debug_mode",
    "is_debug_mode",
    "create_error_response",
    "localhost_only_middleware",
    "request_logging_middleware",
    "error_handling_middleware",
]
