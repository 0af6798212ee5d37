"""Tracking API routes."""

from aiohttp import web

from geotrack.core.api.middleware import create_error_response
from geotrack.core.api.routes import CONTROLLER_KEY


def setup_tracking_routes(app: web.Application, controller) -> None:
    """Register tracking routes."""
    app.router.add_get("/api/v1/tracking/snapshot", snapshot_handler)
    app.router.add_get("/api/v1/tracking/path", path_handler)
    app.router.add_get("/api/v1/tracking/diagnostics", diagnostics_handler)
    app.router.add_post("/api/v1/tracking/start", start_handler)
    app.router.add_post("/api/v1/tracking/stop", stop_handler)


async def snapshot_handler(request: web.Request) -> web.Response:
    """GET /api/v1/tracking/snapshot - Full read-only session view."""
    controller = request.app[CONTROLLER_KEY]
    return web.json_response(await controller.get_snapshot())


async def path_handler(request: web.Request) -> web.Response:
    """GET /api/v1/tracking/path - Recorded path in arrival order."""
    controller = request.app[CONTROLLER_KEY]
    return web.json_response(await controller.get_path())


async def diagnostics_handler(request: web.Request) -> web.Response:
    """GET /api/v1/tracking/diagnostics?limit=N - Newest diagnostic lines."""
    controller = request.app[CONTROLLER_KEY]
    limit = None
    if "limit" in request.query:
        limit = int(request.query["limit"])
        if limit < 0:
            raise ValueError("limit must be a non-negative integer")
    return web.json_response(await controller.get_diagnostics(limit))


async def start_handler(request: web.Request) -> web.Response:
    """POST /api/v1/tracking/start - Start a tracking session."""
    controller = request.app[CONTROLLER_KEY]
    result = await controller.start_tracking()
    if not result["success"]:
        return create_error_response(
            result.get("error_code", "START_FAILED"),
            result.get("error", f"Session could not start (state: {result['state']})"),
            status=409,
        )
    return web.json_response(result)


async def stop_handler(request: web.Request) -> web.Response:
    """POST /api/v1/tracking/stop - Stop the tracking session."""
    controller = request.app[CONTROLLER_KEY]
    return web.json_response(await controller.stop_tracking())


__all__ = ["setup_tracking_routes"]
