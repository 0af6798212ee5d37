"""System routes and the application key shared by all route modules."""

from aiohttp import web

CONTROLLER_KEY = web.AppKey("controller", object)


def setup_system_routes(app: web.Application, controller) -> None:
    """Register system routes."""
    app.router.add_get("/api/v1/health", health_handler)


async def health_handler(request: web.Request) -> web.Response:
    """GET /api/v1/health - Health check."""
    controller = request.app[CONTROLLER_KEY]
    return web.json_response(await controller.health_check())


__all__ = ["CONTROLLER_KEY", "setup_system_routes"]
