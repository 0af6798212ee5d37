"""
API Server - aiohttp REST server sharing the tracker's event loop.

Handlers read the tracking session through the controller stored under
``CONTROLLER_KEY``; they never touch session internals directly.
"""

from typing import Any, Callable, List, Optional, Sequence

from aiohttp import web

from geotrack.core.logging_utils import get_module_logger

from .middleware import (
    localhost_only_middleware,
    error_handling_middleware,
    request_logging_middleware,
    set_debug_mode,
)
from .routes import CONTROLLER_KEY, setup_system_routes


logger = get_module_logger("APIServer")

RouteSetup = Callable[[web.Application, Any], None]


class APIServer:
    """
    REST API server for a tracking session.

    System routes are always registered; feature routes are passed in as
    ``route_setups`` callables taking ``(app, controller)``.

    Example:
        server = APIServer(TrackingAPIController(session), route_setups=[setup_tracking_routes])
        await server.start()
        ...
        await server.stop()
    """

    def __init__(
        self,
        controller: Any,
        host: str = "127.0.0.1",
        port: int = 8765,
        localhost_only: bool = True,
        debug: bool = False,
        route_setups: Sequence[RouteSetup] = (),
    ):
        """
        Args:
            controller: Object handed to every route handler
            host: Bind address (loopback by default)
            port: TCP port; 0 picks a free one
            localhost_only: Reject requests from non-loopback peers
            debug: Include tracebacks in 500 responses
            route_setups: Feature route registration functions
        """
        self.controller = controller
        self.host = host
        self.port = port
        self.localhost_only = localhost_only
        self.debug = debug
        self.route_setups = tuple(route_setups)

        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

        set_debug_mode(debug)

    def create_app(self) -> web.Application:
        """Build the application: middleware chain, controller, routes."""
        middlewares: List[Any] = [request_logging_middleware, error_handling_middleware]
        if self.localhost_only:
            middlewares.insert(0, localhost_only_middleware)

        app = web.Application(middlewares=middlewares)
        app[CONTROLLER_KEY] = self.controller

        setup_system_routes(app, self.controller)
        for setup in self.route_setups:
            setup(app, self.controller)

        logger.debug("API routes: %d registered", len(app.router.routes()))
        return app

    async def start(self) -> None:
        """Bind and serve without blocking.

        Raises:
            OSError: The address is unavailable; nothing is left running.
        """
        if self.is_running:
            logger.warning("API server already running on %s", self.url)
            return

        runner = web.AppRunner(self.create_app(), access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise

        self._runner, self._site = runner, site
        self.port = self._bound_port() or self.port
        logger.info("API server listening on %s%s", self.url, " (debug)" if self.debug else "")

    async def stop(self) -> None:
        """Stop serving; a no-op when not running."""
        runner, self._runner, self._site = self._runner, None, None
        if runner is None:
            return
        await runner.cleanup()
        logger.info("API server stopped")

    def _bound_port(self) -> Optional[int]:
        for address in self._runner.addresses if self._runner else ():
            if isinstance(address, tuple) and len(address) >= 2:
                return int(address[1])
        return None

    @property
    def is_running(self) -> bool:
        return self._runner is not None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"


__all__ = ["APIServer", "RouteSetup"]
