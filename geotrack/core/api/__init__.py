"""
REST API package.

Provides the aiohttp server, its middleware, and the system routes.
"""

from .middleware import create_error_response
from .routes import CONTROLLER_KEY
from .server import APIServer, RouteSetup

__all__ = [
    "APIServer",
    "CONTROLLER_KEY",
    "RouteSetup",
    "create_error_response",
]
