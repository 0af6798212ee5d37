"""
Tracking API package.

Provides tracking-specific API endpoints and the controller they call.
"""

from .controller import TrackingAPIController
from .routes import setup_tracking_routes

__all__ = [
    "TrackingAPIController",
    "setup_tracking_routes",
]
