"""Pytest fixtures for API unit tests.

Provides helpers that wire a tracking session built from test doubles into
an aiohttp application, so endpoints can be exercised without a GPS
receiver or a bound port.
"""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine, Optional, TypeVar

from aiohttp import web

from geotrack.core.api.server import APIServer
from geotrack.tracking.api import TrackingAPIController, setup_tracking_routes
from geotrack.tracking.tracking_core import (
    BackgroundExecutionCoordinator,
    PathStore,
    TrackingSessionController,
)
from tests.infrastructure.mocks.position_mocks import (
    FakeBackgroundPlatform,
    FakePositionSource,
    MemoryKeyValueStore,
)


T = TypeVar("T")


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine synchronously for testing."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def create_session(
    source: Optional[FakePositionSource] = None,
    backend: Optional[MemoryKeyValueStore] = None,
) -> TrackingSessionController:
    """Session controller over in-memory doubles."""
    return TrackingSessionController(
        source or FakePositionSource(),
        PathStore(backend if backend is not None else MemoryKeyValueStore()),
        BackgroundExecutionCoordinator(FakeBackgroundPlatform()),
    )


def create_test_app(session: TrackingSessionController, debug: bool = False) -> web.Application:
    """Create a test application with system and tracking routes."""
    server = APIServer(
        TrackingAPIController(session),
        debug=debug,
        route_setups=[setup_tracking_routes],
    )
    return server.create_app()
