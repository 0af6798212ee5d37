"""Base Position Source

Abstract interface for anything that can report the device position: a
one-shot fix plus a continuous subscription. Implementations run their
subscriptions as asyncio tasks and invoke the callbacks from the event loop,
one at a time, in the order fixes are produced.
"""

from __future__ import annotations

import asyncio
import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from geotrack.core.logging_utils import get_module_logger
from ..errors import PositionError, SensorUnavailable
from ..types import Position, PositionRequest

logger = get_module_logger(__name__)

PositionCallback = Callable[[Position], None]
ErrorCallback = Callable[[PositionError], None]

_handle_ids = itertools.count(1)


@dataclass(eq=False)
class SubscriptionHandle:
    """Opaque token returned by :meth:`PositionSource.subscribe`."""

    source_name: str
    handle_id: int = field(default_factory=lambda: next(_handle_ids))

    def __repr__(self) -> str:
        return f"SubscriptionHandle({self.source_name}#{self.handle_id})"


@dataclass(eq=False)
class _Subscription:
    request: PositionRequest
    on_position: PositionCallback
    on_error: ErrorCallback
    task: Optional[asyncio.Task] = None


class PositionSource(ABC):
    """Abstract position sensor.

    Subclasses implement :meth:`is_available`, :meth:`get_once` and
    :meth:`_watch`; the base class owns subscription bookkeeping so that
    :meth:`unsubscribe` is idempotent for every implementation.
    """

    name = "position"

    def __init__(self) -> None:
        self._subscriptions: Dict[SubscriptionHandle, _Subscription] = {}

    @abstractmethod
    async def is_available(self) -> bool:
        """Capability probe: False when this platform has no usable sensor."""

    @abstractmethod
    async def get_once(self, request: PositionRequest) -> Position:
        """Return a single fix.

        Raises:
            SensorUnavailable, PermissionDenied, PositionUnavailable, PositionTimeout
        """

    @abstractmethod
    async def _watch(self, request: PositionRequest, on_position: PositionCallback, on_error: ErrorCallback) -> None:
        """Produce fixes until cancelled."""

    def subscribe(
        self,
        request: PositionRequest,
        on_position: PositionCallback,
        on_error: ErrorCallback,
    ) -> SubscriptionHandle:
        """Start a continuous watch and return its handle.

        Must be called from a running event loop.
        """
        handle = SubscriptionHandle(self.name)
        subscription = _Subscription(request, on_position, on_error)
        subscription.task = asyncio.get_running_loop().create_task(
            self._run_watch(handle, subscription),
            name=f"{self.name}-watch-{handle.handle_id}",
        )
        self._subscriptions[handle] = subscription
        logger.debug("Subscribed %r", handle)
        return handle

    async def unsubscribe(self, handle: Optional[SubscriptionHandle]) -> None:
        """Cancel a watch. Unknown or already-cancelled handles are ignored."""
        if handle is None:
            return
        subscription = self._subscriptions.pop(handle, None)
        if subscription is None or subscription.task is None:
            return
        task = subscription.task
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.debug("Unsubscribed %r", handle)

    async def close(self) -> None:
        """Cancel every outstanding subscription."""
        for handle in list(self._subscriptions):
            await self.unsubscribe(handle)

    @property
    def active_subscriptions(self) -> int:
        return len(self._subscriptions)

    async def _run_watch(self, handle: SubscriptionHandle, subscription: _Subscription) -> None:
        # Transient problems are reported through on_error while the watch keeps
        # running; anything escaping _watch has ended it, so it is fatal.
        try:
            await self._watch(subscription.request, subscription.on_position, subscription.on_error)
        except asyncio.CancelledError:
            raise
        except PositionError as exc:
            if not exc.fatal:
                exc = SensorUnavailable(f"position watch ended: {exc.message}")
            subscription.on_error(exc)
        except Exception as exc:
            logger.exception("Watch %r failed", handle)
            subscription.on_error(SensorUnavailable(f"position watch failed: {exc}"))
        else:
            logger.debug("Watch %r finished", handle)
        finally:
            self._subscriptions.pop(handle, None)


__all__ = [
    "PositionCallback",
    "ErrorCallback",
    "SubscriptionHandle",
    "PositionSource",
]
