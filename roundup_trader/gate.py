"""
Cancellation gate for the monitoring loop.

One executor owns one gate. ``start()`` hands out a stop handle, ``trigger()``
resolves it with ``TradeStatus.OK`` exactly once.
"""

import asyncio
from enum import Enum
from typing import Optional

from .utils import AlreadyRunningError, NotRunningError


class TradeStatus(Enum):
    """Outcome of an execute request."""
    OK = "ok"
    FAIL = "fail"


class StopHandle:
    """A pending stop signal. Resolves with ``TradeStatus.OK``."""

    def __init__(self, future: "asyncio.Future[TradeStatus]"):
        self.future = future

    def done(self) -> bool:
        return self.future.done()

    def result(self) -> TradeStatus:
        return self.future.result()

    def __await__(self):
        return self.future.__await__()


class CancellationGate:
    """Single-slot stop signal for one executor."""

    def __init__(self):
        self._active: Optional[StopHandle] = None

    @property
    def is_running(self) -> bool:
        return self._active is not None

    def start(self) -> StopHandle:
        """
        Create a fresh stop handle. Must be called from a running event loop.

        Raises:
            AlreadyRunningError: if a handle is already active
        """
        if self._active is not None:
            raise AlreadyRunningError("A monitoring loop is already running")

        self._active = StopHandle(asyncio.get_running_loop().create_future())
        return self._active

    def trigger(self, handle: Optional[StopHandle] = None) -> TradeStatus:
        """
        Resolve the active handle with ``OK`` and clear the slot.

        Raises:
            NotRunningError: if nothing is active, or ``handle`` is not the active one
        """
        active = self._active
        if active is None or (handle is not None and handle is not active):
            raise NotRunningError("No monitoring loop is running")

        self._active = None
        active.future.set_result(TradeStatus.OK)
        return TradeStatus.OK

    def discard(self, handle: StopHandle) -> None:
        """Clear the slot without resolving it (loop exited for another reason)."""
        if self._active is handle:
            self._active = None
