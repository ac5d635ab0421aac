"""Time and cancellation primitives.

Every wait in cadence goes through a ``Scheduler`` so that tests can swap in
a virtual clock, and every wait is cancellable through a ``CancelToken``.
"""

from __future__ import annotations

import asyncio
import time
from typing import Protocol, runtime_checkable

from cadence.core.exceptions import SessionCancelledError


class CancelToken:
    """Cooperative cancellation flag shared by one session.

    Cancelling wakes up every sleep waiting on the token; those sleeps raise
    ``SessionCancelledError``. A cancelled token stays cancelled.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SessionCancelledError(self._reason or "cancelled")


@runtime_checkable
class Scheduler(Protocol):
    """Clock and sleep used by the detector, the runner and the loop."""

    def now(self) -> float:
        """Monotonic time in seconds."""
        ...

    async def sleep(self, seconds: float, token: CancelToken | None = None) -> None:
        """Sleep for ``seconds``.

        Raises:
            SessionCancelledError: If ``token`` is cancelled before or during the sleep.
        """
        ...


class AsyncioScheduler:
    """Real-time scheduler backed by the running event loop."""

    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float, token: CancelToken | None = None) -> None:
        if token is None:
            await asyncio.sleep(max(0.0, seconds))
            return

        token.raise_if_cancelled()
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(token.wait(), timeout=seconds)
        except TimeoutError:
            return
        token.raise_if_cancelled()


__all__ = ["AsyncioScheduler", "CancelToken", "Scheduler"]
