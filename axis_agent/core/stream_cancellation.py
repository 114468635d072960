"""
Stream Cancellation — cooperative cancellation for one agent turn.

A single token is created per request by the interface layer and handed to
the orchestrator, every provider call, the wire decoder and retry sleeps.
Cancelling it (typically on client disconnect) stops outbound generation
at the next suspension point.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Optional, TypeVar

from .errors import AxisError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StreamCancelledError(AxisError):
    """Raised when a turn is cancelled. Never retried."""

    def __init__(self, message: str = "Stream cancelled"):
        super().__init__(message)


class StreamCancellationToken:
    """
    Token for cooperative cancellation of streaming and provider calls.

    Usage:
        token = StreamCancellationToken()

        # In the interface layer:
        token.cancel("Client disconnected")

        # In the agent loop / adapters:
        token.check()                       # raises if cancelled
        reply = await token.race(coro)      # aborts a pending await
    """

    def __init__(self):
        self._event = asyncio.Event()
        self._cancel_reason: str = ""

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def cancel_reason(self) -> str:
        return self._cancel_reason

    def cancel(self, reason: str = "Cancelled") -> None:
        if self._event.is_set():
            return
        self._cancel_reason = reason
        self._event.set()
        logger.info("Stream cancellation requested: %s", reason)

    def check(self) -> None:
        """
        Raises:
            StreamCancelledError: If cancellation has been requested.
        """
        if self._event.is_set():
            raise StreamCancelledError(self._cancel_reason or "Stream cancelled")

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait for cancellation; True if cancelled, False on timeout."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable*, abandoning it if the token is cancelled first."""
        if self.is_cancelled and asyncio.iscoroutine(awaitable):
            awaitable.close()
        self.check()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()
        if task.done():
            return task.result()
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        raise StreamCancelledError(self._cancel_reason or "Stream cancelled")

    async def sleep(self, delay: float) -> None:
        """Sleep for *delay* seconds unless cancelled first."""
        if delay <= 0:
            self.check()
            return
        if await self.wait(timeout=delay):
            self.check()


async def guard(awaitable: Awaitable[T], token: Optional[StreamCancellationToken]) -> T:
    """Await *awaitable*, racing it against *token* when one is given."""
    if token is None:
        return await awaitable
    return await token.race(awaitable)
