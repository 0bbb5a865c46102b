"""
Debounced Call - Cancellable delayed coroutine for keystroke-driven lookups.

States:
    IDLE      nothing scheduled
    PENDING   waiting out the quiet period; a new schedule() replaces it
    IN_FLIGHT the call is running; a new schedule() cancels it and starts over

Only the most recently scheduled call ever runs to completion.
"""

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from structlog import get_logger

logger = get_logger(__name__)


class DebounceState(str, Enum):
    """Lifecycle of the scheduled call."""

    IDLE = "idle"
    PENDING = "pending"
    IN_FLIGHT = "in_flight"


class DebouncedCall:
    """Runs a coroutine function after a quiet period, cancelling superseded runs."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.state = DebounceState.IDLE
        self._task: asyncio.Task[None] | None = None

    def schedule(
        self, delay: float, fn: Callable[..., Awaitable[Any]], *args: Any
    ) -> None:
        """Replace whatever is scheduled or running with fn(*args) after delay seconds."""
        self.cancel()
        self.state = DebounceState.PENDING
        self._task = asyncio.create_task(self._run(delay, fn, args))

    async def _run(self, delay: float, fn: Callable[..., Awaitable[Any]], args: tuple) -> None:
        try:
            if delay > 0:
                await asyncio.sleep(delay)
            self.state = DebounceState.IN_FLIGHT
            await fn(*args)
        except asyncio.CancelledError:
            logger.debug("debounced_call_cancelled", name=self.name)
            raise
        finally:
            if self._task is asyncio.current_task():
                self.state = DebounceState.IDLE
                self._task = None

    def cancel(self) -> None:
        """Drop the pending or in-flight call, if any."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self.state = DebounceState.IDLE

    async def join(self) -> None:
        """Wait for the current call to finish. Errors propagate."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
