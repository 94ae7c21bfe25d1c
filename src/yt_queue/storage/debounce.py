"""Trailing-edge debounced coroutine execution."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class DeferredTask:
    """Runs a coroutine function once after a quiet period.

    Every ``arm()`` pushes the deadline back to ``delay`` seconds from now,
    so a burst of calls results in a single run timed from the last call.
    Runs never overlap: a run that fires while the previous one is still
    in progress waits for it first.

    Must be armed from inside a running event loop.
    """

    def __init__(self, callback: Callable[[], Awaitable[None]], delay: float) -> None:
        """Initialize DeferredTask.

        Args:
            callback: Coroutine function to run when the timer fires.
            delay: Quiet period in seconds.
        """
        if delay < 0:
            raise ValueError(f"delay must be >= 0, got {delay}")
        self._callback = callback
        self.delay = delay
        self._handle: asyncio.TimerHandle | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def armed(self) -> bool:
        """Check if a run is scheduled."""
        return self._handle is not None

    @property
    def running(self) -> bool:
        """Check if a run is in progress."""
        return self._task is not None and not self._task.done()

    def arm(self) -> None:
        """Schedule a run ``delay`` seconds from now, replacing any pending one."""
        loop = asyncio.get_running_loop()
        self.cancel()
        self._handle = loop.call_later(self.delay, self._fire)

    reset = arm

    def cancel(self) -> None:
        """Drop the pending run, if any. A run in progress is not affected."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def fire(self) -> asyncio.Task[None]:
        """Run now instead of waiting for the deadline."""
        self.cancel()
        return self._fire()

    async def flush(self) -> None:
        """Run a pending call immediately and wait for all runs to finish."""
        if self.armed:
            self.fire()
        if self._task is not None:
            await asyncio.wait([self._task])

    def _fire(self) -> asyncio.Task[None]:
        self._handle = None
        self._task = asyncio.ensure_future(self._run(self._task))
        return self._task

    async def _run(self, previous: asyncio.Task[None] | None) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        try:
            await self._callback()
        except Exception:
            logger.exception("Deferred task failed")
