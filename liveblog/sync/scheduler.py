"""One-shot, cancellable timers for the sync client.

The client only talks to a ``Scheduler``, so tests can swap in a fake one
and drive ticks by hand instead of waiting on the wall clock.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

Callback = Callable[[], Awaitable[None]]


class ScheduledCall(ABC):
    """Handle for a pending callback."""

    @abstractmethod
    def cancel(self) -> None:
        """Cancel the callback, including a run that is already in progress."""
        pass

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        pass


class Scheduler(ABC):
    """Runs a coroutine callback once after a delay."""

    @abstractmethod
    def schedule(self, delay: float, callback: Callback) -> ScheduledCall:
        """Schedule ``callback`` to run after ``delay`` seconds.

        Args:
            delay: Seconds to wait.
            callback: Coroutine function taking no arguments.

        Returns:
            A handle that can cancel the call.
        """
        pass


class _AsyncioCall(ScheduledCall):
    def __init__(self, loop: asyncio.AbstractEventLoop, delay: float, callback: Callback):
        self._callback = callback
        self._task: asyncio.Task | None = None
        self._cancelled = False
        self._timer = loop.call_later(delay, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        self._task = asyncio.ensure_future(self._callback())
        self._task.add_done_callback(self._log_failure)

    @staticmethod
    def _log_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        if exc := task.exception():
            logger.error("Scheduled callback failed", exc_info=exc)

    def cancel(self) -> None:
        self._cancelled = True
        self._timer.cancel()
        if self._task and not self._task.done():
            self._task.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running asyncio event loop."""

    def schedule(self, delay: float, callback: Callback) -> ScheduledCall:
        loop = asyncio.get_running_loop()
        return _AsyncioCall(loop, delay, callback)
