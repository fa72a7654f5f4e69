"""
Timer and task scheduling on top of the asyncio event loop.

The clock, checkpoint scheduler and compliance probe all register their
callbacks here, so that teardown can cancel every timer in one place and so
tests can substitute a scheduler driven by virtual time.
"""

import asyncio
import logging
from typing import Callable, Coroutine, Any, Optional, Set

logger = logging.getLogger(__name__)


class TimerHandle:
    """Cancellable registration returned by the scheduler."""

    def __init__(self):
        self._cancelled = False
        self._loop_handle: Optional[asyncio.TimerHandle] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        self._cancelled = True
        if self._loop_handle is not None:
            self._loop_handle.cancel()
            self._loop_handle = None


class AsyncioScheduler:
    """Scheduler backed by the running asyncio loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._handles: Set[TimerHandle] = set()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        """Run `callback` once after `delay` seconds."""
        handle = TimerHandle()

        def fire():
            self._handles.discard(handle)
            if not handle.cancelled:
                callback()

        handle._loop_handle = self.loop.call_later(delay, fire)
        self._handles.add(handle)
        return handle

    def call_every(self, interval: float, callback: Callable[[], Any]) -> TimerHandle:
        """Run `callback` every `interval` seconds until the handle is cancelled."""
        handle = TimerHandle()

        def fire():
            if handle.cancelled:
                return
            # Re-arm first so the callback can still cancel the handle.
            handle._loop_handle = self.loop.call_later(interval, fire)
            callback()

        handle._loop_handle = self.loop.call_later(interval, fire)
        self._handles.add(handle)
        return handle

    def spawn(self, coro: Coroutine) -> asyncio.Task:
        """Run a coroutine as a task, keeping a reference until it finishes."""
        task = self.loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Background task failed", exc_info=error)

    def cancel_all(self):
        """Cancel every timer registered through this scheduler."""
        for handle in list(self._handles):
            handle.cancel()
        self._handles.clear()
