"""Clock and interval timer implementations.

This module provides the default implementations of the Clock and
IntervalTimer protocols:
- SystemClock: timezone-aware UTC wall-clock time
- AsyncioIntervalTimer: fixed-rate wakeups on the running asyncio loop

Both can be swapped for fakes when time needs to be driven by hand.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .protocols import TickCallback

logger = logging.getLogger(__name__)


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class AsyncioIntervalTimer:
    """Fixed-rate recurring timer bound to an asyncio event loop.

    Wakeups are scheduled with ``loop.call_at`` at ``start + n * interval``,
    so a slow callback does not push later wakeups back. Each wakeup runs the
    callback as its own task. The callback is expected to handle its own
    errors; anything that escapes is logged.

    Stop Behavior:
        stop() cancels the pending wakeup and detaches the callback. A
        wakeup that was already dequeued by the loop sees the detached
        callback and does nothing. Callback tasks already running are left
        to finish.

    Example:
        ```python
        async def tick() -> None:
            print("tick")

        timer = AsyncioIntervalTimer()
        timer.start(1000, tick)
        ...
        timer.stop()
        ```

    Attributes:
        _loop: Loop to schedule on. Resolved at start() when not given.
        _handle: Pending wakeup, None when stopped.
        _callback: Coroutine function to run, None when stopped.
        _tasks: Callback tasks still running, kept referenced until done.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._handle: asyncio.TimerHandle | None = None
        self._callback: TickCallback | None = None
        self._interval_s: float = 0.0
        self._next_at: float = 0.0
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def running(self) -> bool:
        return self._callback is not None

    def start(self, interval_ms: int, callback: TickCallback) -> None:
        """Schedule ``callback`` every ``interval_ms`` milliseconds.

        Raises:
            RuntimeError: If already running, or if no loop was given and
                none is running.
            ValueError: If interval_ms is not positive.
        """
        if self.running:
            raise RuntimeError("Timer is already running")
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")

        loop = self._loop or asyncio.get_running_loop()
        self._loop = loop
        self._callback = callback
        self._interval_s = interval_ms / 1000
        self._next_at = loop.time() + self._interval_s
        self._handle = loop.call_at(self._next_at, self._fire)
        logger.debug("Interval timer started (%d ms)", interval_ms)

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._callback is not None:
            self._callback = None
            logger.debug("Interval timer stopped")

    def _fire(self) -> None:
        callback = self._callback
        if callback is None or self._loop is None:
            return

        now = self._loop.time()
        self._next_at += self._interval_s
        # Skip wakeups missed while the loop was blocked instead of bursting
        while self._next_at <= now:
            self._next_at += self._interval_s
        self._handle = self._loop.call_at(self._next_at, self._fire)

        task = self._loop.create_task(callback())
        self._tasks.add(task)
        task.add_done_callback(self._on_tick_done)

    def _on_tick_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Interval timer callback raised", exc_info=exc)
