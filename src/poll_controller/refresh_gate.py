"""Single-slot gate serializing refresh attempts.

This module implements RefreshGate, which guarantees that at most one refresh
attempt per controller is outstanding at any time. It protects against:

1. A manual trigger racing a scheduled tick
2. Two manual triggers racing each other
3. Overlapping producer calls whose results would overwrite each other

A caller arriving while an attempt is in flight does not start a second one.
It joins the outstanding attempt and receives the same result (or exception).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any

logger = logging.getLogger(__name__)


class RefreshGate:
    """Coalescing in-flight guard for asyncio refresh attempts.

    Concurrency:
        Intended for a single event loop. The check-and-claim in run() has
        no suspension point, so no lock is needed.

    Cancellation:
        Callers await the attempt through asyncio.shield(). Cancelling one
        caller never cancels the attempt itself, so the other callers and the
        controller's state still see it settle.

    Attributes:
        _task: The outstanding attempt, or None when idle.
        _joined: Number of callers that joined an outstanding attempt
            since the gate was last idle.
    """

    def __init__(self) -> None:
        self._task: asyncio.Task[Any] | None = None
        self._joined: int = 0

    @property
    def busy(self) -> bool:
        """True while an attempt is outstanding."""
        return self._task is not None and not self._task.done()

    @property
    def joined(self) -> int:
        """Callers that joined the current (or last) attempt."""
        return self._joined

    async def run[R](
        self,
        attempt: Callable[[], Awaitable[R]],
        *,
        on_start: Callable[[], None] | None = None,
        on_cancel: Callable[[], None] | None = None,
    ) -> R:
        """Run ``attempt`` unless one is already outstanding.

        Args:
            attempt: Zero-argument coroutine function performing one refresh.
                Only called when the gate is idle.
            on_start: Called synchronously when this call claims the gate,
                before the attempt task is created. Not called on join.
            on_cancel: Called if the attempt task ends cancelled, including
                a cancellation delivered before the attempt began running.

        Returns:
            The result of the outstanding attempt, whether this call started
            it or joined it.

        Raises:
            Whatever the attempt raised.
        """
        pending = self._task
        if pending is not None and not pending.done():
            self._joined += 1
            logger.debug("Joining in-flight refresh (%d joined)", self._joined)
            return await asyncio.shield(pending)

        self._joined = 0
        if on_start is not None:
            on_start()
        task = asyncio.get_running_loop().create_task(_as_coroutine(attempt))
        self._task = task
        task.add_done_callback(partial(self._release, on_cancel=on_cancel))
        return await asyncio.shield(task)

    def _release(
        self, task: asyncio.Task[Any], *, on_cancel: Callable[[], None] | None
    ) -> None:
        if self._task is task:
            self._task = None
        if task.cancelled():
            if on_cancel is not None:
                on_cancel()
            return
        # Consume the outcome so a failure nobody awaited is not reported
        # as "exception was never retrieved".
        task.exception()


async def _as_coroutine[R](attempt: Callable[[], Awaitable[R]]) -> R:
    return await attempt()
