"""Protocol definitions for the poll controller.

This module defines structural interfaces using Protocol (PEP 544) for:
- Wall-clock time
- Recurring timers

Using protocols keeps the controller independent of the real clock and the
running event loop, so tests can drive time by hand. Any class that
implements the required methods satisfies the protocol.

Type aliases give names to the caller-supplied callables.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .state import PollState

# ============================================================================
# Type Aliases
# ============================================================================

type RefreshFn[T] = Callable[[T | None], Awaitable[T | None] | T | None]
"""Producer: computes the next value from the current one.

Usually a coroutine function. A plain callable is accepted too and its return
value is used as the new value.
"""

type ShouldRefreshFn[T] = Callable[[T | None], bool]
"""Predicate deciding whether a scheduled tick should refresh."""

type ChangeListener = Callable[[PollState[Any]], None]
"""Callback invoked with the new state after every applied transition."""

type TickCallback = Callable[[], Awaitable[None]]
"""Coroutine function run by an IntervalTimer on every wakeup."""


# ============================================================================
# Core Protocols
# ============================================================================


class Clock(Protocol):
    """Protocol for wall-clock time sources.

    The controller only reads the clock to compute ``will_refresh_at``.
    Scheduling itself is the timer's job.
    """

    def now(self) -> datetime:
        """Return the current instant as a timezone-aware datetime."""
        ...


class IntervalTimer(Protocol):
    """Protocol for recurring wakeups at a fixed interval.

    Implementers must:
    1. Run ``callback`` once per ``interval_ms``, first ``interval_ms`` after
       start() is called.
    2. Never run ``callback`` again once stop() has returned.
    3. Tolerate stop() being called more than once, or before start().
    """

    @property
    def running(self) -> bool:
        """True between start() and stop()."""
        ...

    def start(self, interval_ms: int, callback: TickCallback) -> None:
        """Begin firing ``callback`` every ``interval_ms`` milliseconds.

        Raises:
            RuntimeError: If the timer is already running.
        """
        ...

    def stop(self) -> None:
        """Stop firing. Idempotent."""
        ...
