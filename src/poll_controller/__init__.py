"""
Periodic refresh controller for asyncio applications.

High-level flow (per tick)
--------------------------
1. The `IntervalTimer` wakes the `PollController` every `interval_ms`.
2. The controller reads its live `PollState`:
   - If `should_refresh` is false, the tick does nothing.
   - If a refresh is already in flight, the tick does nothing.
3. Otherwise the `RefreshGate` runs one refresh attempt:
   - `RefreshStarted` marks the state as refreshing
   - The producer (`refresh_value`) is called with the current value
   - `RefreshSettled` stores the new value, re-evaluates `should_refresh_if`
     and moves `will_refresh_at` to `now + interval_ms + 1s`
4. `trigger_refresh()` runs step 3 immediately and ignores `should_refresh`.

Failure notes
-------------
- A producer exception never leaves the controller stuck refreshing.
- The exception is kept on `PollState.last_error`.
- Manual triggers raise `RefreshFailed`; scheduled ticks log and continue.

Example usage
-------------

.. code-block:: python

    from poll_controller import PollController, PollSettings

    async def fetch_job(current):
        return await api.get_job(job_id)

    settings = PollSettings.from_env()  # reads POLL_INTERVAL_MS (.env aware)

    async with PollController(
        settings.to_config(
            refresh_value=fetch_job,
            should_refresh_if=lambda job: job is None or not job.finished,
            on_change=render,
        )
    ) as poll:
        await poll.trigger_refresh()
        print(poll.value, poll.will_refresh_at)
"""

# Configuration
from .config import DEFAULT_INTERVAL_MS, REFRESH_GRACE_MS, PollConfig, PollSettings

# Controller
from .controller import PollController, PollResult, initialize

# Errors
from .errors import ConfigError, ControllerClosed, PollError, RefreshFailed

# Protocols
from .protocols import ChangeListener, Clock, IntervalTimer, RefreshFn, ShouldRefreshFn

# Refresh gate
from .refresh_gate import RefreshGate

# State
from .state import (
    PollState,
    RefreshAborted,
    RefreshErrored,
    RefreshSettled,
    RefreshStarted,
    compute_next_refresh,
    transition,
)

# Timers
from .timers import AsyncioIntervalTimer, SystemClock

__all__ = [
    # Errors
    "PollError",
    "ConfigError",
    "RefreshFailed",
    "ControllerClosed",
    # Protocols
    "ChangeListener",
    "Clock",
    "IntervalTimer",
    "RefreshFn",
    "ShouldRefreshFn",
    # Configuration
    "DEFAULT_INTERVAL_MS",
    "REFRESH_GRACE_MS",
    "PollConfig",
    "PollSettings",
    # State
    "PollState",
    "RefreshStarted",
    "RefreshSettled",
    "RefreshErrored",
    "RefreshAborted",
    "compute_next_refresh",
    "transition",
    # Refresh gate
    "RefreshGate",
    # Timers
    "AsyncioIntervalTimer",
    "SystemClock",
    # Controller
    "PollController",
    "PollResult",
    "initialize",
]
