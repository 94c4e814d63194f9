"""Poll state and the pure transition function.

Every change to a controller's state goes through ``transition``, which takes
the current snapshot and an event and returns a new snapshot. Nothing here
touches timers or the event loop, so the state machine can be exercised in
isolation:

    Idle --RefreshStarted--> Refreshing
    Refreshing --RefreshSettled(value, at)--> Idle
    Refreshing --RefreshErrored(error, at)--> Idle
    Refreshing --RefreshAborted--> Idle
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from .config import REFRESH_GRACE_MS

if TYPE_CHECKING:
    from .config import PollConfig


@dataclass(frozen=True, slots=True)
class PollState[T]:
    """Immutable snapshot of a controller's state.

    Attributes:
        value: Current known value, None when absent.
        is_refreshing: True strictly while a producer call is outstanding.
        will_refresh_at: End of the poll cycle in which the next scheduled
            refresh is expected. Informational only.
        should_refresh: Refresh predicate applied to the last settled value.
            Read by scheduled ticks, ignored by manual triggers.
        last_error: Exception raised by the most recent attempt, cleared by
            the next successful one.
    """

    value: T | None
    is_refreshing: bool
    will_refresh_at: datetime
    should_refresh: bool
    last_error: BaseException | None = None


@dataclass(frozen=True, slots=True)
class RefreshStarted:
    """A refresh attempt has begun."""


@dataclass(frozen=True, slots=True)
class RefreshAborted:
    """The attempt was cancelled before the producer settled."""


@dataclass(frozen=True, slots=True)
class RefreshSettled[T]:
    """The producer returned ``value`` at instant ``at``."""

    value: T | None
    at: datetime


@dataclass(frozen=True, slots=True)
class RefreshErrored:
    """The producer raised ``error`` at instant ``at``."""

    error: BaseException
    at: datetime


type PollEvent = (
    RefreshStarted | RefreshAborted | RefreshSettled[Any] | RefreshErrored
)


def compute_next_refresh(interval_ms: int, now: datetime) -> datetime:
    """Return the deadline of the poll cycle that starts at ``now``.

    The extra REFRESH_GRACE_MS makes the deadline point at the end of the
    cycle in which the next tick lands, not its start.
    """
    return now + timedelta(milliseconds=interval_ms + REFRESH_GRACE_MS)


def initial_state[T](config: PollConfig[T], now: datetime) -> PollState[T]:
    """Build the Idle state a new controller starts in."""
    return PollState(
        value=config.initial_value,
        is_refreshing=False,
        will_refresh_at=compute_next_refresh(config.interval_ms, now),
        should_refresh=bool(config.should_refresh_if(config.initial_value)),
    )


def transition[T](
    state: PollState[T], event: PollEvent, config: PollConfig[T]
) -> PollState[T]:
    """Apply ``event`` to ``state`` and return the resulting state.

    Args:
        state: Current snapshot.
        event: What happened.
        config: Supplies the interval and the refresh predicate.

    Returns:
        A new PollState. ``state`` itself is never modified.

    Raises:
        TypeError: If ``event`` is not a known event type.
    """
    if isinstance(event, RefreshStarted):
        return replace(state, is_refreshing=True)

    if isinstance(event, RefreshSettled):
        return PollState(
            value=event.value,
            is_refreshing=False,
            will_refresh_at=compute_next_refresh(config.interval_ms, event.at),
            should_refresh=bool(config.should_refresh_if(event.value)),
        )

    if isinstance(event, RefreshErrored):
        # value and should_refresh stay as they were
        return replace(
            state,
            is_refreshing=False,
            will_refresh_at=compute_next_refresh(config.interval_ms, event.at),
            last_error=event.error,
        )

    if isinstance(event, RefreshAborted):
        return replace(state, is_refreshing=False)

    raise TypeError(f"Unknown poll event: {event!r}")
