"""Periodic refresh controller.

``PollController`` re-runs a caller-supplied producer on a fixed interval and
exposes the latest value with its metadata. A controller combines three
responsibilities:

1. State store: holds an immutable PollState and replaces it through
   ``transition`` only.
2. Timer scheduler: an IntervalTimer that wakes the controller every
   ``interval_ms``.
3. Refresh executor: runs one producer call, bracketed by the
   RefreshStarted and RefreshSettled/RefreshErrored events.

Scheduled ticks honor ``should_refresh``. Manual triggers do not. Both go
through the same RefreshGate, so producer calls never overlap.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from types import TracebackType
from typing import TYPE_CHECKING, Any

from .config import PollConfig
from .errors import ConfigError, ControllerClosed, RefreshFailed
from .refresh_gate import RefreshGate
from .state import (
    PollState,
    RefreshAborted,
    RefreshErrored,
    RefreshSettled,
    RefreshStarted,
    initial_state,
    transition,
)
from .timers import AsyncioIntervalTimer, SystemClock

if TYPE_CHECKING:
    from .protocols import Clock, IntervalTimer
    from .state import PollEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PollResult[T]:
    """What a consumer renders: the state plus a way to force a refresh.

    Attributes:
        value: Current value.
        will_refresh_at: Deadline of the next scheduled refresh.
        is_refreshing: True while a producer call is outstanding.
        trigger_refresh: Coroutine function forcing an immediate refresh.
    """

    value: T | None
    will_refresh_at: datetime
    is_refreshing: bool
    trigger_refresh: Callable[[], Awaitable[T | None]]


class PollController[T]:
    """Re-invokes an async producer on a fixed interval.

    Lifecycle:
        - Construction builds the initial state and evaluates the predicate
          against ``initial_value``. The first deadline counts from here.
        - start() begins ticking. The first tick lands ``interval_ms`` later.
        - teardown() (alias: stop()) stops ticking for good. It is idempotent.

    Overlapping Refreshes:
        A manual trigger issued while an attempt is in flight joins that
        attempt and returns its result. A tick that fires while an attempt is
        in flight is skipped.

    Teardown With A Refresh In Flight:
        The attempt is not cancelled. It runs to completion and callers
        awaiting it get its result. The settled value, deadline and error are
        discarded and the listener is not called again. Only
        ``is_refreshing`` drops back to False once the attempt ends.

    In-Flight Flag:
        ``is_refreshing`` turns True synchronously inside trigger_refresh()
        or the tick, before the producer task is scheduled.

    Failures:
        A producer exception always clears ``is_refreshing`` and is kept as
        ``last_error``. Manual triggers raise RefreshFailed from it. Scheduled
        ticks log it and carry on.

    Example:
        ```python
        async def fetch_status(current):
            return await client.get_status()

        async with PollController(
            refresh_value=fetch_status,
            interval_ms=2000,
            should_refresh_if=lambda status: status != "done",
        ) as poll:
            ...
            status = await poll.trigger_refresh()
            print(poll.observe().will_refresh_at)
        ```

    Args:
        config: Complete configuration. Mutually exclusive with ``options``.
        clock: Wall-clock source. Default: SystemClock.
        timer: Recurring timer. Default: AsyncioIntervalTimer on the running
            loop.
        **options: PollConfig fields, used when ``config`` is omitted.

    Raises:
        ConfigError: If the configuration is invalid, or if both ``config``
            and ``options`` are given.
    """

    def __init__(
        self,
        config: PollConfig[T] | None = None,
        *,
        clock: Clock | None = None,
        timer: IntervalTimer | None = None,
        **options: Any,
    ) -> None:
        if config is None:
            config = PollConfig(**options)
        elif options:
            raise ConfigError(
                "Pass either a PollConfig or keyword options, not both "
                f"(got {sorted(options)})"
            )

        self._config: PollConfig[T] = config
        self._clock: Clock = clock or SystemClock()
        self._timer: IntervalTimer = timer or AsyncioIntervalTimer()
        self._gate = RefreshGate()
        self._closed = False
        self._state: PollState[T] = initial_state(config, self._clock.now())

    def __repr__(self) -> str:
        state = self._state
        return (
            f"<PollController interval_ms={self._config.interval_ms} "
            f"value={state.value!r} is_refreshing={state.is_refreshing} "
            f"closed={self._closed}>"
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Begin scheduled ticks. Does nothing if already started.

        Raises:
            ControllerClosed: If the controller was torn down.
            RuntimeError: If the default timer is used outside a running loop.
        """
        if self._closed:
            raise ControllerClosed("Cannot start a controller after teardown")
        if self._timer.running:
            return
        self._timer.start(self._config.interval_ms, self._tick)

    def teardown(self) -> None:
        """Stop scheduled ticks permanently. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        self._timer.stop()
        logger.debug("Poll controller torn down")

    stop = teardown

    async def __aenter__(self) -> PollController[T]:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.teardown()

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def config(self) -> PollConfig[T]:
        return self._config

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def value(self) -> T | None:
        return self._state.value

    @property
    def is_refreshing(self) -> bool:
        return self._state.is_refreshing

    @property
    def will_refresh_at(self) -> datetime:
        return self._state.will_refresh_at

    @property
    def last_error(self) -> BaseException | None:
        return self._state.last_error

    def observe(self) -> PollState[T]:
        """Return the current state snapshot."""
        return self._state

    def result(self) -> PollResult[T]:
        """Return the consumer-facing view of the current state."""
        state = self._state
        return PollResult(
            value=state.value,
            will_refresh_at=state.will_refresh_at,
            is_refreshing=state.is_refreshing,
            trigger_refresh=self.trigger_refresh,
        )

    # ------------------------------------------------------------------
    # Refreshing
    # ------------------------------------------------------------------

    async def trigger_refresh(self) -> T | None:
        """Refresh now, regardless of ``should_refresh``.

        Returns:
            The producer's result. If an attempt was already in flight, that
            attempt's result.

        Raises:
            ControllerClosed: If the controller was torn down.
            RefreshFailed: If the producer raised. The producer's exception
                is chained as ``__cause__``.
        """
        if self._closed:
            raise ControllerClosed("Cannot refresh after teardown")
        try:
            return await self._run_attempt()
        except Exception as e:
            raise RefreshFailed("Refresh failed") from e

    async def _tick(self) -> None:
        if self._closed:
            return

        state = self._state
        if not state.should_refresh:
            logger.debug("Tick skipped: refresh predicate is false")
            return
        if self._gate.busy:
            logger.debug("Tick skipped: refresh already in flight")
            return

        try:
            await self._run_attempt()
        except Exception as e:
            logger.warning("Scheduled refresh failed: %s", e, exc_info=e)

    def _run_attempt(self) -> Awaitable[T | None]:
        return self._gate.run(
            self._refresh, on_start=self._mark_started, on_cancel=self._mark_aborted
        )

    def _mark_started(self) -> None:
        # Runs in the caller, so is_refreshing is visible before any await
        self._apply(RefreshStarted())
        logger.debug("Refresh started")

    def _mark_aborted(self) -> None:
        if self._state.is_refreshing:
            self._apply(RefreshAborted())

    async def _refresh(self) -> T | None:
        # Read live state; never a value captured when the timer started
        current = self._state.value

        try:
            new_value = await self._produce(current)
            self._apply(RefreshSettled(new_value, self._clock.now()))
        except asyncio.CancelledError:
            self._mark_aborted()
            raise
        except Exception as e:
            self._apply(RefreshErrored(e, self._clock.now()))
            raise

        logger.debug("Refresh settled")
        return new_value

    async def _produce(self, current: T | None) -> T | None:
        result = self._config.refresh_value(current)
        if inspect.isawaitable(result):
            return await result
        return result

    def _apply(self, event: PollEvent) -> None:
        if self._closed:
            # Results that settle after teardown are discarded, but the
            # attempt is over, so it no longer counts as refreshing
            if not isinstance(event, RefreshStarted) and self._state.is_refreshing:
                self._state = transition(self._state, RefreshAborted(), self._config)
            return

        self._state = transition(self._state, event, self._config)

        listener = self._config.on_change
        if listener is None:
            return
        try:
            listener(self._state)
        except Exception as e:
            logger.warning("Poll change listener raised: %s", e, exc_info=e)


def initialize[T](
    config: PollConfig[T] | None = None,
    *,
    clock: Clock | None = None,
    timer: IntervalTimer | None = None,
    **options: Any,
) -> PollController[T]:
    """Create a PollController and start it.

    Accepts the same arguments as PollController. With the default timer this
    must be called while an event loop is running.
    """
    controller: PollController[T] = PollController(
        config, clock=clock, timer=timer, **options
    )
    controller.start()
    return controller
