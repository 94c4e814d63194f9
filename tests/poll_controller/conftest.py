import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from poll_controller import PollController

START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


class FakeTime:
    """
    Controllable clock and interval timer in one object.

    Satisfies both the Clock and IntervalTimer protocols. advance() moves the
    clock forward and awaits the timer callback at every interval boundary it
    crosses, like fake timers' tickAsync.
    """

    def __init__(self, start: datetime = START):
        self.start_at = start
        self.elapsed_ms = 0
        self.interval_ms: int | None = None
        self.callback = None
        self._next_fire_ms = 0
        self.start_calls = 0
        self.stop_calls = 0

    # Clock
    def now(self) -> datetime:
        return self.start_at + timedelta(milliseconds=self.elapsed_ms)

    # IntervalTimer
    @property
    def running(self) -> bool:
        return self.callback is not None

    def start(self, interval_ms: int, callback):
        if self.running:
            raise RuntimeError("already running")
        self.start_calls += 1
        self.interval_ms = interval_ms
        self.callback = callback
        self._next_fire_ms = self.elapsed_ms + interval_ms

    def stop(self):
        self.stop_calls += 1
        self.callback = None

    def shift(self, ms: int):
        """Move the clock without firing the timer."""
        self.elapsed_ms += ms

    async def advance(self, ms: int):
        target = self.elapsed_ms + ms
        while self.callback is not None and self._next_fire_ms <= target:
            self.elapsed_ms = self._next_fire_ms
            self._next_fire_ms += self.interval_ms
            await self.callback()
        self.elapsed_ms = max(self.elapsed_ms, target)

    def at(self, ms: int) -> datetime:
        """Instant ``ms`` milliseconds after the fake start."""
        return self.start_at + timedelta(milliseconds=ms)


class Recorder:
    """
    Producer stub recording every call.

    Resolves to ``result`` (or to the input when ``result`` is omitted).
    """

    def __init__(self, result=..., error: BaseException | None = None):
        self.calls: list = []
        self._result = result
        self._error = error

    async def __call__(self, current):
        self.calls.append(current)
        if self._error is not None:
            raise self._error
        return current if self._result is ... else self._result


async def wait_until(predicate: Callable[[], bool], attempts: int = 100) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture
def make_controller(fake_time: FakeTime):
    """
    Factory fixture that returns a function.

    Usage in tests:
        poll = make_controller(initial_value=1, interval_ms=2000)

    Controllers are started on the fake timer and torn down after the test.
    """
    created: list[PollController] = []

    def _make(*, start: bool = True, **options) -> PollController:
        controller = PollController(clock=fake_time, timer=fake_time, **options)
        if start:
            controller.start()
        created.append(controller)
        return controller

    yield _make

    for controller in created:
        controller.teardown()


@pytest.fixture
def make_recorder() -> type[Recorder]:
    return Recorder


@pytest.fixture(name="wait_until")
def wait_until_fixture():
    return wait_until
