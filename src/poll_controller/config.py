"""Controller configuration.

``PollConfig`` holds everything a controller needs and is validated once, at
construction. ``PollSettings`` carries the scalar settings that can come from
the environment (or a ``.env`` file) and turns them into a ``PollConfig`` once
the caller supplies the callables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final

from dotenv import load_dotenv

from .errors import ConfigError

if TYPE_CHECKING:
    from .protocols import ChangeListener, RefreshFn, ShouldRefreshFn

DEFAULT_INTERVAL_MS: Final[int] = 5 * 1000
"""Default milliseconds between scheduled ticks."""

REFRESH_GRACE_MS: Final[int] = 1000
"""Added to every deadline so it marks the end of the next poll cycle."""

_ENV_INTERVAL = "INTERVAL_MS"


async def _async_identity[T](current: T | None) -> T | None:
    return current


def _always_true(current: Any) -> bool:
    return True


def _validate_interval(interval_ms: Any) -> None:
    # bool is an int subclass, reject it explicitly
    if isinstance(interval_ms, bool) or not isinstance(interval_ms, int):
        raise ConfigError(f"interval_ms must be an integer, got {interval_ms!r}")
    if interval_ms <= 0:
        raise ConfigError(f"interval_ms must be positive, got {interval_ms}")


@dataclass(frozen=True, slots=True)
class PollConfig[T]:
    """Immutable configuration for one PollController.

    Attributes:
        initial_value: Value exposed before the first refresh. Default: None.
        refresh_value: Producer called with the current value. May be a
            coroutine function or a plain callable. Default: async identity.
        interval_ms: Milliseconds between scheduled ticks. Must be a positive
            integer. Default: DEFAULT_INTERVAL_MS (5000).
        should_refresh_if: Predicate over the current value. A scheduled tick
            only refreshes when it returned True for the last settled value.
            Default: always True.
        on_change: Optional callback receiving every new PollState.

    Raises:
        ConfigError: If any field is invalid.

    Example:
        ```python
        config = PollConfig(
            initial_value=None,
            refresh_value=fetch_status,
            interval_ms=2000,
            should_refresh_if=lambda status: status != "done",
        )
        ```
    """

    initial_value: T | None = None
    refresh_value: RefreshFn[T] = field(default=_async_identity)
    interval_ms: int = DEFAULT_INTERVAL_MS
    should_refresh_if: ShouldRefreshFn[T] = field(default=_always_true)
    on_change: ChangeListener | None = None

    def __post_init__(self) -> None:
        _validate_interval(self.interval_ms)
        if not callable(self.refresh_value):
            raise ConfigError("refresh_value must be callable")
        if not callable(self.should_refresh_if):
            raise ConfigError("should_refresh_if must be callable")
        if self.on_change is not None and not callable(self.on_change):
            raise ConfigError("on_change must be callable or None")


@dataclass(frozen=True, slots=True)
class PollSettings:
    """Scalar controller settings, loadable from the environment.

    Attributes:
        interval_ms: Milliseconds between scheduled ticks.
    """

    interval_ms: int = DEFAULT_INTERVAL_MS

    def __post_init__(self) -> None:
        _validate_interval(self.interval_ms)

    @classmethod
    def from_env(
        cls, prefix: str = "POLL_", dotenv_path: str | os.PathLike[str] | None = None
    ) -> PollSettings:
        """Read settings from the process environment.

        A ``.env`` file is loaded first (``dotenv_path`` or the nearest one
        found by python-dotenv). Variables already set in the environment win.

        Recognized variables:
            ``{prefix}INTERVAL_MS``: positive integer milliseconds.

        Raises:
            ConfigError: If a variable is set but cannot be parsed.
        """
        load_dotenv(dotenv_path)

        raw = os.environ.get(f"{prefix}{_ENV_INTERVAL}")
        if raw is None or not raw.strip():
            return cls()

        try:
            interval_ms = int(raw.strip())
        except ValueError as e:
            raise ConfigError(
                f"{prefix}{_ENV_INTERVAL} must be an integer, got {raw!r}"
            ) from e

        return cls(interval_ms=interval_ms)

    def to_config(self, **options: Any) -> PollConfig[Any]:
        """Build a PollConfig from these settings plus ``options``.

        ``options`` accepts any other PollConfig field. An explicit
        ``interval_ms`` in ``options`` overrides the loaded one.
        """
        options.setdefault("interval_ms", self.interval_ms)
        return PollConfig(**options)
