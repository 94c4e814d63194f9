"""Poll controller errors.

This module defines the exception hierarchy for the poll controller.
All errors inherit from PollError to allow catch-all error handling.

Note:
    Producer failures raised from a scheduled tick never reach the caller.
    They are recorded on the state (``PollState.last_error``) and logged.
    Only manual triggers surface them, wrapped in RefreshFailed.
"""

from __future__ import annotations


class PollError(Exception):
    """Base exception for all poll controller failures.

    Application code can catch this single exception type to handle any
    controller failure generically.
    """


class ConfigError(PollError, ValueError):
    """Raised when controller configuration is invalid.

    This occurs when:
    - interval_ms is not a positive integer
    - refresh_value, should_refresh_if or on_change is not callable
    - An environment setting cannot be parsed

    Configuration is validated eagerly at construction, so a controller that
    exists always has a usable configuration.
    """


class RefreshFailed(PollError):  # noqa: N818
    """Raised by a manual trigger when the producer raised.

    The producer's exception is chained as ``__cause__``. By the time this is
    raised the controller has already left the refreshing state and recorded
    the original exception as ``last_error``.
    """


class ControllerClosed(PollError):  # noqa: N818
    """Raised when a refresh is requested after teardown."""
