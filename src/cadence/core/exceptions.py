"""Exception hierarchy for cadence.

All cadence exceptions inherit from CadenceError, so callers can catch
broadly (CadenceError) or narrowly (e.g., SessionCancelledError).
"""

from __future__ import annotations


class CadenceError(Exception):
    """Base exception for all cadence errors."""


class ConfigurationError(CadenceError):
    """Raised when a configuration file cannot be loaded or is invalid."""


class SessionCancelledError(CadenceError):
    """Raised from a cancellable sleep when the session token is cancelled.

    Cancellation is never a failure: runners and loops translate it into a
    "cancelled" outcome instead of classifying it.
    """


class CompletionTimeoutError(CadenceError):
    """Raised inside an attempt when the completion detector times out."""

    def __init__(self, elapsed_seconds: float, last_state: str) -> None:
        self.elapsed_seconds = elapsed_seconds
        self.last_state = last_state
        super().__init__(
            f"timed out waiting for response completion after "
            f"{elapsed_seconds:.1f}s (last state: {last_state})"
        )


class EmptyResultError(CadenceError):
    """Raised inside an attempt when the collected result is empty or a placeholder."""

    def __init__(self, result: str | None) -> None:
        self.result = result
        super().__init__(f"no results: collected response was empty ({result!r})")


class WorkSourceError(CadenceError):
    """Raised by work sources when durable state cannot be read or written."""
