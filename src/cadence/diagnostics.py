"""Diagnostics events emitted by the detection/retry/loop core.

The core publishes structured events to a ``DiagnosticsSink``; it has no
opinion about where they end up. Sinks are called synchronously from the
session that emits the event, and a failing sink never breaks that session.
"""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Iterable
from typing import Any, Literal, Protocol, TypedDict, runtime_checkable

from cadence.core.logging import get_logger

_logger = get_logger("diagnostics")

DiagnosticKind = Literal["observation", "error", "escalation", "batch"]

_MAX_CONSECUTIVE_FAILURES = 10


class DiagnosticEvent(TypedDict):
    """One structured diagnostics event."""

    session_id: str
    kind: DiagnosticKind
    payload: dict[str, Any]
    timestamp: float


def make_event(
    session_id: str,
    kind: DiagnosticKind,
    payload: dict[str, Any],
    timestamp: float | None = None,
) -> DiagnosticEvent:
    """Build a DiagnosticEvent stamped with the current wall-clock time."""
    return DiagnosticEvent(
        session_id=session_id,
        kind=kind,
        payload=payload,
        timestamp=time.time() if timestamp is None else timestamp,
    )


@runtime_checkable
class DiagnosticsSink(Protocol):
    """Consumer of diagnostics events."""

    def emit(self, event: DiagnosticEvent) -> None:
        ...


class NullSink:
    """Discards every event."""

    def emit(self, event: DiagnosticEvent) -> None:
        return None


class LoggingSink:
    """Forwards events to the structured logger.

    Observations are high-volume and go to debug; everything else to info.
    """

    def __init__(self, component: str = "diagnostics") -> None:
        self._logger = get_logger(component)

    def emit(self, event: DiagnosticEvent) -> None:
        log = self._logger.debug if event["kind"] == "observation" else self._logger.info
        log(
            f"diagnostics.{event['kind']}",
            session_id=event["session_id"],
            event_timestamp=event["timestamp"],
            **event["payload"],
        )


class CollectingSink:
    """Keeps the most recent events in memory (drop-oldest when full)."""

    def __init__(self, *, max_events: int = 1000) -> None:
        self._events: deque[DiagnosticEvent] = deque(maxlen=max_events)

    def emit(self, event: DiagnosticEvent) -> None:
        self._events.append(event)

    @property
    def events(self) -> list[DiagnosticEvent]:
        return list(self._events)

    def of_kind(self, kind: DiagnosticKind) -> list[DiagnosticEvent]:
        return [e for e in self._events if e["kind"] == kind]

    def for_session(self, session_id: str) -> list[DiagnosticEvent]:
        return [e for e in self._events if e["session_id"] == session_id]

    def clear(self) -> None:
        self._events.clear()


class FanOutSink:
    """Delivers each event to several sinks.

    A sink that raises is logged and skipped; after 10 consecutive failures
    it is disabled.
    """

    def __init__(self, sinks: Iterable[DiagnosticsSink]) -> None:
        self._sinks = list(sinks)
        self._failures = [0] * len(self._sinks)

    def emit(self, event: DiagnosticEvent) -> None:
        for index, sink in enumerate(self._sinks):
            if self._failures[index] >= _MAX_CONSECUTIVE_FAILURES:
                continue
            try:
                sink.emit(event)
                self._failures[index] = 0
            except Exception:
                self._failures[index] += 1
                _logger.warning(
                    "diagnostics.sink_error",
                    sink=type(sink).__name__,
                    event_kind=event["kind"],
                    consecutive_failures=self._failures[index],
                    exc_info=True,
                )
                if self._failures[index] >= _MAX_CONSECUTIVE_FAILURES:
                    _logger.error(
                        "diagnostics.sink_disabled",
                        sink=type(sink).__name__,
                        reason=f"{_MAX_CONSECUTIVE_FAILURES} consecutive failures",
                    )


def safe_emit(sink: DiagnosticsSink | None, event: DiagnosticEvent) -> None:
    """Emit to a sink without letting a sink failure reach the caller."""
    if sink is None:
        return
    try:
        sink.emit(event)
    except Exception:
        _logger.warning(
            "diagnostics.sink_error",
            sink=type(sink).__name__,
            event_kind=event["kind"],
            exc_info=True,
        )


__all__ = [
    "CollectingSink",
    "DiagnosticEvent",
    "DiagnosticKind",
    "DiagnosticsSink",
    "FanOutSink",
    "LoggingSink",
    "NullSink",
    "make_event",
    "safe_emit",
]
