"""Completion detection for one asynchronous external operation.

The detector polls a ``Probe`` and infers the operation's lifecycle purely
from observation:

- IDLE -> AWAITING_START: detection started, busy signal not seen yet
- AWAITING_START -> BUSY: the busy signal was observed
- BUSY -> SETTLING: the busy signal disappeared
- SETTLING -> BUSY: the busy signal came back (flicker)
- SETTLING -> COMPLETE: ``settle_samples`` consecutive not-busy readings
- AWAITING_START -> COMPLETE: the busy signal never appeared within the start
  grace, and the content fingerprint stayed unchanged for the stabilization
  window (operation finished too fast to be caught busy)
- any -> TIMED_OUT: max duration elapsed, or the session was cancelled

Every wait goes through the ``Scheduler`` and is cancellable.

Example usage:
    detector = CompletionDetector()
    result = await detector.await_completion(probe, DetectionConfig(), token=token)
    if result.state is LifecycleState.COMPLETE:
        text = await page.collect()
"""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from cadence.core.config.detection import DetectionConfig, FollowUpConfig
from cadence.core.config.settings import CadenceConfig
from cadence.core.exceptions import SessionCancelledError
from cadence.core.logging import get_logger
from cadence.diagnostics import DiagnosticsSink, make_event, safe_emit
from cadence.execution.scheduler import AsyncioScheduler, CancelToken, Scheduler

_logger = get_logger("detector")

T = TypeVar("T")

COMPLETED_VIA_BUSY_SIGNAL = "busy_signal"
COMPLETED_VIA_STABILIZATION = "stabilization"


class LifecycleState(str, Enum):
    """Inferred lifecycle state of one operation."""

    IDLE = "idle"
    """Detection has not started."""

    AWAITING_START = "awaiting_start"
    """Waiting for the busy signal to first appear."""

    BUSY = "busy"
    """The busy signal is present."""

    SETTLING = "settling"
    """The busy signal disappeared; waiting out the settle period."""

    COMPLETE = "complete"
    """Terminal: the operation finished."""

    TIMED_OUT = "timed_out"
    """Terminal: max duration elapsed or detection was aborted."""

    @property
    def is_terminal(self) -> bool:
        return self in (LifecycleState.COMPLETE, LifecycleState.TIMED_OUT)


# =============================================================================
# Probe interface
# =============================================================================


async def _resolve(value: T | Awaitable[T]) -> T:
    if inspect.isawaitable(value):
        return await value
    return value


class Probe(ABC):
    """Capability object observing one external operation.

    ``is_busy`` is required. ``fingerprint`` is optional: the default returns
    a constant, so the stabilization fallback then reduces to "the busy
    signal never appeared within the start grace". Both methods may be plain
    or ``async``, and both may raise.
    """

    @abstractmethod
    def is_busy(self) -> bool | Awaitable[bool]:
        """Whether the operation is still in progress."""

    def fingerprint(self) -> str | Awaitable[str]:
        """Cheap digest of the extracted content (length, hash, ...)."""
        return ""


class CallableProbe(Probe):
    """Probe built from plain callables."""

    def __init__(
        self,
        is_busy: Callable[[], bool | Awaitable[bool]],
        fingerprint: Callable[[], str | Awaitable[str]] | None = None,
    ) -> None:
        self._is_busy = is_busy
        self._fingerprint = fingerprint

    def is_busy(self) -> bool | Awaitable[bool]:
        return self._is_busy()

    def fingerprint(self) -> str | Awaitable[str]:
        if self._fingerprint is None:
            return ""
        return self._fingerprint()


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class ObservationSample:
    """One poll of the probe."""

    busy: bool
    timestamp: float
    """Seconds since detection started."""

    fingerprint: str | None = None
    """Content fingerprint, sampled only while awaiting start."""

    indeterminate: bool = False
    """The probe raised; the sample counts as not busy."""


@dataclass(frozen=True)
class StateTransition:
    """One lifecycle transition, with the detection-relative time it happened."""

    from_state: LifecycleState
    to_state: LifecycleState
    elapsed: float


@dataclass
class DetectionResult:
    """Outcome of one detection call.

    ``state`` is always terminal. ``aborted`` distinguishes a cancelled
    detection from a genuine timeout (both report TIMED_OUT).
    """

    state: LifecycleState
    elapsed: float
    aborted: bool = False
    completed_via: str | None = None
    transitions: list[StateTransition] = field(default_factory=list)
    samples: int = 0
    probe_failures: int = 0
    follow_ups: int = 0

    @property
    def completed(self) -> bool:
        return self.state is LifecycleState.COMPLETE

    @property
    def timed_out(self) -> bool:
        return self.state is LifecycleState.TIMED_OUT and not self.aborted

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "elapsed_seconds": round(self.elapsed, 3),
            "aborted": self.aborted,
            "completed_via": self.completed_via,
            "transitions": len(self.transitions),
            "samples": self.samples,
            "probe_failures": self.probe_failures,
            "follow_ups": self.follow_ups,
        }


# =============================================================================
# Detector
# =============================================================================


class _DetectionRun:
    """Mutable state of a single ``await_completion`` call."""

    def __init__(
        self,
        config: DetectionConfig,
        scheduler: Scheduler,
        sink: DiagnosticsSink | None,
        session_id: str,
    ) -> None:
        self.config = config
        self.scheduler = scheduler
        self.sink = sink
        self.session_id = session_id
        self.started_at = scheduler.now()

        self.state = LifecycleState.IDLE
        self.transitions: list[StateTransition] = []
        self.samples = 0
        self.probe_failures = 0
        self.aborted = False
        self.completed_via: str | None = None

        self._settle_count = 0
        self._last_fingerprint: str | None = None
        self._stable_since: float | None = None
        self._last_progress_log = 0.0

    def elapsed(self) -> float:
        return self.scheduler.now() - self.started_at

    def transition(self, to_state: LifecycleState) -> None:
        record = StateTransition(self.state, to_state, self.elapsed())
        self.transitions.append(record)
        _logger.debug(
            "detector.transition",
            session_id=self.session_id,
            from_state=record.from_state.value,
            to_state=to_state.value,
            elapsed_seconds=round(record.elapsed, 3),
        )
        self.state = to_state

    async def sample(self, probe: Probe) -> ObservationSample:
        now = self.elapsed()
        self.samples += 1

        indeterminate = False
        try:
            busy = bool(await _resolve(probe.is_busy()))
        except Exception as e:
            busy = False
            indeterminate = True
            self.probe_failures += 1
            _logger.debug(
                "detector.probe_failed",
                session_id=self.session_id,
                error=str(e)[:200],
                probe_failures=self.probe_failures,
            )

        fingerprint: str | None = None
        if self.state is LifecycleState.AWAITING_START and not busy:
            fingerprint = await self._sample_fingerprint(probe, now)

        sample = ObservationSample(
            busy=busy,
            timestamp=now,
            fingerprint=fingerprint,
            indeterminate=indeterminate,
        )
        safe_emit(
            self.sink,
            make_event(
                self.session_id,
                "observation",
                {
                    "busy": busy,
                    "indeterminate": indeterminate,
                    "state": self.state.value,
                    "elapsed_seconds": round(now, 3),
                },
            ),
        )
        return sample

    async def _sample_fingerprint(self, probe: Probe, now: float) -> str | None:
        try:
            fingerprint = str(await _resolve(probe.fingerprint()))
        except Exception as e:
            self.probe_failures += 1
            self._last_fingerprint = None
            self._stable_since = None
            _logger.debug(
                "detector.fingerprint_failed",
                session_id=self.session_id,
                error=str(e)[:200],
            )
            return None

        if fingerprint != self._last_fingerprint or self._stable_since is None:
            self._last_fingerprint = fingerprint
            self._stable_since = now
        return fingerprint

    def evaluate(self, sample: ObservationSample) -> None:
        """Apply one sample to the state machine."""
        if self.state is LifecycleState.AWAITING_START:
            if sample.busy:
                self.transition(LifecycleState.BUSY)
                self._last_progress_log = sample.timestamp
            elif self._is_stabilized(sample):
                self.completed_via = COMPLETED_VIA_STABILIZATION
                self.transition(LifecycleState.COMPLETE)

        elif self.state is LifecycleState.BUSY:
            if not sample.busy:
                self._settle_count = 1
                self.transition(LifecycleState.SETTLING)
                self._check_settled()

        elif self.state is LifecycleState.SETTLING:
            if sample.busy:
                self._settle_count = 0
                self.transition(LifecycleState.BUSY)
            else:
                self._settle_count += 1
                self._check_settled()

    def _check_settled(self) -> None:
        if self._settle_count >= self.config.settle_samples:
            self.completed_via = COMPLETED_VIA_BUSY_SIGNAL
            self.transition(LifecycleState.COMPLETE)

    def _is_stabilized(self, sample: ObservationSample) -> bool:
        if sample.fingerprint is None or self._stable_since is None:
            return False
        if sample.timestamp < self.config.start_grace_seconds:
            return False
        stable_for = sample.timestamp - self._stable_since
        return stable_for >= self.config.stabilization_window_seconds

    def log_progress(self) -> None:
        if self.state not in (LifecycleState.BUSY, LifecycleState.SETTLING):
            return
        now = self.elapsed()
        if now - self._last_progress_log >= self.config.progress_log_interval_seconds:
            self._last_progress_log = now
            _logger.info(
                "detector.progress",
                session_id=self.session_id,
                state=self.state.value,
                elapsed_minutes=round(now / 60, 1),
            )

    def result(self) -> DetectionResult:
        return DetectionResult(
            state=self.state,
            elapsed=self.elapsed(),
            aborted=self.aborted,
            completed_via=self.completed_via,
            transitions=list(self.transitions),
            samples=self.samples,
            probe_failures=self.probe_failures,
        )


class CompletionDetector:
    """Polls a probe until the operation completes or times out.

    One detector can serve many concurrent sessions; all per-call state lives
    in the call itself.
    """

    def __init__(
        self,
        scheduler: Scheduler | None = None,
        sink: DiagnosticsSink | None = None,
    ) -> None:
        self._scheduler = scheduler or AsyncioScheduler()
        self._sink = sink

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    async def await_completion(
        self,
        probe: Probe,
        config: DetectionConfig | None = None,
        *,
        token: CancelToken | None = None,
        session_id: str = "detector",
    ) -> DetectionResult:
        """Wait for the operation observed by ``probe`` to reach a terminal state.

        Args:
            probe: The operation's probe.
            config: Detection options. Defaults to the normal profile.
            token: Session cancellation token, checked at every poll.
            session_id: Identifier used in logs and diagnostics events.

        Returns:
            A DetectionResult whose state is COMPLETE or TIMED_OUT. A cancelled
            detection returns TIMED_OUT with ``aborted=True``.
        """
        config = config or DetectionConfig()
        run = _DetectionRun(config, self._scheduler, self._sink, session_id)
        run.transition(LifecycleState.AWAITING_START)

        try:
            while True:
                if token is not None:
                    token.raise_if_cancelled()

                sample = await run.sample(probe)
                run.evaluate(sample)
                if run.state is LifecycleState.COMPLETE:
                    break

                elapsed = run.elapsed()
                if elapsed >= config.max_duration_seconds:
                    run.transition(LifecycleState.TIMED_OUT)
                    break

                run.log_progress()
                await self._scheduler.sleep(
                    min(config.poll_interval_seconds, config.max_duration_seconds - elapsed),
                    token,
                )
        except SessionCancelledError:
            run.aborted = True
            run.transition(LifecycleState.TIMED_OUT)

        result = run.result()
        if result.completed:
            _logger.info("detector.complete", session_id=session_id, **result.to_dict())
        elif result.aborted:
            _logger.info("detector.aborted", session_id=session_id, **result.to_dict())
        else:
            _logger.warning("detector.timed_out", session_id=session_id, **result.to_dict())
        return result


class FollowUpWatcher:
    """Completion detection for long research runs that may stop early.

    A research agent sometimes stops shortly after starting (for example to
    ask a clarifying question). When the busy signal disappears within the
    early window, ``follow_up`` is awaited (the caller re-prompts) and
    detection starts over for the remaining budget, at most
    ``max_follow_ups`` times.
    """

    def __init__(
        self,
        detector: CompletionDetector,
        follow_up: Callable[[], Awaitable[None]],
        config: FollowUpConfig | None = None,
        *,
        detection: DetectionConfig | None = None,
    ) -> None:
        self._detector = detector
        self._follow_up = follow_up
        self._config = config or FollowUpConfig()
        self._detection = detection or DetectionConfig()

    @classmethod
    def from_config(
        cls,
        config: CadenceConfig,
        follow_up: Callable[[], Awaitable[None]],
        *,
        scheduler: Scheduler | None = None,
        sink: DiagnosticsSink | None = None,
    ) -> FollowUpWatcher:
        """Create a watcher from the ``follow_up`` and ``detection`` sections."""
        return cls(
            CompletionDetector(scheduler=scheduler, sink=sink),
            follow_up,
            config.follow_up,
            detection=config.detection,
        )

    @property
    def config(self) -> FollowUpConfig:
        return self._config

    async def await_completion(
        self,
        probe: Probe,
        config: DetectionConfig | None = None,
        *,
        token: CancelToken | None = None,
        session_id: str = "detector",
    ) -> DetectionResult:
        config = config or self._detection
        scheduler = self._detector.scheduler
        started_at = scheduler.now()
        follow_ups = 0
        transitions: list[StateTransition] = []
        samples = 0
        probe_failures = 0

        while True:
            offset = scheduler.now() - started_at
            remaining = config.max_duration_seconds - offset
            if remaining <= 0:
                result = DetectionResult(state=LifecycleState.TIMED_OUT, elapsed=offset)
                break

            phase_config = config.model_copy(update={"max_duration_seconds": remaining})
            result = await self._detector.await_completion(
                probe, phase_config, token=token, session_id=session_id
            )
            transitions.extend(
                StateTransition(t.from_state, t.to_state, t.elapsed + offset)
                for t in result.transitions
            )
            samples += result.samples
            probe_failures += result.probe_failures

            stopped_early = (
                result.completed
                and result.completed_via == COMPLETED_VIA_BUSY_SIGNAL
                and result.elapsed + offset <= self._config.early_window_seconds
            )
            if not stopped_early or follow_ups >= self._config.max_follow_ups:
                break

            follow_ups += 1
            _logger.info(
                "detector.follow_up",
                session_id=session_id,
                follow_ups=follow_ups,
                elapsed_seconds=round(result.elapsed + offset, 3),
            )
            await self._follow_up()

        result.elapsed = scheduler.now() - started_at
        result.transitions = transitions
        result.samples = samples
        result.probe_failures = probe_failures
        result.follow_ups = follow_ups
        return result


__all__ = [
    "COMPLETED_VIA_BUSY_SIGNAL",
    "COMPLETED_VIA_STABILIZATION",
    "CallableProbe",
    "CompletionDetector",
    "DetectionResult",
    "FollowUpWatcher",
    "LifecycleState",
    "ObservationSample",
    "Probe",
    "StateTransition",
]
