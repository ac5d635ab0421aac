"""Executes one operation with classified, escalating retries.

Each attempt:

1. applies the remediation decided after the previous failure
   (retry in place, reset the context, or recreate it),
2. submits the operation,
3. waits for completion through the detector,
4. collects the result; an empty or placeholder result is a failure.

Any exception inside an attempt is classified. The runner stops when the
kind's ``max_retries`` or the global ``max_attempts`` is reached; otherwise
it asks the EscalationManager for the next tier, waits the decided delay
(cancellable) and tries again with that tier's remediation.

Cancellation is reported as a ``cancelled`` outcome, never as a failure.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

from cadence.core.config.detection import DetectionConfig
from cadence.core.config.escalation import RunnerConfig
from cadence.core.constants import TRUNCATE_ERROR_MESSAGE_CHARS
from cadence.core.errors import ErrorKind, EscalationTier, RemediationAction, describe_failure
from cadence.core.exceptions import (
    CompletionTimeoutError,
    EmptyResultError,
    SessionCancelledError,
)
from cadence.core.logging import get_logger
from cadence.core.results import is_pending_result
from cadence.diagnostics import DiagnosticsSink, make_event, safe_emit
from cadence.execution.detector import CompletionDetector, DetectionResult, LifecycleState, Probe
from cadence.execution.escalation import EscalationManager, EscalationState
from cadence.execution.scheduler import AsyncioScheduler, CancelToken, Scheduler

_logger = get_logger("runner")


class Operation(ABC):
    """One asynchronous external operation (e.g. a prompt sent to an agent page)."""

    @abstractmethod
    async def submit(self) -> None:
        """Start the operation."""
        ...

    @abstractmethod
    def probe(self) -> Probe:
        """Return the probe observing the submitted operation."""
        ...

    @abstractmethod
    async def collect(self) -> str:
        """Extract the finished operation's result."""
        ...

    def detection_config(self) -> DetectionConfig | None:
        """Per-operation detection options; None uses the runner's."""
        return None


class RemediationHooks(Protocol):
    """Three escalating levels of execution-context reset."""

    async def retry_same_context(self) -> None: ...

    async def reset_context(self) -> None: ...

    async def recreate_context(self) -> None: ...


class NoopRemediation:
    """Remediation hooks that do nothing."""

    async def retry_same_context(self) -> None:
        return None

    async def reset_context(self) -> None:
        return None

    async def recreate_context(self) -> None:
        return None


class CompletionWaiter(Protocol):
    """Anything that waits for an operation to finish (detector or follow-up watcher)."""

    async def await_completion(
        self,
        probe: Probe,
        config: DetectionConfig | None = None,
        *,
        token: CancelToken | None = None,
        session_id: str = "detector",
    ) -> DetectionResult: ...


class OperationStatus(str, Enum):
    """Final status of an operation."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    """Retry ceiling reached."""

    CANCELLED = "cancelled"


@dataclass
class OperationAttempt:
    """One execution try.

    Attributes:
        attempt_number: 1-indexed attempt number.
        started_at: Wall-clock start (UTC).
        remediation: Remediation applied before this attempt, if any.
        result: Collected result on success.
        error: Failure description on failure.
        error_kind: Classified kind on failure.
        tier: Escalation tier decided after this attempt failed.
        duration_seconds: Scheduler time spent in the attempt.
        detection: Detector result, when detection ran.
    """

    attempt_number: int
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    remediation: RemediationAction | None = None
    result: str | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    tier: EscalationTier | None = None
    duration_seconds: float = 0.0
    detection: DetectionResult | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.result is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempt_number": self.attempt_number,
            "started_at": self.started_at.isoformat(),
            "remediation": self.remediation.value if self.remediation else None,
            "succeeded": self.succeeded,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "tier": self.tier.value if self.tier else None,
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass
class OperationOutcome:
    """Result of running an operation to success, exhaustion or cancellation."""

    status: OperationStatus
    session_id: str
    result: str | None = None
    attempts: list[OperationAttempt] = field(default_factory=list)
    error: str | None = None
    error_kind: ErrorKind | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is OperationStatus.SUCCEEDED

    @property
    def cancelled(self) -> bool:
        return self.status is OperationStatus.CANCELLED

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "session_id": self.session_id,
            "attempts": len(self.attempts),
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
        }


class OperationRunner:
    """Runs operations through detection, classification and escalation.

    Stateless between calls: every ``run`` uses the EscalationState it is
    given (or a fresh one), so one runner can serve concurrent sessions.
    """

    def __init__(
        self,
        manager: EscalationManager | None = None,
        *,
        config: RunnerConfig | None = None,
        detection: DetectionConfig | None = None,
        remediation: RemediationHooks | None = None,
        scheduler: Scheduler | None = None,
        detector: CompletionWaiter | None = None,
        sink: DiagnosticsSink | None = None,
    ) -> None:
        self._manager = manager or EscalationManager()
        self._config = config or RunnerConfig()
        self._detection = detection or DetectionConfig()
        self._remediation: RemediationHooks = remediation or NoopRemediation()
        self._scheduler = scheduler or AsyncioScheduler()
        self._detector = detector or CompletionDetector(self._scheduler, sink)
        self._sink = sink

    @property
    def manager(self) -> EscalationManager:
        return self._manager

    async def run(
        self,
        operation: Operation,
        *,
        state: EscalationState | None = None,
        token: CancelToken | None = None,
        session_id: str = "operation",
    ) -> OperationOutcome:
        """Run ``operation`` until it succeeds, exhausts its retries or is cancelled.

        Args:
            operation: The operation to run.
            state: Escalation state of the session. A fresh one by default.
            token: Session cancellation token.
            session_id: Identifier used in logs and diagnostics events.
        """
        state = state if state is not None else self._manager.new_state(session_id)
        attempts: list[OperationAttempt] = []
        pending_remediation: RemediationAction | None = None
        attempt_number = 0

        while True:
            attempt_number += 1
            if token is not None and token.cancelled:
                return self._cancelled(session_id, attempts)

            self._manager.record_attempt(state)
            attempt = OperationAttempt(attempt_number=attempt_number, remediation=pending_remediation)
            attempts.append(attempt)
            started = self._scheduler.now()
            _logger.debug(
                "runner.attempt_started",
                session_id=session_id,
                attempt_number=attempt_number,
                remediation=pending_remediation.value if pending_remediation else None,
            )

            try:
                if pending_remediation is not None:
                    await self._remediate(pending_remediation, session_id)
                attempt.result = await self._attempt(operation, attempt, token, session_id)
            except SessionCancelledError:
                attempt.duration_seconds = self._scheduler.now() - started
                attempt.error = "cancelled"
                return self._cancelled(session_id, attempts)
            except Exception as e:
                attempt.duration_seconds = self._scheduler.now() - started
                message = describe_failure(e)[:TRUNCATE_ERROR_MESSAGE_CHARS] or type(e).__name__
                kind = self._manager.classify(e)
                attempt.error = message
                attempt.error_kind = kind
                _logger.warning(
                    "runner.attempt_failed",
                    session_id=session_id,
                    attempt_number=attempt_number,
                    error_kind=kind.value,
                    error=message,
                )
                safe_emit(
                    self._sink,
                    make_event(
                        session_id,
                        "error",
                        {"attempt_number": attempt_number, "error_kind": kind.value, "message": message},
                    ),
                )

                if self._is_final(kind, attempt_number):
                    state.record_failure(kind, message)
                    _logger.error(
                        "runner.exhausted",
                        session_id=session_id,
                        attempts=attempt_number,
                        error_kind=kind.value,
                        max_retries=self._manager.policy_for(kind).max_retries,
                        max_attempts=self._config.max_attempts,
                    )
                    return OperationOutcome(
                        status=OperationStatus.FAILED,
                        session_id=session_id,
                        attempts=attempts,
                        error=message,
                        error_kind=kind,
                    )

                decision = self._manager.next_action(state, kind, attempt_number, message)
                attempt.tier = decision.tier
                safe_emit(self._sink, make_event(session_id, "escalation", decision.to_dict()))

                try:
                    await self._scheduler.sleep(decision.delay_seconds, token)
                except SessionCancelledError:
                    return self._cancelled(session_id, attempts)
                pending_remediation = decision.remediation
                continue

            attempt.duration_seconds = self._scheduler.now() - started
            self._manager.record_success(state)
            _logger.info(
                "runner.succeeded",
                session_id=session_id,
                attempts=attempt_number,
            )
            return OperationOutcome(
                status=OperationStatus.SUCCEEDED,
                session_id=session_id,
                result=attempt.result,
                attempts=attempts,
            )

    def _is_final(self, kind: ErrorKind, attempt_number: int) -> bool:
        return (
            self._manager.is_exhausted(kind, attempt_number)
            or attempt_number >= self._config.max_attempts
        )

    async def _attempt(
        self,
        operation: Operation,
        attempt: OperationAttempt,
        token: CancelToken | None,
        session_id: str,
    ) -> str:
        await operation.submit()

        detection = await self._detector.await_completion(
            operation.probe(),
            operation.detection_config() or self._detection,
            token=token,
            session_id=session_id,
        )
        attempt.detection = detection
        if detection.aborted:
            raise SessionCancelledError(token.reason if token and token.reason else "cancelled")
        if detection.state is not LifecycleState.COMPLETE:
            last_state = (
                detection.transitions[-1].from_state.value
                if detection.transitions
                else LifecycleState.AWAITING_START.value
            )
            raise CompletionTimeoutError(detection.elapsed, last_state)

        result = await operation.collect()
        if self._config.reject_empty_results and is_pending_result(
            result, self._config.placeholder_results
        ):
            raise EmptyResultError(result)
        return result

    async def _remediate(self, action: RemediationAction, session_id: str) -> None:
        hooks: dict[RemediationAction, Callable[[], Awaitable[None]]] = {
            RemediationAction.RETRY_SAME_CONTEXT: self._remediation.retry_same_context,
            RemediationAction.RESET_CONTEXT: self._remediation.reset_context,
            RemediationAction.RECREATE_CONTEXT: self._remediation.recreate_context,
        }
        _logger.info("runner.remediation", session_id=session_id, action=action.value)
        await hooks[action]()

    def _cancelled(self, session_id: str, attempts: list[OperationAttempt]) -> OperationOutcome:
        _logger.info("runner.cancelled", session_id=session_id, attempts=len(attempts))
        return OperationOutcome(
            status=OperationStatus.CANCELLED,
            session_id=session_id,
            attempts=attempts,
        )


__all__ = [
    "CompletionWaiter",
    "NoopRemediation",
    "Operation",
    "OperationAttempt",
    "OperationOutcome",
    "OperationRunner",
    "OperationStatus",
    "RemediationHooks",
]
