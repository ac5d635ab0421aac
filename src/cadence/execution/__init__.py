"""Execution layer: completion detection, escalation, operation runner and task loop."""

from cadence.execution.detector import (
    CallableProbe,
    CompletionDetector,
    DetectionResult,
    FollowUpWatcher,
    LifecycleState,
    ObservationSample,
    Probe,
    StateTransition,
)
from cadence.execution.escalation import (
    ErrorRecord,
    EscalationDecision,
    EscalationManager,
    EscalationMetrics,
    EscalationSnapshot,
    EscalationState,
    aggregate_snapshots,
)
from cadence.execution.loop import (
    BatchCompletionReport,
    ItemExecutor,
    ItemFailure,
    OperationExecutor,
    TaskCompletionLoop,
    TerminationReason,
    WorkItem,
    WorkSource,
)
from cadence.execution.runner import (
    NoopRemediation,
    Operation,
    OperationAttempt,
    OperationOutcome,
    OperationRunner,
    OperationStatus,
    RemediationHooks,
)
from cadence.execution.scheduler import AsyncioScheduler, CancelToken, Scheduler

__all__ = [
    "AsyncioScheduler",
    "BatchCompletionReport",
    "CallableProbe",
    "CancelToken",
    "CompletionDetector",
    "DetectionResult",
    "ErrorRecord",
    "EscalationDecision",
    "EscalationManager",
    "EscalationMetrics",
    "EscalationSnapshot",
    "EscalationState",
    "FollowUpWatcher",
    "ItemExecutor",
    "ItemFailure",
    "LifecycleState",
    "NoopRemediation",
    "ObservationSample",
    "Operation",
    "OperationAttempt",
    "OperationExecutor",
    "OperationOutcome",
    "OperationRunner",
    "OperationStatus",
    "Probe",
    "RemediationHooks",
    "Scheduler",
    "StateTransition",
    "TaskCompletionLoop",
    "TerminationReason",
    "WorkItem",
    "WorkSource",
    "aggregate_snapshots",
]
