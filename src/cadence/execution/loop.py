"""Task completion loop: drives a set of work items to completion.

Each iteration:

1. asks the work source for the next executable batch,
2. stops if the batch is empty (complete, or nothing processable),
3. runs every item through the executor; item failures are recorded and
   never abort the batch,
4. backs off ``min(base + iteration * step, cap)`` seconds,
5. re-reads the source's completion report and stops when complete.

The iteration circuit breaker stops the loop after ``max_iterations``
iterations. Every exit path returns a ``BatchCompletionReport`` carrying a
``TerminationReason``; nothing is raised to the caller.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from cadence.core.config.loop import LoopConfig
from cadence.core.exceptions import SessionCancelledError
from cadence.core.logging import LogContext, get_current_context, get_logger, with_context
from cadence.diagnostics import DiagnosticsSink, make_event, safe_emit
from cadence.execution.escalation import EscalationMetrics, EscalationSnapshot, aggregate_snapshots
from cadence.execution.runner import Operation, OperationOutcome, OperationRunner
from cadence.execution.scheduler import AsyncioScheduler, CancelToken, Scheduler

_logger = get_logger("loop")


@dataclass
class WorkItem:
    """One outstanding unit of work.

    The core never deletes or resolves items itself; the work source owns
    persistence and decides when an item is done.
    """

    item_id: str
    payload: Any = None
    result: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.item_id, "payload": self.payload, "result": self.result}


class TerminationReason(str, Enum):
    """Why the loop stopped."""

    COMPLETE = "complete"
    """Every expected item is resolved."""

    NO_PROCESSABLE_WORK = "no_processable_work"
    """The source returned an empty batch while items are still pending."""

    EXHAUSTED = "exhausted"
    """The iteration circuit breaker tripped."""

    CANCELLED = "cancelled"
    """The session token was cancelled."""

    SOURCE_FAILED = "source_failed"
    """The work source raised while generating a batch or a report."""


@dataclass(frozen=True)
class ItemFailure:
    """An item whose execution failed during one iteration."""

    item_id: str
    iteration: int
    error: str
    error_kind: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "iteration": self.iteration,
            "error": self.error,
            "error_kind": self.error_kind,
        }


@dataclass(frozen=True)
class BatchCompletionReport:
    """Completion status of the work set.

    Work sources return plain counts; the loop adds ``termination``,
    ``iterations`` and ``failures`` to the report it returns.
    """

    expected_count: int
    resolved_count: int
    pending_count: int
    termination: TerminationReason | None = None
    iterations: int = 0
    failures: tuple[ItemFailure, ...] = field(default_factory=tuple)
    message: str | None = None
    counts_known: bool = True
    """False when the source could not be read; such a report is never complete."""

    @classmethod
    def from_counts(cls, expected_count: int, resolved_count: int) -> BatchCompletionReport:
        return cls(
            expected_count=expected_count,
            resolved_count=resolved_count,
            pending_count=expected_count - resolved_count,
        )

    @classmethod
    def unknown(cls) -> BatchCompletionReport:
        """Report for a work set whose counts could not be read."""
        return cls(expected_count=0, resolved_count=0, pending_count=0, counts_known=False)

    @property
    def is_complete(self) -> bool:
        return self.counts_known and self.expected_count == self.resolved_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "expected_count": self.expected_count,
            "resolved_count": self.resolved_count,
            "pending_count": self.pending_count,
            "counts_known": self.counts_known,
            "is_complete": self.is_complete,
            "termination": self.termination.value if self.termination else None,
            "iterations": self.iterations,
            "failures": [f.to_dict() for f in self.failures],
            "message": self.message,
        }


@runtime_checkable
class WorkSource(Protocol):
    """Durable owner of the work set.

    Must reflect durable state and serialize its own reads and writes when
    several sessions share it.
    """

    async def generate_batch(self) -> Sequence[WorkItem]:
        """Return the next executable pending items (possibly none)."""
        ...

    async def report(self) -> BatchCompletionReport:
        """Return the current completion counts."""
        ...


class ItemExecutor(Protocol):
    """Runs one work item to success, exhaustion or cancellation."""

    async def run(self, item: WorkItem, token: CancelToken | None = None) -> OperationOutcome:
        ...


class OperationExecutor:
    """ItemExecutor composing an OperationRunner.

    Every item gets its own escalation session; on success the result is
    handed to ``persist`` (usually the work source's ``record_result``).

    Example:
        executor = OperationExecutor(
            runner,
            operation_factory=lambda item: PromptOperation(page, item.payload),
            persist=source.record_result,
        )
    """

    def __init__(
        self,
        runner: OperationRunner,
        operation_factory: Callable[[WorkItem], Operation],
        persist: Callable[[WorkItem, str], Awaitable[None]] | None = None,
    ) -> None:
        self._runner = runner
        self._operation_factory = operation_factory
        self._persist = persist
        self._snapshots: list[EscalationSnapshot] = []

    @property
    def snapshots(self) -> list[EscalationSnapshot]:
        """Escalation snapshots of every finished item session."""
        return list(self._snapshots)

    def metrics(self) -> EscalationMetrics:
        """Aggregated escalation metrics over all item sessions."""
        return aggregate_snapshots(self._snapshots)

    async def run(self, item: WorkItem, token: CancelToken | None = None) -> OperationOutcome:
        parent = get_current_context()
        ctx = LogContext(session_id=item.item_id, item_id=item.item_id, component="executor")
        if parent is not None:
            ctx = replace(ctx, run_id=parent.run_id)

        with with_context(ctx):
            state = self._runner.manager.new_state(session_id=item.item_id)
            try:
                outcome = await self._runner.run(
                    self._operation_factory(item),
                    state=state,
                    token=token,
                    session_id=item.item_id,
                )
            finally:
                self._snapshots.append(state.snapshot())

            if outcome.succeeded and outcome.result is not None and self._persist is not None:
                await self._persist(item, outcome.result)
            return outcome


class TaskCompletionLoop:
    """Repeatedly executes pending work until complete or a breaker trips."""

    def __init__(
        self,
        config: LoopConfig | None = None,
        *,
        scheduler: Scheduler | None = None,
        sink: DiagnosticsSink | None = None,
    ) -> None:
        self._config = config or LoopConfig()
        self._scheduler = scheduler or AsyncioScheduler()
        self._sink = sink

    async def run(
        self,
        source: WorkSource,
        executor: ItemExecutor,
        token: CancelToken | None = None,
    ) -> BatchCompletionReport:
        """Drive ``source`` to completion.

        Returns:
            The last known report with ``termination`` set. When the loop
            stops before any report was read, the source is asked once more;
            if that fails too the report has ``counts_known=False`` and is
            never complete. Never raises for item, source or cancellation
            failures.
        """
        run_id = str(uuid.uuid4())
        with with_context(LogContext(session_id=f"loop-{run_id[:8]}", component="loop", run_id=run_id)):
            return await self._run(source, executor, token, f"loop-{run_id[:8]}")

    async def _run(
        self,
        source: WorkSource,
        executor: ItemExecutor,
        token: CancelToken | None,
        session_id: str,
    ) -> BatchCompletionReport:
        failures: list[ItemFailure] = []
        last_report: BatchCompletionReport | None = None
        iteration = 0

        async def finish(
            report: BatchCompletionReport | None,
            reason: TerminationReason,
            iterations: int,
            message: str | None = None,
        ) -> BatchCompletionReport:
            if report is None:
                try:
                    report = await source.report()
                except Exception as e:
                    _logger.warning("loop.final_report_failed", error=str(e))
                    report = BatchCompletionReport.unknown()
            final = replace(
                report,
                termination=reason,
                iterations=iterations,
                failures=tuple(failures),
                message=message,
            )
            log = _logger.info if reason is TerminationReason.COMPLETE else _logger.warning
            log("loop.finished", **final.to_dict())
            safe_emit(self._sink, make_event(session_id, "batch", final.to_dict()))
            return final

        while True:
            iteration += 1
            if iteration > self._config.max_iterations:
                return await finish(
                    last_report,
                    TerminationReason.EXHAUSTED,
                    iteration - 1,
                    f"stopped after {self._config.max_iterations} iterations",
                )
            if token is not None and token.cancelled:
                return await finish(last_report, TerminationReason.CANCELLED, iteration - 1)

            _logger.info("loop.iteration", iteration=iteration)
            try:
                batch = list(await source.generate_batch())
            except Exception as e:
                _logger.error("loop.source_failed", stage="generate_batch", error=str(e), exc_info=True)
                return await finish(last_report, TerminationReason.SOURCE_FAILED, iteration, str(e))

            if not batch:
                try:
                    report = await source.report()
                except Exception as e:
                    _logger.error("loop.source_failed", stage="report", error=str(e), exc_info=True)
                    return await finish(
                        last_report or BatchCompletionReport.unknown(),
                        TerminationReason.SOURCE_FAILED,
                        iteration,
                        str(e),
                    )
                reason = (
                    TerminationReason.COMPLETE
                    if report.is_complete
                    else TerminationReason.NO_PROCESSABLE_WORK
                )
                return await finish(report, reason, iteration)

            executed = 0
            for item in batch:
                if token is not None and token.cancelled:
                    return await finish(last_report, TerminationReason.CANCELLED, iteration)
                try:
                    outcome = await executor.run(item, token)
                except SessionCancelledError:
                    return await finish(last_report, TerminationReason.CANCELLED, iteration)
                except Exception as e:
                    _logger.error(
                        "loop.item_failed",
                        iteration=iteration,
                        item_id=item.item_id,
                        error=str(e),
                        exc_info=True,
                    )
                    failures.append(ItemFailure(item.item_id, iteration, str(e) or type(e).__name__))
                    continue

                executed += 1
                if outcome.cancelled:
                    return await finish(last_report, TerminationReason.CANCELLED, iteration)
                if not outcome.succeeded:
                    failures.append(
                        ItemFailure(
                            item.item_id,
                            iteration,
                            outcome.error or outcome.status.value,
                            outcome.error_kind.value if outcome.error_kind else None,
                        )
                    )

            delay = self._config.backoff_for(iteration)
            safe_emit(
                self._sink,
                make_event(
                    session_id,
                    "batch",
                    {
                        "iteration": iteration,
                        "batch_size": len(batch),
                        "executed": executed,
                        "failures": len(failures),
                        "backoff_seconds": delay,
                    },
                ),
            )
            try:
                await self._scheduler.sleep(delay, token)
            except SessionCancelledError:
                return await finish(last_report, TerminationReason.CANCELLED, iteration)

            try:
                last_report = await source.report()
            except Exception as e:
                _logger.error("loop.source_failed", stage="report", error=str(e), exc_info=True)
                return await finish(
                    last_report or BatchCompletionReport.unknown(),
                    TerminationReason.SOURCE_FAILED,
                    iteration,
                    str(e),
                )

            _logger.info(
                "loop.progress",
                iteration=iteration,
                resolved=last_report.resolved_count,
                expected=last_report.expected_count,
            )
            if last_report.is_complete:
                return await finish(last_report, TerminationReason.COMPLETE, iteration)


__all__ = [
    "BatchCompletionReport",
    "ItemExecutor",
    "ItemFailure",
    "OperationExecutor",
    "TaskCompletionLoop",
    "TerminationReason",
    "WorkItem",
    "WorkSource",
]
