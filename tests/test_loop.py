"""Tests for cadence.execution.loop."""

from unittest.mock import AsyncMock

import pytest

from cadence.core.config import LoopConfig, RunnerConfig
from cadence.diagnostics import CollectingSink
from cadence.execution.loop import (
    BatchCompletionReport,
    OperationExecutor,
    TaskCompletionLoop,
    TerminationReason,
    WorkItem,
    WorkSource,
)
from cadence.execution.runner import OperationOutcome, OperationRunner, OperationStatus

from tests.helpers import FakeScheduler, InMemoryWorkSource, ScriptedOperation


def _items(*ids: str, resolved: bool = False) -> list[WorkItem]:
    return [WorkItem(item_id, f"prompt {item_id}", "done" if resolved else None) for item_id in ids]


def _recording_executor(source: InMemoryWorkSource, fail: set[str] | None = None) -> AsyncMock:
    """Executor mock that resolves items through the source (or raises for ``fail``)."""
    fail = fail or set()

    async def run(item: WorkItem, token=None) -> OperationOutcome:
        if item.item_id in fail:
            raise RuntimeError(f"executor crashed on {item.item_id}")
        await source.record_result(item, f"answer {item.item_id}")
        return OperationOutcome(OperationStatus.SUCCEEDED, item.item_id, f"answer {item.item_id}")

    executor = AsyncMock()
    executor.run.side_effect = run
    return executor


@pytest.fixture
def loop(scheduler: FakeScheduler) -> TaskCompletionLoop:
    return TaskCompletionLoop(scheduler=scheduler)


class TestCompletion:
    @pytest.mark.asyncio
    async def test_already_complete_is_idempotent(self, loop):
        source = InMemoryWorkSource(_items("a", "b", resolved=True))
        executor = _recording_executor(source)

        for _ in range(2):
            report = await loop.run(source, executor)
            assert report.termination is TerminationReason.COMPLETE
            assert report.iterations == 1
            assert report.is_complete
        executor.run.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_work_set_is_complete(self, loop):
        report = await loop.run(InMemoryWorkSource([]), _recording_executor(InMemoryWorkSource([])))
        assert report.termination is TerminationReason.COMPLETE
        assert report.expected_count == 0

    @pytest.mark.asyncio
    async def test_operation_executor_resolves_everything(self, scheduler, fast_detection):
        source = InMemoryWorkSource(_items("a", "b", "c"))
        runner = OperationRunner(detection=fast_detection, scheduler=scheduler)
        executor = OperationExecutor(
            runner,
            operation_factory=lambda item: ScriptedOperation([f"answer {item.item_id}"]),
            persist=source.record_result,
        )

        report = await TaskCompletionLoop(scheduler=scheduler).run(source, executor)

        assert report.termination is TerminationReason.COMPLETE
        assert report.iterations == 1
        assert report.resolved_count == 3
        assert scheduler.sleeps == [3.0]
        assert source.items["b"].result == "answer b"

        metrics = executor.metrics()
        assert metrics.total_attempts == 3
        assert metrics.successes == 3
        assert [s.session_id for s in executor.snapshots] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_failed_item_is_retried_next_iteration(self, scheduler, fast_detection):
        source = InMemoryWorkSource(_items("a", "b", "c"))
        operations = {
            "a": ScriptedOperation(["answer a"]),
            "b": ScriptedOperation([RuntimeError("boom"), "late answer"]),
            "c": ScriptedOperation(["answer c"]),
        }
        runner = OperationRunner(
            config=RunnerConfig(max_attempts=1),
            detection=fast_detection,
            scheduler=scheduler,
        )
        executor = OperationExecutor(
            runner,
            operation_factory=lambda item: operations[item.item_id],
            persist=source.record_result,
        )

        report = await TaskCompletionLoop(scheduler=scheduler).run(source, executor)

        assert report.termination is TerminationReason.COMPLETE
        assert report.iterations == 2
        assert len(report.failures) == 1
        failure = report.failures[0]
        assert failure.item_id == "b"
        assert failure.iteration == 1
        assert failure.error_kind == "generic"
        assert source.items["b"].result == "late answer"
        assert scheduler.sleeps == [3.0, 4.0]


class TestBreakers:
    @pytest.mark.asyncio
    async def test_iteration_circuit_breaker(self, scheduler):
        source = InMemoryWorkSource(_items("a", "b"), resolvable=False)
        loop = TaskCompletionLoop(LoopConfig(max_iterations=5), scheduler=scheduler)

        report = await loop.run(source, _recording_executor(source))

        assert report.termination is TerminationReason.EXHAUSTED
        assert report.iterations == 5
        assert source.generate_calls == 5
        assert report.pending_count == 2
        assert scheduler.sleeps == [3.0, 4.0, 5.0, 6.0, 7.0]
        assert "5 iterations" in report.message

    @pytest.mark.asyncio
    async def test_no_processable_work(self, loop):
        source = InMemoryWorkSource(_items("a", "b"), batch_size=0)
        report = await loop.run(source, _recording_executor(source))

        assert report.termination is TerminationReason.NO_PROCESSABLE_WORK
        assert report.iterations == 1
        assert report.pending_count == 2

    @pytest.mark.asyncio
    async def test_executor_exception_does_not_abort_batch(self, scheduler):
        source = InMemoryWorkSource(_items("a", "b"))
        executor = _recording_executor(source, fail={"a"})
        loop = TaskCompletionLoop(LoopConfig(max_iterations=2), scheduler=scheduler)

        report = await loop.run(source, executor)

        assert source.items["b"].result == "answer b"
        assert report.termination is TerminationReason.EXHAUSTED
        assert [(f.item_id, f.iteration) for f in report.failures] == [("a", 1), ("a", 2)]
        assert "executor crashed" in report.failures[0].error

    @pytest.mark.asyncio
    async def test_source_failure(self, loop):
        class BrokenSource(InMemoryWorkSource):
            async def generate_batch(self):
                raise OSError("disk gone")

        source = BrokenSource(_items("a"))
        report = await loop.run(source, _recording_executor(source))

        assert report.termination is TerminationReason.SOURCE_FAILED
        assert report.message == "disk gone"
        assert not report.is_complete
        assert (report.expected_count, report.pending_count) == (1, 1)

    @pytest.mark.asyncio
    async def test_unreadable_source_is_never_complete(self, loop):
        class UnreadableSource(InMemoryWorkSource):
            async def generate_batch(self):
                raise OSError("disk gone")

            async def report(self):
                raise OSError("disk gone")

        source = UnreadableSource(_items("a", "b"))
        report = await loop.run(source, _recording_executor(source))

        assert report.termination is TerminationReason.SOURCE_FAILED
        assert not report.counts_known
        assert not report.is_complete
        assert report.to_dict()["is_complete"] is False

    @pytest.mark.asyncio
    async def test_report_failure_after_empty_batch(self, loop):
        class NoReportSource(InMemoryWorkSource):
            async def report(self):
                self.report_calls += 1
                raise OSError("sheet locked")

        source = NoReportSource(_items("a"), batch_size=0)
        report = await loop.run(source, _recording_executor(source))

        assert report.termination is TerminationReason.SOURCE_FAILED
        assert not report.is_complete
        assert source.report_calls == 1


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, loop, token):
        token.cancel()
        source = InMemoryWorkSource(_items("a"))
        report = await loop.run(source, _recording_executor(source), token)

        assert report.termination is TerminationReason.CANCELLED
        assert report.iterations == 0
        assert source.generate_calls == 0
        assert not report.is_complete
        assert report.pending_count == 1

    @pytest.mark.asyncio
    async def test_cancelled_during_backoff(self, loop, scheduler, token):
        scheduler.on_sleep.append(lambda now: token.cancel("shutdown"))
        source = InMemoryWorkSource(_items("a", "b", "c", "d"))
        report = await loop.run(source, _recording_executor(source), token)

        assert report.termination is TerminationReason.CANCELLED
        assert report.iterations == 1
        assert source.generate_calls == 1
        assert not report.is_complete
        assert (report.resolved_count, report.pending_count) == (3, 1)

    @pytest.mark.asyncio
    async def test_cancelled_outcome_stops_loop(self, loop):
        source = InMemoryWorkSource(_items("a", "b"))
        executor = AsyncMock()
        executor.run.return_value = OperationOutcome(OperationStatus.CANCELLED, "a")

        report = await loop.run(source, executor)

        assert report.termination is TerminationReason.CANCELLED
        assert executor.run.await_count == 1


class TestReporting:
    def test_backoff_schedule(self):
        config = LoopConfig()
        assert [config.backoff_for(i) for i in (1, 2, 10, 28, 29, 100)] == [
            3.0, 4.0, 12.0, 30.0, 30.0, 30.0,
        ]

    def test_report_from_counts(self):
        report = BatchCompletionReport.from_counts(5, 3)
        assert report.pending_count == 2
        assert not report.is_complete
        data = report.to_dict()
        assert data["termination"] is None
        assert data["failures"] == []

    def test_in_memory_source_is_work_source(self):
        assert isinstance(InMemoryWorkSource([]), WorkSource)

    @pytest.mark.asyncio
    async def test_batch_events(self, scheduler):
        sink = CollectingSink()
        source = InMemoryWorkSource(_items("a"))
        loop = TaskCompletionLoop(scheduler=scheduler, sink=sink)

        await loop.run(source, _recording_executor(source))

        batches = sink.of_kind("batch")
        assert batches[0]["payload"]["iteration"] == 1
        assert batches[0]["payload"]["backoff_seconds"] == 3.0
        assert batches[-1]["payload"]["termination"] == "complete"
