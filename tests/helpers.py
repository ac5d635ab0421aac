"""Shared test fakes for cadence tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence

from cadence.execution.detector import Probe
from cadence.execution.loop import BatchCompletionReport, WorkItem
from cadence.execution.runner import Operation
from cadence.execution.scheduler import CancelToken


class FakeScheduler:
    """Virtual clock: ``sleep`` advances time instantly.

    ``on_sleep`` callbacks run after each advance, so tests can cancel a
    token or flip a probe at a given virtual time.
    """

    def __init__(self, start: float = 0.0) -> None:
        self.time = start
        self.sleeps: list[float] = []
        self.on_sleep: list[Callable[[float], None]] = []

    def now(self) -> float:
        return self.time

    async def sleep(self, seconds: float, token: CancelToken | None = None) -> None:
        if token is not None:
            token.raise_if_cancelled()
        self.sleeps.append(seconds)
        self.time += max(0.0, seconds)
        for callback in list(self.on_sleep):
            callback(self.time)
        await asyncio.sleep(0)
        if token is not None:
            token.raise_if_cancelled()


class ScriptedProbe(Probe):
    """Probe replaying a scripted sequence of busy readings.

    Each entry is a bool or an exception to raise. The last entry repeats
    once the script is exhausted.
    """

    def __init__(
        self,
        busy: Sequence[bool | Exception],
        fingerprints: Sequence[str | Exception] | None = None,
    ) -> None:
        self._busy = list(busy)
        self._fingerprints = list(fingerprints) if fingerprints is not None else None
        self.busy_calls = 0
        self.fingerprint_calls = 0

    @staticmethod
    def _next(script: list, index: int):
        value = script[min(index, len(script) - 1)]
        if isinstance(value, Exception):
            raise value
        return value

    def is_busy(self) -> bool:
        self.busy_calls += 1
        return self._next(self._busy, self.busy_calls - 1)

    def fingerprint(self) -> str:
        if self._fingerprints is None:
            return ""
        self.fingerprint_calls += 1
        return self._next(self._fingerprints, self.fingerprint_calls - 1)


class AsyncProbe(Probe):
    """Probe whose methods are coroutines."""

    def __init__(self, busy: Sequence[bool]) -> None:
        self._busy = list(busy)
        self.calls = 0

    async def is_busy(self) -> bool:
        value = self._busy[min(self.calls, len(self._busy) - 1)]
        self.calls += 1
        return value

    async def fingerprint(self) -> str:
        return "same"


class ScriptedOperation(Operation):
    """Operation whose collect() replays results or raises scripted failures.

    The probe is never busy, so with a zero grace/window detection config
    every attempt completes on its first sample.
    """

    def __init__(self, outcomes: Sequence[str | Exception], probe: Probe | None = None) -> None:
        self._outcomes = list(outcomes)
        self._probe = probe
        self.submits = 0
        self.collects = 0

    async def submit(self) -> None:
        self.submits += 1

    def probe(self) -> Probe:
        return self._probe or ScriptedProbe([False])

    async def collect(self) -> str:
        value = self._outcomes[min(self.collects, len(self._outcomes) - 1)]
        self.collects += 1
        if isinstance(value, Exception):
            raise value
        return value


class InMemoryWorkSource:
    """WorkSource over a dict; ``resolvable=False`` never records results."""

    def __init__(
        self,
        items: Sequence[WorkItem],
        batch_size: int = 3,
        resolvable: bool = True,
    ) -> None:
        self.items = {item.item_id: item for item in items}
        self.batch_size = batch_size
        self.resolvable = resolvable
        self.generate_calls = 0
        self.report_calls = 0

    async def generate_batch(self) -> list[WorkItem]:
        self.generate_calls += 1
        pending = [item for item in self.items.values() if not item.result]
        return pending[: self.batch_size]

    async def report(self) -> BatchCompletionReport:
        self.report_calls += 1
        resolved = sum(1 for item in self.items.values() if item.result)
        return BatchCompletionReport.from_counts(len(self.items), resolved)

    async def record_result(self, item: WorkItem, result: str) -> None:
        if self.resolvable:
            self.items[item.item_id].result = result
