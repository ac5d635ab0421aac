"""JSON file-backed work source.

Stores the work set in a single JSON document::

    {"items": [{"id": "q1", "payload": "...", "result": null}, ...]}

An item is pending while its result is missing, blank, or a placeholder
such as "Please wait...". The file is re-read on every call so the source
always reflects durable state, and writes go through a temp file + rename
under an ``asyncio.Lock``.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from cadence.core.constants import DEFAULT_PLACEHOLDER_RESULTS, WORK_SOURCE_BATCH_SIZE
from cadence.core.exceptions import WorkSourceError
from cadence.core.logging import get_logger
from cadence.core.results import is_pending_result
from cadence.execution.loop import BatchCompletionReport, WorkItem

_logger = get_logger("sources.json")


class WorkItemRecord(BaseModel):
    """Serialized form of a WorkItem."""

    id: str = Field(min_length=1)
    payload: Any = None
    result: str | None = None

    def to_item(self) -> WorkItem:
        return WorkItem(item_id=self.id, payload=self.payload, result=self.result)

    @classmethod
    def from_item(cls, item: WorkItem) -> WorkItemRecord:
        return cls(id=item.item_id, payload=item.payload, result=item.result)


class WorkDocument(BaseModel):
    """Root of the JSON file."""

    items: list[WorkItemRecord] = Field(default_factory=list)

    @field_validator("items")
    @classmethod
    def _unique_ids(cls, value: list[WorkItemRecord]) -> list[WorkItemRecord]:
        seen: set[str] = set()
        for record in value:
            if record.id in seen:
                raise ValueError(f"duplicate item id: {record.id}")
            seen.add(record.id)
        return value


class JsonWorkSource:
    """WorkSource persisted in a JSON file.

    Example:
        source = JsonWorkSource(Path("items.json"), batch_size=3)
        await source.add_items([WorkItem("q1", "Summarize the report")])
        batch = await source.generate_batch()
        await source.record_result(batch[0], "The report says ...")
    """

    def __init__(
        self,
        path: Path,
        batch_size: int = WORK_SOURCE_BATCH_SIZE,
        placeholder_results: Sequence[str] = DEFAULT_PLACEHOLDER_RESULTS,
    ) -> None:
        """Initialize the source.

        Args:
            path: JSON file; a missing file is an empty work set.
            batch_size: Maximum items per generate_batch().
            placeholder_results: Stored results that still count as pending.
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.path = Path(path)
        self.batch_size = batch_size
        self.placeholder_results = tuple(placeholder_results)
        self._lock = asyncio.Lock()

    def _read(self) -> WorkDocument:
        if not self.path.exists():
            return WorkDocument()
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            return WorkDocument.model_validate(data)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
            raise WorkSourceError(f"Failed to load work items from {self.path}: {e}") from e

    def _write(self, document: WorkDocument) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(document.model_dump(mode="json"), f, indent=2, ensure_ascii=False)
            temp_file.replace(self.path)
        except OSError as e:
            raise WorkSourceError(f"Failed to write work items to {self.path}: {e}") from e

    def is_resolved(self, result: str | None) -> bool:
        return not is_pending_result(result, self.placeholder_results)

    async def load_items(self) -> list[WorkItem]:
        """Return every item in file order."""
        async with self._lock:
            return [record.to_item() for record in self._read().items]

    async def add_items(self, items: Iterable[WorkItem]) -> int:
        """Append new items.

        Returns:
            Number of items added.

        Raises:
            WorkSourceError: If an id already exists.
        """
        async with self._lock:
            document = self._read()
            existing = {record.id for record in document.items}
            added = 0
            for item in items:
                if item.item_id in existing:
                    raise WorkSourceError(f"Work item already exists: {item.item_id}")
                document.items.append(WorkItemRecord.from_item(item))
                existing.add(item.item_id)
                added += 1
            self._write(document)
        _logger.info("sources.items_added", path=str(self.path), added=added)
        return added

    async def generate_batch(self) -> list[WorkItem]:
        """Return up to ``batch_size`` pending items, in file order."""
        async with self._lock:
            document = self._read()
        pending = [r.to_item() for r in document.items if not self.is_resolved(r.result)]
        batch = pending[: self.batch_size]
        _logger.debug(
            "sources.batch_generated",
            path=str(self.path),
            pending=len(pending),
            batch=[item.item_id for item in batch],
        )
        return batch

    async def report(self) -> BatchCompletionReport:
        async with self._lock:
            document = self._read()
        resolved = sum(1 for r in document.items if self.is_resolved(r.result))
        return BatchCompletionReport.from_counts(len(document.items), resolved)

    async def record_result(self, item: WorkItem, result: str) -> None:
        """Durably store an item's result.

        Raises:
            WorkSourceError: If the item is unknown or the file cannot be written.
        """
        async with self._lock:
            document = self._read()
            for record in document.items:
                if record.id == item.item_id:
                    record.result = result
                    break
            else:
                raise WorkSourceError(f"Unknown work item: {item.item_id}")
            self._write(document)
        item.result = result
        _logger.info("sources.result_recorded", path=str(self.path), item_id=item.item_id)


__all__ = ["JsonWorkSource", "WorkDocument", "WorkItemRecord"]
