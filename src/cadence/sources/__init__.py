"""Work sources backed by durable storage."""

from cadence.sources.json_source import JsonWorkSource, WorkDocument, WorkItemRecord

__all__ = ["JsonWorkSource", "WorkDocument", "WorkItemRecord"]
