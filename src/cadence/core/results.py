"""Helpers for deciding whether a collected result is a real response."""

from __future__ import annotations

from collections.abc import Iterable

from cadence.core.constants import DEFAULT_PLACEHOLDER_RESULTS


def is_pending_result(
    result: object,
    placeholders: Iterable[str] = DEFAULT_PLACEHOLDER_RESULTS,
) -> bool:
    """True if ``result`` is missing, blank, or a 'still waiting' placeholder."""
    if result is None:
        return True
    text = str(result).strip()
    if not text:
        return True
    return text in {p.strip() for p in placeholders}


__all__ = ["is_pending_result"]
