"""Error kinds, escalation tiers, and remediation actions.

Contains the enums shared by the classifier, the escalation manager and
the operation runner.

Error Kind Taxonomy
===================

Kinds are derived from a failure's textual description by the ordered rule
table in ``classifier.py``. Domain-specific kinds are matched before the
generic network/UI kinds because descriptions overlap (a "search timeout"
is a search failure, not a network timeout).

    | Kind                 | Default max retries | Immediate heavy reset |
    |----------------------|---------------------|-----------------------|
    | search_failure       | 10                  | Yes                   |
    | no_results           | 8                   | Yes                   |
    | platform_unavailable | 5                   | Yes                   |
    | auth_required        | 5                   | Yes                   |
    | network_timeout      | 8                   | No                    |
    | element_not_found    | 5                   | No                    |
    | ui_timing_timeout    | 10                  | No                    |
    | generic              | 8                   | No                    |

Escalation Tiers
================

    | Tier        | Attempts | Delays (s)                    | Remediation        |
    |-------------|----------|-------------------------------|--------------------|
    | lightweight | 1-5      | 1, 2, 5, 10, 15               | retry same context |
    | moderate    | 6-8      | 30, 60, 120                   | reset context      |
    | heavy_reset | 9-20     | 300, 900, 1800, 3600, 7200    | recreate context   |
"""

from __future__ import annotations

from enum import Enum


class RetryDelays:
    """Default per-tier delay schedules, in seconds.

    Indexed by attempt-within-tier; attempts past the end reuse the last entry.
    """

    LIGHTWEIGHT: tuple[float, ...] = (1.0, 2.0, 5.0, 10.0, 15.0)
    MODERATE: tuple[float, ...] = (30.0, 60.0, 120.0)
    HEAVY_RESET: tuple[float, ...] = (300.0, 900.0, 1800.0, 3600.0, 7200.0)


class ErrorKind(str, Enum):
    """Classified kind of an operation failure."""

    SEARCH_FAILURE = "search_failure"
    """The agent's search step failed."""

    NO_RESULTS = "no_results"
    """The operation finished but produced nothing usable."""

    PLATFORM_UNAVAILABLE = "platform_unavailable"
    """The remote platform is down, overloaded or rate limiting."""

    AUTH_REQUIRED = "auth_required"
    """Login or session expired; the context must be recreated."""

    NETWORK_TIMEOUT = "network_timeout"
    """Network-level failure or timeout."""

    ELEMENT_NOT_FOUND = "element_not_found"
    """An expected on-page control was not found."""

    UI_TIMING_TIMEOUT = "ui_timing_timeout"
    """A UI interaction or wait did not happen in time."""

    GENERIC = "generic"
    """Anything the rule table does not recognise."""


class EscalationTier(str, Enum):
    """Escalation tiers, ordered from least to most disruptive.

    Comparison operators follow the escalation order, so
    ``EscalationTier.LIGHTWEIGHT < EscalationTier.HEAVY_RESET``.
    """

    LIGHTWEIGHT = "lightweight"
    MODERATE = "moderate"
    HEAVY_RESET = "heavy_reset"

    @property
    def rank(self) -> int:
        """Position in the escalation order (0 = least disruptive)."""
        return _TIER_ORDER.index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, EscalationTier):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, EscalationTier):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, EscalationTier):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, EscalationTier):
            return NotImplemented
        return self.rank >= other.rank


_TIER_ORDER: tuple[EscalationTier, ...] = (
    EscalationTier.LIGHTWEIGHT,
    EscalationTier.MODERATE,
    EscalationTier.HEAVY_RESET,
)


class RemediationAction(str, Enum):
    """What the caller does to the execution context before the next attempt."""

    RETRY_SAME_CONTEXT = "retry_same_context"
    """Retry in the same window/page."""

    RESET_CONTEXT = "reset_context"
    """Reload the page, then retry."""

    RECREATE_CONTEXT = "recreate_context"
    """Tear down and recreate the session/window, then retry."""
