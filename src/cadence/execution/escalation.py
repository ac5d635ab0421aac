"""Tiered escalation of operation failures.

Turns classified failures into bounded, increasingly disruptive recovery
decisions. Decision order for ``next_action``:

1. Immediate-escalation kinds (search failure, no results, platform
   unavailable, auth required) go straight to heavy_reset.
2. A streak of ``consecutive_same_kind_threshold`` (default 5) failures of
   the same kind forces heavy_reset (runaway-failure breaker).
3. Otherwise the tier whose attempt range contains the attempt number.
4. Attempts beyond every configured range fall back to heavy_reset.

The delay is read from the chosen tier's schedule at
``attempt_number - range_start``, clamped to the schedule bounds.

All mutable per-session data lives in an ``EscalationState`` passed in by the
caller; the manager itself holds only configuration and can be shared.

Example usage:
    manager = EscalationManager()
    state = manager.new_state(session_id="item-7")

    kind = manager.classify(exc)
    decision = manager.next_action(state, kind, attempt_number=3, message=str(exc))
    await scheduler.sleep(decision.delay_seconds, token)
"""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from cadence.core.config.escalation import EscalationConfig, KindPolicy
from cadence.core.constants import ERROR_HISTORY_LIMIT, TRUNCATE_ERROR_MESSAGE_CHARS
from cadence.core.errors import (
    ErrorClassifier,
    ErrorKind,
    EscalationTier,
    RemediationAction,
)
from cadence.core.logging import get_logger

_logger = get_logger("escalation")


@dataclass(frozen=True)
class ErrorRecord:
    """One entry of a session's error history.

    Attributes:
        kind: Classified kind of the failure.
        message: Failure description, truncated.
        timestamp: Wall-clock time of the failure (epoch seconds).
    """

    kind: ErrorKind
    message: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "timestamp": self.timestamp,
        }


@dataclass
class EscalationMetrics:
    """Cumulative counters of one session (or of an aggregate)."""

    total_attempts: int = 0
    successes: int = 0
    per_kind_counts: dict[ErrorKind, int] = field(default_factory=dict)
    per_tier_counts: dict[EscalationTier, int] = field(default_factory=dict)

    @property
    def failures(self) -> int:
        return sum(self.per_kind_counts.values())

    @property
    def success_rate(self) -> float:
        """Successes as a percentage of attempts (0 when nothing was attempted)."""
        if self.total_attempts == 0:
            return 0.0
        return self.successes / self.total_attempts * 100

    def copy(self) -> EscalationMetrics:
        return EscalationMetrics(
            total_attempts=self.total_attempts,
            successes=self.successes,
            per_kind_counts=dict(self.per_kind_counts),
            per_tier_counts=dict(self.per_tier_counts),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_attempts": self.total_attempts,
            "successes": self.successes,
            "success_rate": round(self.success_rate, 1),
            "per_kind_counts": {k.value: v for k, v in self.per_kind_counts.items()},
            "per_tier_counts": {t.value: v for t, v in self.per_tier_counts.items()},
        }


@dataclass(frozen=True)
class EscalationSnapshot:
    """Immutable copy of an EscalationState, safe to hand to other sessions."""

    session_id: str
    consecutive_same_kind_count: int
    last_kind: ErrorKind | None
    error_history: tuple[ErrorRecord, ...]
    metrics: EscalationMetrics

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "consecutive_same_kind_count": self.consecutive_same_kind_count,
            "last_kind": self.last_kind.value if self.last_kind else None,
            "error_history": [r.to_dict() for r in self.error_history],
            "metrics": self.metrics.to_dict(),
        }


class EscalationState:
    """Mutable escalation data of one logical retry session.

    Owned by exactly one session. Never reset implicitly: a new session
    gets a fresh state, or the caller calls ``reset()``.
    """

    def __init__(self, session_id: str = "", history_limit: int = ERROR_HISTORY_LIMIT) -> None:
        self.session_id = session_id
        self.consecutive_same_kind_count = 0
        self.last_kind: ErrorKind | None = None
        self.error_history: deque[ErrorRecord] = deque(maxlen=history_limit)
        self.metrics = EscalationMetrics()

    def record_failure(self, kind: ErrorKind, message: str) -> ErrorRecord:
        """Update the streak, the bounded history and the per-kind counters."""
        if kind == self.last_kind:
            self.consecutive_same_kind_count += 1
        else:
            self.last_kind = kind
            self.consecutive_same_kind_count = 1

        record = ErrorRecord(kind=kind, message=message[:TRUNCATE_ERROR_MESSAGE_CHARS])
        self.error_history.append(record)
        self.metrics.per_kind_counts[kind] = self.metrics.per_kind_counts.get(kind, 0) + 1
        return record

    def reset(self) -> None:
        """Explicitly start over: clears the streak, history and metrics."""
        self.consecutive_same_kind_count = 0
        self.last_kind = None
        self.error_history.clear()
        self.metrics = EscalationMetrics()

    def snapshot(self) -> EscalationSnapshot:
        return EscalationSnapshot(
            session_id=self.session_id,
            consecutive_same_kind_count=self.consecutive_same_kind_count,
            last_kind=self.last_kind,
            error_history=tuple(self.error_history),
            metrics=self.metrics.copy(),
        )


@dataclass(frozen=True)
class EscalationDecision:
    """What to do after a failure.

    Attributes:
        tier: Selected escalation tier.
        delay_seconds: How long to wait before the next attempt.
        remediation: Action the caller performs on its execution context.
        reason: Why this tier was selected.
        kind: Kind of the failure the decision answers.
        attempt_number: Attempt that failed (1-indexed).
        label: Human-readable tier description.
    """

    tier: EscalationTier
    delay_seconds: float
    remediation: RemediationAction
    reason: str
    kind: ErrorKind
    attempt_number: int
    label: str = ""

    def to_dict(self) -> dict[str, object]:
        return {
            "tier": self.tier.value,
            "delay_seconds": round(self.delay_seconds, 2),
            "remediation": self.remediation.value,
            "reason": self.reason,
            "error_kind": self.kind.value,
            "attempt_number": self.attempt_number,
        }


class EscalationManager:
    """Selects escalation tiers and delays for classified failures."""

    def __init__(
        self,
        config: EscalationConfig | None = None,
        classifier: ErrorClassifier | None = None,
    ) -> None:
        self._config = config or EscalationConfig()
        self._classifier = classifier or ErrorClassifier()

    @property
    def config(self) -> EscalationConfig:
        return self._config

    def new_state(self, session_id: str = "") -> EscalationState:
        """Create a fresh state for a new logical session."""
        return EscalationState(session_id=session_id, history_limit=self._config.history_limit)

    def classify(self, failure: BaseException | str | None) -> ErrorKind:
        return self._classifier.classify(failure)

    def policy_for(self, kind: ErrorKind) -> KindPolicy:
        return self._config.policy_for(kind)

    def is_exhausted(self, kind: ErrorKind, attempt_number: int) -> bool:
        """Whether ``attempt_number`` failed attempts reach the kind's retry ceiling."""
        return attempt_number >= self.policy_for(kind).max_retries

    def next_action(
        self,
        state: EscalationState,
        kind: ErrorKind,
        attempt_number: int,
        message: str = "",
    ) -> EscalationDecision:
        """Record a failure and decide the next recovery step.

        Args:
            state: The session's escalation state (mutated).
            kind: Classified kind of the failure.
            attempt_number: The attempt that failed (1-indexed).
            message: Failure description for the history.

        Returns:
            The tier, delay and remediation for the next attempt.
        """
        state.record_failure(kind, message)

        tier, reason = self._select_tier(state, kind, attempt_number)
        tier_config = self._config.tier(tier)
        delay = tier_config.delay_for(attempt_number)
        state.metrics.per_tier_counts[tier] = state.metrics.per_tier_counts.get(tier, 0) + 1

        decision = EscalationDecision(
            tier=tier,
            delay_seconds=delay,
            remediation=tier_config.remediation,
            reason=reason,
            kind=kind,
            attempt_number=attempt_number,
            label=tier_config.label,
        )
        _logger.info(
            "escalation.decision",
            session_id=state.session_id,
            consecutive_same_kind=state.consecutive_same_kind_count,
            **decision.to_dict(),
        )
        return decision

    def _select_tier(
        self,
        state: EscalationState,
        kind: ErrorKind,
        attempt_number: int,
    ) -> tuple[EscalationTier, str]:
        if self.policy_for(kind).immediate_escalation:
            return EscalationTier.HEAVY_RESET, f"{kind.value} escalates immediately"

        threshold = self._config.consecutive_same_kind_threshold
        if state.consecutive_same_kind_count >= threshold:
            return (
                EscalationTier.HEAVY_RESET,
                f"{state.consecutive_same_kind_count} consecutive {kind.value} failures "
                f"(threshold {threshold})",
            )

        for tier in sorted(self._config.tiers):
            if self._config.tier(tier).contains(attempt_number):
                return tier, f"attempt {attempt_number} is in the {tier.value} range"

        return (
            EscalationTier.HEAVY_RESET,
            f"attempt {attempt_number} is beyond every configured tier range",
        )

    def record_attempt(self, state: EscalationState) -> None:
        state.metrics.total_attempts += 1

    def record_success(self, state: EscalationState) -> None:
        """Count a success. The same-kind streak is not reset."""
        state.metrics.successes += 1
        _logger.debug(
            "escalation.success",
            session_id=state.session_id,
            success_rate=round(state.metrics.success_rate, 1),
        )


def aggregate_snapshots(snapshots: Iterable[EscalationSnapshot]) -> EscalationMetrics:
    """Sum the metrics of several sessions' snapshots."""
    total = EscalationMetrics()
    for snapshot in snapshots:
        metrics = snapshot.metrics
        total.total_attempts += metrics.total_attempts
        total.successes += metrics.successes
        for kind, count in metrics.per_kind_counts.items():
            total.per_kind_counts[kind] = total.per_kind_counts.get(kind, 0) + count
        for tier, count in metrics.per_tier_counts.items():
            total.per_tier_counts[tier] = total.per_tier_counts.get(tier, 0) + count
    return total


__all__ = [
    "ErrorRecord",
    "EscalationDecision",
    "EscalationManager",
    "EscalationMetrics",
    "EscalationSnapshot",
    "EscalationState",
    "aggregate_snapshots",
]
