"""Escalation and retry configuration models.

Defines the escalation tiers (attempt ranges, delay schedules, remediation),
the per-kind retry policies and the operation runner limits.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator

from cadence.core.constants import (
    CONSECUTIVE_SAME_KIND_THRESHOLD,
    DEFAULT_PLACEHOLDER_RESULTS,
    ERROR_HISTORY_LIMIT,
    RUNNER_MAX_ATTEMPTS,
)
from cadence.core.errors.codes import (
    ErrorKind,
    EscalationTier,
    RemediationAction,
    RetryDelays,
)


class TierConfig(BaseModel):
    """One escalation tier: where it applies, how long to wait, what to do."""

    range_start: int = Field(ge=1, description="First attempt number of the tier")
    range_end: int = Field(ge=1, description="Last attempt number of the tier (inclusive)")
    delays_seconds: list[float] = Field(
        min_length=1,
        description="Delay schedule indexed by attempt-within-tier; the last "
        "entry is reused past the end",
    )
    remediation: RemediationAction
    label: str = Field(description="Human-readable description")

    @field_validator("delays_seconds")
    @classmethod
    def _non_negative_delays(cls, value: list[float]) -> list[float]:
        if any(d < 0 for d in value):
            raise ValueError("delays_seconds must all be >= 0")
        return value

    @model_validator(mode="after")
    def _validate_range(self) -> TierConfig:
        if self.range_start > self.range_end:
            raise ValueError(
                f"range_start ({self.range_start}) must not exceed range_end ({self.range_end})"
            )
        return self

    def contains(self, attempt_number: int) -> bool:
        return self.range_start <= attempt_number <= self.range_end

    def delay_for(self, attempt_number: int) -> float:
        """Delay for an attempt, clamped to the schedule bounds on both sides."""
        index = attempt_number - self.range_start
        index = max(0, min(index, len(self.delays_seconds) - 1))
        return self.delays_seconds[index]


class KindPolicy(BaseModel):
    """Retry policy of one ErrorKind."""

    max_retries: int = Field(ge=1, description="Attempt ceiling for this kind")
    immediate_escalation: bool = Field(
        default=False,
        description="Skip straight to heavy_reset on the first failure",
    )


def _default_tiers() -> dict[EscalationTier, TierConfig]:
    return {
        EscalationTier.LIGHTWEIGHT: TierConfig(
            range_start=1,
            range_end=5,
            delays_seconds=list(RetryDelays.LIGHTWEIGHT),
            remediation=RemediationAction.RETRY_SAME_CONTEXT,
            label="Lightweight retry in the same context",
        ),
        EscalationTier.MODERATE: TierConfig(
            range_start=6,
            range_end=8,
            delays_seconds=list(RetryDelays.MODERATE),
            remediation=RemediationAction.RESET_CONTEXT,
            label="Moderate retry after reloading the context",
        ),
        EscalationTier.HEAVY_RESET: TierConfig(
            range_start=9,
            range_end=20,
            delays_seconds=list(RetryDelays.HEAVY_RESET),
            remediation=RemediationAction.RECREATE_CONTEXT,
            label="Heavy reset in a freshly created context",
        ),
    }


def _default_policies() -> dict[ErrorKind, KindPolicy]:
    return {
        ErrorKind.SEARCH_FAILURE: KindPolicy(max_retries=10, immediate_escalation=True),
        ErrorKind.NO_RESULTS: KindPolicy(max_retries=8, immediate_escalation=True),
        ErrorKind.PLATFORM_UNAVAILABLE: KindPolicy(max_retries=5, immediate_escalation=True),
        ErrorKind.AUTH_REQUIRED: KindPolicy(max_retries=5, immediate_escalation=True),
        ErrorKind.NETWORK_TIMEOUT: KindPolicy(max_retries=8),
        ErrorKind.ELEMENT_NOT_FOUND: KindPolicy(max_retries=5),
        ErrorKind.UI_TIMING_TIMEOUT: KindPolicy(max_retries=10),
        ErrorKind.GENERIC: KindPolicy(max_retries=8),
    }


class EscalationConfig(BaseModel):
    """Tier definitions and per-kind policies of the escalation manager.

    Policies given in YAML are merged over the defaults, so a config may
    override a single kind.

    Example:
        escalation:
          consecutive_same_kind_threshold: 5
          policies:
            element_not_found:
              max_retries: 7
    """

    tiers: dict[EscalationTier, TierConfig] = Field(default_factory=_default_tiers)
    policies: dict[ErrorKind, KindPolicy] = Field(default_factory=_default_policies)
    consecutive_same_kind_threshold: int = Field(
        default=CONSECUTIVE_SAME_KIND_THRESHOLD,
        ge=1,
        description="Same-kind failure streak that forces heavy_reset",
    )
    history_limit: int = Field(
        default=ERROR_HISTORY_LIMIT,
        ge=1,
        description="Maximum error history entries kept per session",
    )

    @field_validator("policies", mode="after")
    @classmethod
    def _merge_default_policies(
        cls, value: dict[ErrorKind, KindPolicy]
    ) -> dict[ErrorKind, KindPolicy]:
        return {**_default_policies(), **value}

    @model_validator(mode="after")
    def _validate_tiers(self) -> EscalationConfig:
        missing = [tier.value for tier in EscalationTier if tier not in self.tiers]
        if missing:
            raise ValueError(f"tiers missing definitions for: {', '.join(missing)}")
        ordered = sorted(self.tiers.items(), key=lambda item: item[0].rank)
        for (lower_tier, lower), (upper_tier, upper) in zip(ordered, ordered[1:]):
            if lower.range_end >= upper.range_start:
                raise ValueError(
                    f"tier {lower_tier.value} range ({lower.range_start}-{lower.range_end}) "
                    f"must end before tier {upper_tier.value} starts ({upper.range_start})"
                )
        return self

    def policy_for(self, kind: ErrorKind) -> KindPolicy:
        return self.policies.get(kind, self.policies[ErrorKind.GENERIC])

    def tier(self, tier: EscalationTier) -> TierConfig:
        return self.tiers[tier]


class RunnerConfig(BaseModel):
    """Limits of the operation runner."""

    max_attempts: int = Field(
        default=RUNNER_MAX_ATTEMPTS,
        ge=1,
        description="Global attempt ceiling, regardless of error kind",
    )
    reject_empty_results: bool = Field(
        default=True,
        description="Treat an empty or placeholder result as a failed attempt",
    )
    placeholder_results: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PLACEHOLDER_RESULTS),
        description="Results meaning 'still waiting' rather than a real response",
    )
