"""Completion detection configuration models.

Defines the polling/debounce/timeout options of the completion detector,
the per-mode presets (wait profiles) and the follow-up watcher options.
"""

from __future__ import annotations

import math
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from cadence.core.constants import (
    DETECTOR_CANVAS_POLL_INTERVAL_SECONDS,
    DETECTOR_DEEP_RESEARCH_MAX_DURATION_SECONDS,
    DETECTOR_DEEP_RESEARCH_START_GRACE_SECONDS,
    DETECTOR_MAX_DURATION_SECONDS,
    DETECTOR_POLL_INTERVAL_SECONDS,
    DETECTOR_PROGRESS_LOG_INTERVAL_SECONDS,
    DETECTOR_SETTLE_DELAY_SECONDS,
    DETECTOR_STABILIZATION_WINDOW_SECONDS,
    DETECTOR_START_GRACE_SECONDS,
    FOLLOW_UP_EARLY_WINDOW_SECONDS,
)


class WaitProfile(str, Enum):
    """Response modes with their own detection timing."""

    NORMAL = "normal"
    DEEP_RESEARCH = "deep_research"
    CANVAS = "canvas"


class DetectionConfig(BaseModel):
    """Options for one CompletionDetector call.

    Example:
        detection:
          start_grace_seconds: 30
          poll_interval_seconds: 1
          settle_delay_seconds: 10
          max_duration_seconds: 300
          stabilization_window_seconds: 10
    """

    start_grace_seconds: float = Field(
        default=DETECTOR_START_GRACE_SECONDS,
        ge=0,
        description="Max wait for the busy signal to first appear before "
        "falling back to content stabilization",
    )
    poll_interval_seconds: float = Field(
        default=DETECTOR_POLL_INTERVAL_SECONDS,
        gt=0,
        description="Interval between two probe samples",
    )
    settle_delay_seconds: float = Field(
        default=DETECTOR_SETTLE_DELAY_SECONDS,
        ge=0,
        description="Quiet period of not-busy readings required after the busy "
        "signal disappears (rounded up to whole poll intervals)",
    )
    max_duration_seconds: float = Field(
        default=DETECTOR_MAX_DURATION_SECONDS,
        gt=0,
        description="Hard timeout for the whole detection",
    )
    stabilization_window_seconds: float = Field(
        default=DETECTOR_STABILIZATION_WINDOW_SECONDS,
        ge=0,
        description="Fallback: unchanged content fingerprint for this long means complete",
    )
    progress_log_interval_seconds: float = Field(
        default=DETECTOR_PROGRESS_LOG_INTERVAL_SECONDS,
        gt=0,
        description="How often to log progress while busy",
    )

    @model_validator(mode="after")
    def _validate_durations(self) -> DetectionConfig:
        if self.settle_delay_seconds > self.max_duration_seconds:
            raise ValueError(
                f"settle_delay_seconds ({self.settle_delay_seconds}) must not exceed "
                f"max_duration_seconds ({self.max_duration_seconds})"
            )
        if self.poll_interval_seconds > self.max_duration_seconds:
            raise ValueError(
                f"poll_interval_seconds ({self.poll_interval_seconds}) must not exceed "
                f"max_duration_seconds ({self.max_duration_seconds})"
            )
        return self

    @property
    def settle_samples(self) -> int:
        """Consecutive not-busy samples required to leave the settling state."""
        return max(1, math.ceil(self.settle_delay_seconds / self.poll_interval_seconds))

    @classmethod
    def for_profile(cls, profile: WaitProfile | str) -> DetectionConfig:
        """Return the preset options for a response mode."""
        profile = WaitProfile(profile)
        if profile == WaitProfile.DEEP_RESEARCH:
            return cls(
                start_grace_seconds=DETECTOR_DEEP_RESEARCH_START_GRACE_SECONDS,
                max_duration_seconds=DETECTOR_DEEP_RESEARCH_MAX_DURATION_SECONDS,
            )
        if profile == WaitProfile.CANVAS:
            return cls(poll_interval_seconds=DETECTOR_CANVAS_POLL_INTERVAL_SECONDS)
        return cls()


class FollowUpConfig(BaseModel):
    """Options of the follow-up watcher used for long-running research runs."""

    early_window_seconds: float = Field(
        default=FOLLOW_UP_EARLY_WINDOW_SECONDS,
        gt=0,
        description="A run that stops being busy inside this window stopped early",
    )
    max_follow_ups: int = Field(
        default=1,
        ge=0,
        description="How many times the follow-up callback may be invoked",
    )
