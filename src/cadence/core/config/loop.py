"""Task completion loop configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from cadence.core.constants import (
    LOOP_BASE_DELAY_SECONDS,
    LOOP_CAP_DELAY_SECONDS,
    LOOP_MAX_ITERATIONS,
    LOOP_STEP_DELAY_SECONDS,
)


class LoopConfig(BaseModel):
    """Backoff and circuit-breaker options of the task completion loop.

    The delay after iteration ``n`` is ``min(base + n * step, cap)``.

    Example:
        loop:
          base_delay_seconds: 2
          step_delay_seconds: 1
          cap_delay_seconds: 30
          max_iterations: 100
    """

    base_delay_seconds: float = Field(
        default=LOOP_BASE_DELAY_SECONDS,
        ge=0,
        description="Backoff before the first completion re-check",
    )
    step_delay_seconds: float = Field(
        default=LOOP_STEP_DELAY_SECONDS,
        ge=0,
        description="Backoff increase per iteration",
    )
    cap_delay_seconds: float = Field(
        default=LOOP_CAP_DELAY_SECONDS,
        ge=0,
        description="Upper bound of the backoff",
    )
    max_iterations: int = Field(
        default=LOOP_MAX_ITERATIONS,
        ge=1,
        description="Iteration circuit breaker",
    )

    @model_validator(mode="after")
    def _validate_delays(self) -> LoopConfig:
        if self.base_delay_seconds > self.cap_delay_seconds:
            raise ValueError(
                f"base_delay_seconds ({self.base_delay_seconds}) must not exceed "
                f"cap_delay_seconds ({self.cap_delay_seconds})"
            )
        return self

    def backoff_for(self, iteration: int) -> float:
        """Delay to wait after the given (1-based) iteration."""
        return min(
            self.base_delay_seconds + iteration * self.step_delay_seconds,
            self.cap_delay_seconds,
        )
