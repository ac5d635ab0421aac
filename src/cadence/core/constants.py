"""Global constants for cadence.

Centralizes default durations and limits so detector, escalation and loop
defaults stay consistent with each other and with the config models.
All durations are in seconds.
"""

# =============================================================================
# Completion detection
# =============================================================================

DETECTOR_START_GRACE_SECONDS = 30.0
"""How long to wait for the busy signal to first appear."""

DETECTOR_POLL_INTERVAL_SECONDS = 1.0
"""Interval between two probe samples."""

DETECTOR_SETTLE_DELAY_SECONDS = 10.0
"""Quiet period of not-busy readings required before declaring completion."""

DETECTOR_MAX_DURATION_SECONDS = 300.0
"""Hard timeout for a normal response (5 minutes)."""

DETECTOR_DEEP_RESEARCH_MAX_DURATION_SECONDS = 2400.0
"""Hard timeout for a deep-research response (40 minutes)."""

DETECTOR_DEEP_RESEARCH_START_GRACE_SECONDS = 60.0
"""Deep research takes longer to show the busy signal."""

DETECTOR_CANVAS_POLL_INTERVAL_SECONDS = 2.0
"""Canvas responses are polled less often."""

DETECTOR_STABILIZATION_WINDOW_SECONDS = 10.0
"""Unchanged-content window for the stabilization fallback."""

DETECTOR_PROGRESS_LOG_INTERVAL_SECONDS = 60.0
"""How often the detector logs progress while the operation is busy."""

FOLLOW_UP_EARLY_WINDOW_SECONDS = 120.0
"""A research run that finishes inside this window is treated as stopped early."""

# =============================================================================
# Escalation
# =============================================================================

ERROR_HISTORY_LIMIT = 50
"""Maximum entries kept in EscalationState.error_history (FIFO)."""

CONSECUTIVE_SAME_KIND_THRESHOLD = 5
"""Same-kind failure streak that forces a heavy reset."""

RUNNER_MAX_ATTEMPTS = 20
"""Global attempt ceiling for one operation, regardless of error kind."""

# =============================================================================
# Task completion loop
# =============================================================================

LOOP_BASE_DELAY_SECONDS = 2.0
"""Backoff before the first completion re-check."""

LOOP_STEP_DELAY_SECONDS = 1.0
"""Backoff increase per iteration."""

LOOP_CAP_DELAY_SECONDS = 30.0
"""Upper bound of the inter-iteration backoff."""

LOOP_MAX_ITERATIONS = 100
"""Iteration circuit breaker."""

WORK_SOURCE_BATCH_SIZE = 3
"""Items handed out per generate_batch() call by the JSON work source."""

DEFAULT_PLACEHOLDER_RESULTS: tuple[str, ...] = ("お待ちください...", "Please wait...")
"""Stored results that mean 'still waiting', not 'resolved'."""

# =============================================================================
# Text truncation
# =============================================================================

TRUNCATE_ERROR_MESSAGE_CHARS = 200
"""Maximum characters of an error message kept in history and events."""
