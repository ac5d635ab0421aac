"""Configuration models for cadence.

All models are re-exported from this ``__init__`` so callers can write
``from cadence.core.config import CadenceConfig``.
"""

from cadence.core.config.detection import (
    DetectionConfig,
    FollowUpConfig,
    WaitProfile,
)
from cadence.core.config.escalation import (
    EscalationConfig,
    KindPolicy,
    RunnerConfig,
    TierConfig,
)
from cadence.core.config.loop import LoopConfig
from cadence.core.config.settings import CadenceConfig, LogConfig

__all__ = [
    "CadenceConfig",
    "DetectionConfig",
    "EscalationConfig",
    "FollowUpConfig",
    "KindPolicy",
    "LogConfig",
    "LoopConfig",
    "RunnerConfig",
    "TierConfig",
    "WaitProfile",
]
