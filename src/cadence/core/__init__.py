"""Core domain models, configuration and error classification."""

from cadence.core.config import (
    CadenceConfig,
    DetectionConfig,
    EscalationConfig,
    LoopConfig,
    RunnerConfig,
    WaitProfile,
)
from cadence.core.errors import ErrorClassifier, ErrorKind, EscalationTier, RemediationAction

__all__ = [
    "CadenceConfig",
    "DetectionConfig",
    "ErrorClassifier",
    "ErrorKind",
    "EscalationConfig",
    "EscalationTier",
    "LoopConfig",
    "RemediationAction",
    "RunnerConfig",
    "WaitProfile",
]
