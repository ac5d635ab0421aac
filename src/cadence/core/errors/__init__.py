"""Error classification.

Re-exports the public symbols of the codes and classifier modules.
"""

from cadence.core.errors.codes import (
    ErrorKind,
    EscalationTier,
    RemediationAction,
    RetryDelays,
)
from cadence.core.errors.classifier import (
    ClassificationRule,
    ErrorClassifier,
    describe_failure,
)

__all__ = [
    "ClassificationRule",
    "ErrorClassifier",
    "ErrorKind",
    "EscalationTier",
    "RemediationAction",
    "RetryDelays",
    "describe_failure",
]
