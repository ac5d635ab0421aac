"""CLI command implementations."""

from .classify import classify
from .schedule import schedule
from .status import status
from .validate import validate

__all__ = ["classify", "schedule", "status", "validate"]
