"""Pytest fixtures for cadence tests."""

import logging
from collections.abc import Generator
from pathlib import Path

import pytest
import structlog

from cadence.core.config import DetectionConfig
from cadence.execution.scheduler import CancelToken

from tests.helpers import FakeScheduler


@pytest.fixture(autouse=True)
def reset_logging_state() -> Generator[None, None, None]:
    """Reset CLI and structlog logging state around each test."""
    from cadence.cli import helpers as cli_helpers

    cli_helpers.reset_logging_state()
    structlog.reset_defaults()

    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    for handler in original_handlers:
        root_logger.removeHandler(handler)

    yield

    cli_helpers.reset_logging_state()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in original_handlers:
        root_logger.addHandler(handler)


@pytest.fixture
def scheduler() -> FakeScheduler:
    """Virtual-clock scheduler starting at t=0."""
    return FakeScheduler()


@pytest.fixture
def token() -> CancelToken:
    return CancelToken()


@pytest.fixture
def fast_detection() -> DetectionConfig:
    """Detection that completes on the first idle sample (no grace, no window)."""
    return DetectionConfig(
        start_grace_seconds=0,
        poll_interval_seconds=1,
        settle_delay_seconds=1,
        max_duration_seconds=30,
        stabilization_window_seconds=0,
    )


@pytest.fixture
def items_file(tmp_path: Path) -> Path:
    return tmp_path / "items.json"
