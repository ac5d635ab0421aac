"""Shared CLI state and helpers.

Global options (--log-level, --log-file, --log-format) are collected by
callbacks into a single module-level ``CliLoggingConfig`` and applied once
by ``configure_global_logging`` before any command runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import typer
from pydantic import ValidationError
from rich.console import Console

from cadence.core.config import CadenceConfig
from cadence.core.exceptions import ConfigurationError
from cadence.core.logging import configure_logging


@dataclass
class CliLoggingConfig:
    """CLI logging options collected from the global callbacks."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    file: Path | None = None
    format: Literal["json", "console", "both"] = "console"
    configured: bool = False
    from_options: bool = False
    """True once any --log-* option was given; options beat config files."""


_log_config = CliLoggingConfig()


def set_log_level(level: str) -> None:
    _log_config.level = level.upper()  # type: ignore[assignment]
    _log_config.from_options = True


def set_log_file(path: Path | None) -> None:
    """Set the log file path; file output defaults to JSON lines."""
    _log_config.file = path
    _log_config.from_options = True
    if path and _log_config.format == "console":
        _log_config.format = "json"


def set_log_format(fmt: str) -> None:
    _log_config.format = fmt.lower()  # type: ignore[assignment]
    _log_config.from_options = True


def get_log_config() -> CliLoggingConfig:
    return _log_config


def configure_global_logging(console: Console) -> None:
    """Configure logging from the global CLI options, once per process.

    Raises:
        typer.Exit: If the logging options are inconsistent.
    """
    if _log_config.configured:
        return

    try:
        configure_logging(
            level=_log_config.level,
            format=_log_config.format,
            file_path=_log_config.file,
        )
        _log_config.configured = True
    except (ValueError, AttributeError) as e:
        console.print(f"[red]Logging configuration error:[/red] {e}")
        raise typer.Exit(1) from None


def reset_logging_state() -> None:
    """Reset the CLI logging options (for tests)."""
    global _log_config
    _log_config = CliLoggingConfig()


def load_config_or_exit(path: Path | None, console: Console) -> CadenceConfig:
    """Load a config file for a command, or the defaults when no file is given.

    Raises:
        typer.Exit: With code 2 if the file cannot be loaded or is invalid.
    """
    if path is None:
        return CadenceConfig()
    try:
        config = CadenceConfig.from_yaml(path)
    except (ConfigurationError, ValidationError) as e:
        console.print(f"[red]Cannot load config {path}:[/red] {e}")
        raise typer.Exit(2) from None
    apply_config_logging(config)
    return config


def apply_config_logging(config: CadenceConfig) -> bool:
    """Reconfigure logging from the config file's ``logging`` section.

    Only applies when the file sets the section and no --log-* option was
    given on the command line.

    Returns:
        True if logging was reconfigured.
    """
    if _log_config.from_options or "logging" not in config.model_fields_set:
        return False
    configure_logging(**config.logging.model_dump())
    _log_config.configured = True
    return True


__all__ = [
    "CliLoggingConfig",
    "apply_config_logging",
    "configure_global_logging",
    "get_log_config",
    "load_config_or_exit",
    "reset_logging_state",
    "set_log_file",
    "set_log_format",
    "set_log_level",
]
