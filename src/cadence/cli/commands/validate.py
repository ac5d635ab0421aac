"""``cadence validate``: check a configuration file.

Exit codes:
  0: valid
  1: schema validation failed
  2: cannot validate (unreadable file, YAML syntax error)
"""

from __future__ import annotations

from pathlib import Path

import typer
import yaml
from pydantic import ValidationError

from cadence.core.config import CadenceConfig
from cadence.core.exceptions import ConfigurationError

from ..helpers import configure_global_logging
from ..output import console, format_seconds


def validate(
    config_file: Path = typer.Argument(
        ...,
        help="Path to YAML configuration file",
        exists=True,
        readable=True,
    ),
) -> None:
    """Validate a configuration file."""
    configure_global_logging(console)

    try:
        raw_yaml = config_file.read_text(encoding="utf-8")
    except OSError as e:
        console.print(f"[red]Cannot read config file:[/red] {e}")
        raise typer.Exit(2) from None

    try:
        yaml.safe_load(raw_yaml)
    except yaml.YAMLError as e:
        console.print(f"[red]YAML syntax error:[/red] {e}")
        raise typer.Exit(2) from None

    try:
        config = CadenceConfig.from_yaml_string(raw_yaml)
    except (ValidationError, ConfigurationError) as e:
        console.print(f"[red]Schema validation failed:[/red] {e}")
        raise typer.Exit(1) from None

    console.print("[green]✓[/green] YAML syntax valid")
    console.print("[green]✓[/green] Schema validation passed")
    console.print()
    console.print("[dim]Configuration summary:[/dim]")
    detection = config.detection
    console.print(
        f"  Detection: poll {format_seconds(detection.poll_interval_seconds)}, "
        f"settle {detection.settle_samples} samples, "
        f"max {format_seconds(detection.max_duration_seconds)}"
    )
    console.print(
        f"  Escalation: streak threshold {config.escalation.consecutive_same_kind_threshold}, "
        f"max attempts {config.runner.max_attempts}"
    )
    console.print(
        f"  Loop: max {config.loop.max_iterations} iterations, "
        f"backoff cap {format_seconds(config.loop.cap_delay_seconds)}"
    )
