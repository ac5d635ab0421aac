"""cadence CLI.

Global options (--log-level, --log-file, --log-format, --version) are
handled by the app callback; every command lives in ``commands/``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from cadence import __version__

from .commands import classify, schedule, status, validate
from .helpers import (
    configure_global_logging,
    set_log_file,
    set_log_format,
    set_log_level,
)
from .output import console

app = typer.Typer(
    name="cadence",
    help="Completion detection and escalating retries for long-running operations",
    add_completion=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"cadence v{__version__}")
        raise typer.Exit()


def log_level_callback(value: str | None) -> str | None:
    if value:
        set_log_level(value)
    return value


def log_file_callback(value: Path | None) -> Path | None:
    if value:
        set_log_file(value)
    return value


def log_format_callback(value: str | None) -> str | None:
    if value:
        set_log_format(value)
    return value


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            "-L",
            callback=log_level_callback,
            help="Logging level (DEBUG, INFO, WARNING, ERROR)",
            envvar="CADENCE_LOG_LEVEL",
        ),
    ] = None,
    log_file: Annotated[
        Path | None,
        typer.Option(
            "--log-file",
            callback=log_file_callback,
            help="Path for log file output",
            envvar="CADENCE_LOG_FILE",
        ),
    ] = None,
    log_format: Annotated[
        str | None,
        typer.Option(
            "--log-format",
            callback=log_format_callback,
            help="Log format: json, console, or both",
            envvar="CADENCE_LOG_FORMAT",
        ),
    ] = None,
) -> None:
    """cadence - observe asynchronous operations to completion, retry safely on failure."""
    configure_global_logging(console)


app.command()(classify)
app.command()(schedule)
app.command()(validate)
app.command()(status)


__all__ = ["app"]
