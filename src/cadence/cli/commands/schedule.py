"""``cadence schedule``: preview the escalation path of repeated failures."""

from __future__ import annotations

from pathlib import Path

import typer

from cadence.core.errors import ErrorKind
from cadence.execution.escalation import EscalationManager

from ..helpers import configure_global_logging, load_config_or_exit
from ..output import console, create_schedule_table, format_seconds, format_tier


def schedule(
    kind: ErrorKind = typer.Argument(..., help="Error kind that keeps failing"),
    attempts: int = typer.Option(
        10,
        "--attempts",
        "-n",
        min=1,
        max=100,
        help="Number of consecutive failures to simulate",
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML config with escalation overrides",
        exists=True,
        readable=True,
    ),
) -> None:
    """Show the decisions a session gets for N consecutive failures of KIND.

    Stops early when the kind's retry ceiling or the global attempt ceiling
    is reached, exactly like the operation runner.
    """
    configure_global_logging(console)
    config = load_config_or_exit(config_file, console)

    manager = EscalationManager(config.escalation)
    state = manager.new_state("cli")
    table = create_schedule_table(f"Escalation schedule for {kind.value}")
    total_delay = 0.0
    gave_up_at: int | None = None

    for attempt_number in range(1, attempts + 1):
        if (
            manager.is_exhausted(kind, attempt_number)
            or attempt_number >= config.runner.max_attempts
        ):
            gave_up_at = attempt_number
            table.add_row(str(attempt_number), "[bold red]give up[/bold red]", "-", "-", "retry ceiling")
            break
        decision = manager.next_action(state, kind, attempt_number)
        total_delay += decision.delay_seconds
        table.add_row(
            str(attempt_number),
            format_tier(decision.tier),
            format_seconds(decision.delay_seconds),
            decision.remediation.value,
            decision.reason,
        )

    console.print(table)
    console.print(f"Total delay: {format_seconds(total_delay)}")
    if gave_up_at is not None:
        console.print(f"Final failure after attempt {gave_up_at}")
