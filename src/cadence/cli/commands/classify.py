"""``cadence classify``: show how a failure message is classified."""

from __future__ import annotations

from pathlib import Path

import typer

from cadence.execution.escalation import EscalationManager

from ..helpers import configure_global_logging, load_config_or_exit
from ..output import console, format_seconds, format_tier


def classify(
    message: str = typer.Argument(..., help="Failure message to classify"),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML config with escalation overrides",
        exists=True,
        readable=True,
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output the classification as JSON",
    ),
) -> None:
    """Classify a failure message and show its retry policy.

    The tier shown is the one a fresh session would get on attempt 1.
    """
    configure_global_logging(console)
    config = load_config_or_exit(config_file, console)

    manager = EscalationManager(config.escalation)
    kind = manager.classify(message)
    policy = manager.policy_for(kind)
    decision = manager.next_action(manager.new_state("cli"), kind, 1, message)

    if json_output:
        console.print_json(
            data={
                "message": message,
                "error_kind": kind.value,
                "max_retries": policy.max_retries,
                "immediate_escalation": policy.immediate_escalation,
                "first_attempt": decision.to_dict(),
            }
        )
        return

    console.print(f"Kind:         [bold]{kind.value}[/bold]")
    console.print(f"Max retries:  {policy.max_retries}")
    console.print(f"Immediate:    {'yes' if policy.immediate_escalation else 'no'}")
    console.print(
        f"Attempt 1:    {format_tier(decision.tier)} after "
        f"{format_seconds(decision.delay_seconds)}, {decision.remediation.value}"
    )
