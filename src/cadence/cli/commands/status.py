"""``cadence status``: completion report of a JSON work file."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer

from cadence.core.exceptions import WorkSourceError
from cadence.sources.json_source import JsonWorkSource

from ..helpers import configure_global_logging
from ..output import console, create_items_table


def status(
    items_file: Path = typer.Argument(..., help="JSON work items file"),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output the report as JSON",
    ),
    show_pending: bool = typer.Option(
        False,
        "--pending",
        "-p",
        help="List the pending items",
    ),
) -> None:
    """Show how many work items are resolved and pending."""
    configure_global_logging(console)
    source = JsonWorkSource(items_file)

    try:
        report = asyncio.run(source.report())
        items = asyncio.run(source.load_items()) if show_pending else []
    except WorkSourceError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(2) from None

    pending = [item for item in items if not source.is_resolved(item.result)]

    if json_output:
        data = report.to_dict()
        if show_pending:
            data["pending_items"] = [item.to_dict() for item in pending]
        console.print_json(data=data)
        return

    color = "green" if report.is_complete else "yellow"
    console.print(
        f"[{color}]{report.resolved_count}/{report.expected_count} resolved[/{color}], "
        f"{report.pending_count} pending"
    )
    if show_pending and pending:
        table = create_items_table()
        for item in pending:
            table.add_row(item.item_id, str(item.payload), item.result or "")
        console.print(table)
