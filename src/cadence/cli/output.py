"""Rich output formatting for the cadence CLI."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

from cadence.core.errors import EscalationTier

# Commands print through this console; it resolves sys.stdout lazily.
console = Console()


class StatusColors:
    """Color mappings shared by all commands."""

    TIER: dict[EscalationTier, str] = {
        EscalationTier.LIGHTWEIGHT: "green",
        EscalationTier.MODERATE: "yellow",
        EscalationTier.HEAVY_RESET: "red",
    }


def format_tier(tier: EscalationTier) -> str:
    color = StatusColors.TIER.get(tier, "white")
    return f"[{color}]{tier.value}[/{color}]"


def format_seconds(seconds: float) -> str:
    """Human-readable duration: 45s, 2m, 1h 30m."""
    if seconds < 60:
        return f"{seconds:g}s"
    if seconds < 3600:
        minutes, rest = divmod(int(seconds), 60)
        return f"{minutes}m {rest}s" if rest else f"{minutes}m"
    hours, rest = divmod(int(seconds), 3600)
    minutes = rest // 60
    return f"{hours}h {minutes}m" if minutes else f"{hours}h"


def create_schedule_table(title: str) -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Attempt", justify="right", style="cyan", width=7)
    table.add_column("Tier", width=12)
    table.add_column("Delay", justify="right", width=8)
    table.add_column("Remediation", width=20)
    table.add_column("Reason", style="dim", no_wrap=False)
    return table


def create_items_table() -> Table:
    table = Table(title="Pending items", show_header=True, header_style="bold")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Payload", no_wrap=False)
    table.add_column("Result", style="dim")
    return table


__all__ = [
    "StatusColors",
    "console",
    "create_items_table",
    "create_schedule_table",
    "format_seconds",
    "format_tier",
]
