"""
Console report generator for cmdguard.

Renders verdicts, audit history and statistics for the terminal using
Rich.

Design Principles:
    - Human-readable first: Optimize for quick scanning
    - Tier at a glance: Each tier has one icon and one color everywhere
    - Consistent formatting: Predictable layout across commands
"""

from collections.abc import Iterable

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from cmdguard.schema import AuditRecord, AuditStatistics, SafetyTier, Verdict


TIER_STYLES = {
    SafetyTier.SAFE: "green",
    SafetyTier.WARNING: "yellow",
    SafetyTier.DANGEROUS: "red",
    SafetyTier.BLOCKED: "bold red",
}

TIER_ICONS = {
    SafetyTier.SAFE: "[green]✓[/green]",
    SafetyTier.WARNING: "[yellow]![/yellow]",
    SafetyTier.DANGEROUS: "[red]⚠[/red]",
    SafetyTier.BLOCKED: "[bold red]⊘[/bold red]",
}


def _text(value: str) -> str:
    """Markup-escaped text, with undecodable bytes shown as backslash escapes."""
    return escape(value.encode("utf-8", "backslashreplace").decode("utf-8"))


def format_tier(tier: SafetyTier) -> str:
    """Rich markup for a tier name."""
    style = TIER_STYLES[tier]
    return f"[{style}]{tier.value}[/{style}]"


def print_verdict(console: Console, command: str, verdict: Verdict) -> None:
    """Print a single verdict with its reason and rule."""
    console.print(f"{TIER_ICONS[verdict.tier]} {format_tier(verdict.tier)}: [bold]{_text(command)}[/bold]")
    if verdict.reason:
        console.print(f"  Reason: {_text(verdict.reason)}")
    if verdict.matched_rule:
        console.print(f"  [dim]Rule: {_text(verdict.matched_rule)}[/dim]")


def print_records(
    console: Console,
    records: Iterable[AuditRecord],
    verbose: bool = False,
) -> int:
    """
    Print audit records as a table.

    Args:
        console: Rich Console to print to
        records: Records to show, in display order
        verbose: Include the natural language input and notes columns

    Returns:
        Number of records printed
    """
    table = Table(show_header=True, header_style="bold")
    table.add_column("Time", style="dim")
    table.add_column("User", style="cyan")
    table.add_column("Tier", width=10)
    table.add_column("Command")
    table.add_column("Ran", justify="center", width=4)
    table.add_column("Exit", justify="right", width=5)
    if verbose:
        table.add_column("Input")
        table.add_column("Notes")

    count = 0
    for record in records:
        if record.executed:
            ran = "[red]✗[/red]" if record.failed else "[green]✓[/green]"
        else:
            ran = "[dim]-[/dim]"
        exit_code = "" if record.exit_code is None else str(record.exit_code)

        command = record.generated_command
        if not verbose and len(command) > 60:
            command = command[:57] + "..."

        row = [
            record.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            _text(record.user),
            format_tier(record.tier),
            _text(command),
            ran,
            exit_code,
        ]
        if verbose:
            row.extend([_text(record.natural_language_input), _text(record.notes or "")])
        table.add_row(*row)
        count += 1

    if count == 0:
        console.print("[dim]No matching records.[/dim]")
    else:
        console.print(table)
    return count


def print_statistics(console: Console, stats: AuditStatistics, source: str = "") -> None:
    """Print aggregate statistics as a summary panel and a tier table."""
    summary = (
        f"Total: [bold]{stats.total}[/bold] | "
        f"Executed: {stats.executed} | "
        f"Failed: [red]{stats.failed_executions}[/red] | "
        f"Dangerous/blocked: {stats.dangerous_or_blocked}"
    )
    console.print(Panel(summary, title="Audit statistics", subtitle=source or None))

    table = Table(show_header=True, header_style="bold")
    table.add_column("Tier", width=10)
    table.add_column("Count", justify="right")
    for tier in SafetyTier:
        table.add_row(format_tier(tier), str(stats.per_tier.get(tier, 0)))
    console.print(table)

    if stats.skipped_lines:
        console.print(
            f"[yellow]Skipped {stats.skipped_lines} malformed line(s)[/yellow]"
        )
