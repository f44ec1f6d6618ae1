"""
CLI entry point for cmdguard.

This module provides the Typer-based command-line interface for cmdguard.

Commands:
    check       Classify a command under the configured policy
    record      Classify a command and append the outcome to the audit log
    history     Query the audit log
    stats       Show audit log statistics
    config      Show (or initialize) the effective configuration

Architecture Note:
    The CLI is intentionally thin - it parses arguments and delegates to
    CommandGuard, AuditStore and the report module. The same operations
    are available programmatically without the CLI.
"""

import json
import logging
import traceback
from datetime import datetime
from pathlib import Path
from typing import Annotated, NoReturn, Optional

import typer
import yaml
from rich.console import Console
from rich.markup import escape

from cmdguard import __version__
from cmdguard.config import GuardConfig, default_config_path, load_config, save_config
from cmdguard.errors import AuditError
from cmdguard.guard import CommandGuard
from cmdguard.report import (
    print_records,
    print_statistics,
    print_verdict,
    records_to_dict,
    statistics_to_dict,
    to_json,
    verdict_to_dict,
)
from cmdguard.schema import AuditFilter, SafetyTier
from cmdguard.store import AuditStore

# Exit code for a blocked verdict, distinct from errors (1)
EXIT_BLOCKED = 2

DATETIME_FORMATS = [
    "%Y-%m-%d",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S%z",
]

app = typer.Typer(
    name="cmdguard",
    help="Classify shell commands against policy and keep an audit trail.",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help="Path to the config YAML file. Defaults to ~/.cmdguard/config.yaml.",
        resolve_path=True,
    ),
]
LogOption = Annotated[
    Optional[Path],
    typer.Option(
        "--log",
        "-l",
        help="Path to the audit log. Defaults to the configured location.",
        resolve_path=True,
    ),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output results in JSON format."),
]
DebugOption = Annotated[
    bool,
    typer.Option("--debug", help="Enable debug logging and full error tracebacks."),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]cmdguard[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    cmdguard - Policy gate and audit trail for shell commands.

    Classify commands as safe, warning, dangerous or blocked, and record
    every decision and outcome in an append-only audit log.
    """
    pass


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _make_guard(config_path: Path | None, log_path: Path | None) -> CommandGuard:
    config = load_config(config_path)
    if log_path is None:
        return CommandGuard(config=config)
    store = AuditStore(
        log_path,
        organization=config.enterprise.organization,
        department=config.enterprise.department,
    )
    return CommandGuard(config=config, store=store)


def _output_json_error(error_type: str, message: str, include_traceback: bool = False) -> None:
    """Output an error in JSON format."""
    output = {
        "error": True,
        "error_type": error_type,
        "message": message,
    }
    if include_traceback:
        output["traceback"] = traceback.format_exc()
    print(json.dumps(output, indent=2))


def _fail(error_type: str, error: Exception, json_output: bool, debug: bool) -> NoReturn:
    """Report an error in the requested format and exit 1."""
    if json_output:
        _output_json_error(error_type, str(error), debug)
    else:
        console.print(f"[red]{escape(str(error))}[/red]")
        if debug:
            console.print(f"[dim]{escape(traceback.format_exc())}[/dim]")
    raise typer.Exit(code=1)


@app.command()
def check(
    command: Annotated[
        str,
        typer.Argument(help="The shell command to classify."),
    ],
    config_path: ConfigOption = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Classify a command under the configured policy.

    Exits with code 2 when the command is blocked, 0 otherwise.

    Example:
        $ cmdguard check "rm -rf /tmp/build"
    """
    _configure_logging(debug)
    guard = CommandGuard(config=load_config(config_path))
    verdict = guard.check(command)

    if json_output:
        print(to_json(verdict_to_dict(command, verdict)))
    else:
        print_verdict(console, command, verdict)

    if verdict.is_blocked:
        raise typer.Exit(code=EXIT_BLOCKED)


@app.command()
def record(
    natural_language_input: Annotated[
        str,
        typer.Option("--input", "-i", help="The natural language request."),
    ],
    command: Annotated[
        str,
        typer.Option("--command", help="The generated shell command."),
    ],
    executed: Annotated[
        bool,
        typer.Option("--executed/--not-executed", help="Whether the command ran."),
    ] = False,
    exit_code: Annotated[
        Optional[int],
        typer.Option("--exit-code", help="Exit status, if the command ran."),
    ] = None,
    backend: Annotated[
        str,
        typer.Option("--backend", "-b", help="Backend that generated the command."),
    ] = "manual",
    notes: Annotated[
        Optional[str],
        typer.Option("--notes", help="Notes to store (defaults to the verdict reason)."),
    ] = None,
    session: Annotated[
        Optional[str],
        typer.Option("--session", help="Session ID grouping related commands."),
    ] = None,
    log_path: LogOption = None,
    config_path: ConfigOption = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Classify a command and append the outcome to the audit log.

    Example:
        $ cmdguard record --input "list files" --command "ls -la" --executed --exit-code 0
    """
    _configure_logging(debug)
    guard = _make_guard(config_path, log_path)
    verdict = guard.check(command)

    try:
        written = guard.record(
            command,
            verdict,
            natural_language_input=natural_language_input,
            backend_id=backend,
            executed=executed,
            exit_code=exit_code,
            notes=notes,
            session_id=session,
        )
    except AuditError as e:
        _fail("audit_write_error", e, json_output, debug)

    if json_output:
        output = verdict_to_dict(command, verdict)
        output["recorded"] = written is not None
        output["log"] = str(guard.store.path)
        print(to_json(output))
        return

    print_verdict(console, command, verdict)
    if written is None:
        console.print("[yellow]Audit logging is disabled; nothing recorded.[/yellow]")
    else:
        console.print(f"[dim]Recorded to {guard.store.path}[/dim]")


@app.command()
def history(
    user: Annotated[
        Optional[str],
        typer.Option("--user", "-u", help="Only records for this user."),
    ] = None,
    tier: Annotated[
        Optional[SafetyTier],
        typer.Option("--tier", "-t", help="Only records with this safety tier."),
    ] = None,
    since: Annotated[
        Optional[datetime],
        typer.Option("--since", help="Only records at or after this time (UTC).", formats=DATETIME_FORMATS),
    ] = None,
    until: Annotated[
        Optional[datetime],
        typer.Option("--until", help="Only records before this time (UTC).", formats=DATETIME_FORMATS),
    ] = None,
    newest_first: Annotated[
        bool,
        typer.Option("--newest-first", help="Show the most recent records first."),
    ] = False,
    limit: Annotated[
        Optional[int],
        typer.Option("--limit", "-n", help="Maximum number of records to show.", min=1),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Show input and notes columns."),
    ] = False,
    log_path: LogOption = None,
    config_path: ConfigOption = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Query the audit log.

    Example:
        $ cmdguard history --tier blocked --since 2024-01-01 --newest-first
    """
    _configure_logging(debug)
    guard = _make_guard(config_path, log_path)
    audit_filter = AuditFilter(
        user=user,
        tier=tier,
        since=since,
        until=until,
        newest_first=newest_first,
        limit=limit,
    )

    try:
        query = guard.store.query(audit_filter)
        if json_output:
            output = records_to_dict(query)
            output["skipped_lines"] = query.skipped_lines
            print(to_json(output))
            return
        print_records(console, query, verbose=verbose)
    except AuditError as e:
        _fail("audit_read_error", e, json_output, debug)

    if query.skipped_lines:
        console.print(f"[yellow]Skipped {query.skipped_lines} malformed line(s)[/yellow]")


@app.command()
def stats(
    log_path: LogOption = None,
    config_path: ConfigOption = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Show audit log statistics.

    Example:
        $ cmdguard stats --json
    """
    _configure_logging(debug)
    guard = _make_guard(config_path, log_path)

    try:
        statistics = guard.store.statistics()
    except AuditError as e:
        _fail("audit_read_error", e, json_output, debug)

    if json_output:
        print(to_json(statistics_to_dict(statistics)))
    else:
        print_statistics(console, statistics, source=str(guard.store.path))


@app.command("config")
def show_config(
    config_path: ConfigOption = None,
    init: Annotated[
        bool,
        typer.Option("--init", help="Write a default config file if none exists."),
    ] = False,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Show the effective configuration.

    Example:
        $ cmdguard config --init
    """
    _configure_logging(debug)
    path = config_path or default_config_path()

    if init:
        if path.exists():
            if not json_output:
                console.print(f"[yellow]Config already exists at {path}[/yellow]")
        else:
            try:
                save_config(GuardConfig(), path)
            except OSError as e:
                _fail("config_write_error", e, json_output, debug)
            if not json_output:
                console.print(f"[green]✓[/green] Wrote default config to {path}")

    config = load_config(path)
    data = config.model_dump(mode="json")
    data["audit_log_path"] = str(config.audit_log_path())

    if json_output:
        data["source"] = config.source
        print(to_json(data))
        return

    console.print(f"[bold]Config source:[/bold] {config.source or 'built-in defaults'}")
    console.print(yaml.safe_dump(data, sort_keys=False), markup=False, highlight=False)


if __name__ == "__main__":
    app()
