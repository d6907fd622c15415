"""`ccx logs` subcommands."""

import typer
from rich.markup import escape
from rich.table import Table

from ccx.cli._runtime import console, format_age, get_manager, handle_errors, shorten_path

logs_app = typer.Typer(
    name="logs",
    help="Inspect and clean up session event logs.",
    no_args_is_help=True,
)


@logs_app.command("list")
def list_logs() -> None:
    """
    List session logs, most recent first.
    """
    with handle_errors():
        log_files = get_manager().list_logs()

    if not log_files:
        console.print("[dim]No session logs[/dim]")
        return

    table = Table(box=None, pad_edge=False)
    table.add_column("SESSION", style="bold", no_wrap=True)
    table.add_column("MODIFIED", justify="right", no_wrap=True)
    table.add_column("SIZE", justify="right", no_wrap=True)
    table.add_column("PATH", style="dim")

    for log_file in log_files:
        table.add_row(
            log_file.session_name,
            format_age(log_file.last_modified),
            f"{log_file.size_bytes}B",
            escape(shorten_path(str(log_file.path))),
        )

    console.print(table)


@logs_app.command("show")
def show_log(
    session: str = typer.Argument(..., help="Session whose log to print"),
    tail: int | None = typer.Option(
        None,
        "--tail",
        "-n",
        min=0,
        help="Only show the last N lines",
    ),
) -> None:
    """
    Print a session's event log.
    """
    with handle_errors():
        content = get_manager().show_log(session, tail=tail)

    console.print(content, end="", markup=False, highlight=False)


@logs_app.command("clean")
def clean_logs(
    days: int | None = typer.Option(
        None,
        "--days",
        min=0,
        help="Remove logs not modified for this many days (0 removes all; default 7)",
    ),
) -> None:
    """
    Remove old session logs.
    """
    with handle_errors():
        removed = get_manager().clean_logs(days)

    console.print(f"Removed {removed} log file(s)")
