"""Main CLI entry point using Typer."""

import time
from pathlib import Path

import typer
from rich.markup import escape
from rich.table import Table

from ccx import __version__
from ccx.cli._runtime import console, format_age, get_manager, handle_errors, shorten_path
from ccx.cli.commands import logs_app
from ccx.core.config import get_settings
from ccx.core.logging import configure_logging
from ccx.sessions.extractor import truncate
from ccx.sessions.models import Activity, Session, SessionStatus

app = typer.Typer(
    name="ccx",
    help="Manage Claude Code sessions in tmux",
    add_completion=True,
    rich_markup_mode="rich",
    no_args_is_help=True,
)
app.add_typer(logs_app, name="logs")

STATUS_STYLES = {
    SessionStatus.RUNNING: "green",
    SessionStatus.EXITED: "dim",
}

ACTIVITY_STYLES = {
    Activity.WORKING: "yellow",
    Activity.IDLE: "cyan",
    Activity.UNKNOWN: "dim",
}

PROMPT_DISPLAY_WIDTH = 40


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"ccx {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        "-d",
        help="Enable debug logging.",
    ),
) -> None:
    """
    Run Claude Code sessions in the background with tmux.

    Start sessions with a prompt, check on them, attach when they need you,
    and clean up when they are done.
    """
    settings = get_settings()
    if debug:
        settings.debug = True
    configure_logging(settings)


def _status_text(session: Session) -> str:
    style = STATUS_STYLES[session.status]
    text = f"[{style}]{session.status.value}[/{style}]"
    if session.is_running and session.activity is not Activity.UNKNOWN:
        activity_style = ACTIVITY_STYLES[session.activity]
        text += f" [{activity_style}]({session.activity.value})[/{activity_style}]"
    return text


@app.command()
def start(
    prompt: str = typer.Argument(..., help="The prompt to send to Claude"),
    cwd: Path | None = typer.Option(
        None,
        "--cwd",
        "-C",
        help="Working directory for the session (defaults to the current directory)",
    ),
    name: str | None = typer.Option(
        None,
        "--name",
        "-n",
        help="Session name (derived from the prompt if omitted)",
    ),
) -> None:
    """
    Start a new Claude Code session with the given prompt.

    Example:
        ccx start "fix the flaky login test" --cwd ~/src/app
    """
    with handle_errors():
        session = get_manager().start(prompt, cwd=cwd, name=name)

    console.print(f"Started session: [bold]{session.name}[/bold]")
    console.print(f"[dim]Attach with: ccx attach {session.name}[/dim]")


@app.command()
def status(
    session: str | None = typer.Argument(
        None,
        help="Session to show recent output for",
    ),
    lines: int = typer.Option(
        10,
        "--lines",
        "-l",
        min=0,
        help="Number of output lines to show",
    ),
) -> None:
    """
    Show status of sessions (all, or recent output of one session).
    """
    with handle_errors():
        manager = get_manager()
        if session is None:
            sessions = manager.list_sessions()
        else:
            detail = manager.status(session, lines)

    if session is not None:
        current = detail.session
        console.print(f"[bold]{current.name}[/bold] {_status_text(current)}")
        if current.title:
            console.print(f"[dim]Title:[/dim] {escape(current.title)}")
        console.print(f"[dim]Directory:[/dim] {escape(shorten_path(current.cwd))}")
        if detail.output_lines:
            console.print()
            for line in detail.output_lines:
                console.print(line, markup=False, highlight=False)
        return

    if not sessions:
        console.print("[dim]No ccx sessions[/dim]")
        return

    table = Table(box=None, pad_edge=False)
    table.add_column("SESSION", style="bold", no_wrap=True)
    table.add_column("STATUS", no_wrap=True)
    table.add_column("TITLE")
    table.add_column("DIRECTORY", style="dim")

    for current in sessions:
        table.add_row(
            current.name,
            _status_text(current),
            escape(current.title) or "[dim]-[/dim]",
            escape(shorten_path(current.cwd)),
        )

    console.print(table)


@app.command("list")
def list_sessions() -> None:
    """
    List all sessions.
    """
    with handle_errors():
        sessions = get_manager().list_sessions(refresh_titles=False)

    if not sessions:
        console.print("[dim]No ccx sessions[/dim]")
        return

    table = Table(box=None, pad_edge=False)
    table.add_column("SESSION", style="bold", no_wrap=True)
    table.add_column("STATUS", no_wrap=True)
    table.add_column("ATTACHED", no_wrap=True)
    table.add_column("AGE", justify="right", no_wrap=True)
    table.add_column("PROMPT")

    for current in sessions:
        table.add_row(
            current.name,
            _status_text(current),
            "yes" if current.attached else "no",
            format_age(current.start_time),
            escape(truncate(" ".join(current.prompt.split()), PROMPT_DISPLAY_WIDTH)),
        )

    console.print(table)


@app.command()
def stop(
    session: str = typer.Argument(..., help="The session name to stop"),
) -> None:
    """
    Stop a specific session.
    """
    with handle_errors():
        manager = get_manager()
        was_running = manager.registry.get(session).is_running
        manager.stop(session)

    if was_running:
        console.print(f"Stopped session: [bold]{session}[/bold]")
    else:
        console.print(f"[dim]Session {session} had already exited[/dim]")


@app.command()
def attach(
    session: str = typer.Argument(..., help="The session name to attach to"),
) -> None:
    """
    Attach to an existing session (detach with the tmux prefix key, then d).
    """
    with handle_errors():
        code = get_manager().attach(session)

    if code:
        raise typer.Exit(code=code)


@app.command()
def send(
    session: str = typer.Argument(..., help="The session name to send to"),
    message: str = typer.Argument(..., help="The message to send"),
) -> None:
    """
    Send a message to an existing session.
    """
    with handle_errors():
        get_manager().send(session, message)

    console.print(f"Sent message to session: [bold]{session}[/bold]")


@app.command()
def watch(
    session: str = typer.Argument(..., help="The session name to watch"),
    interval: float = typer.Option(
        2.0,
        "--interval",
        "-i",
        min=0.1,
        help="Check interval in seconds",
    ),
    lines: int = typer.Option(
        15,
        "--lines",
        "-l",
        min=1,
        help="Number of output lines to show",
    ),
) -> None:
    """
    Watch a session until it completes or exits (Ctrl+C to stop watching).
    """
    manager = get_manager()
    try:
        while True:
            with handle_errors():
                detail = manager.status(session, lines)

            current = detail.session
            console.clear()
            console.print(f"[bold]Session:[/bold] {current.name}")
            console.print(f"[bold]Status:[/bold] {_status_text(current)}")
            if current.title:
                console.print(f"[bold]Title:[/bold] {escape(current.title)}")
            console.print()
            for line in detail.output_lines:
                console.print(line, markup=False, highlight=False)

            if not current.is_running:
                console.print(f"\n[dim]Session '{current.name}' has exited[/dim]")
                break
            if current.activity is Activity.IDLE:
                console.print("\n[green]Session completed.[/green]")
                break

            time.sleep(interval)
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped watching[/dim]")


@app.command()
def prune() -> None:
    """
    Forget sessions that have exited (their logs are kept).
    """
    with handle_errors():
        removed = get_manager().prune()

    if not removed:
        console.print("[dim]Nothing to prune[/dim]")
        return
    for name in removed:
        console.print(f"Removed {name}")


@app.command()
def version() -> None:
    """
    Print the version.
    """
    console.print(f"ccx {__version__}")


if __name__ == "__main__":
    app()
