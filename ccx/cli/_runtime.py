"""Objects shared by every CLI command: consoles, manager factory, error policy."""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape

from ccx.core.config import get_settings
from ccx.core.errors import CcxError
from ccx.core.manager import SessionManager

console = Console()
err_console = Console(stderr=True)


def get_manager() -> SessionManager:
    """Build the session manager from current settings."""
    return SessionManager(get_settings())


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn ccx errors into a message on stderr and the matching exit code."""
    try:
        yield
    except CcxError as e:
        logger.debug(f"{type(e).__name__}: {e}")
        err_console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=e.exit_code) from e


def shorten_path(path: str) -> str:
    """Replace the home directory prefix with ``~`` for display."""
    home = str(Path.home())
    if path == home or path.startswith(home + "/"):
        return "~" + path[len(home) :]
    return path


def format_age(moment: datetime) -> str:
    """Compact relative time such as ``5m`` or ``2d``."""
    seconds = max(int((datetime.now(timezone.utc) - moment).total_seconds()), 0)
    for unit, size in (("d", 86400), ("h", 3600), ("m", 60)):
        if seconds >= size:
            return f"{seconds // size}{unit}"
    return f"{seconds}s"
