"""Append-only per-session event logs."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger

from ccx.core.errors import LogIOError, NotFoundError
from ccx.sessions.models import EventKind, LogEntry, LogFile
from ccx.sessions.naming import is_valid_name

LOG_SUFFIX = ".log"
SECONDS_PER_DAY = 86400


class LogStore:
    """
    One plain-text event log per session, named after the session.

    Files are only ever appended to; :meth:`clean` deletes whole files by age.

    Example:
        >>> store = LogStore(Path("~/.ccx/logs").expanduser())
        >>> store.append("fix-bug", EventKind.STARTED, "cwd=/repo")
        >>> store.clean(older_than_days=0)
        1
    """

    def __init__(self, directory: Path) -> None:
        """Initialize the store rooted at ``directory``."""
        self.directory = directory

    def path_for(self, session_name: str) -> Path:
        """
        Log file path for a session.

        Raises:
            NotFoundError: If ``session_name`` is not a valid session name.
        """
        if not is_valid_name(session_name):
            raise NotFoundError(session_name, f"No log found for session '{session_name}'")
        return self.directory / f"{session_name}{LOG_SUFFIX}"

    def append(self, session_name: str, event_kind: EventKind, detail: str = "") -> LogEntry:
        """
        Append one event line.

        Raises:
            LogIOError: If the file cannot be written.
        """
        entry = LogEntry(session_name=session_name, event_kind=event_kind, detail=detail)
        try:
            path = self.path_for(session_name)
        except NotFoundError as e:
            raise LogIOError(f"Refusing to write log for {session_name!r}") from e
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(entry.to_line() + "\n")
        except OSError as e:
            raise LogIOError(f"Failed to write log for {session_name}: {e}") from e
        logger.debug(f"Logged {event_kind.value} for {session_name}")
        return entry

    def list(self) -> list[LogFile]:
        """All session logs, most recently modified first."""
        if not self.directory.is_dir():
            return []

        files: list[LogFile] = []
        for path in self.directory.glob(f"*{LOG_SUFFIX}"):
            try:
                stat = path.stat()
            except FileNotFoundError:
                # Removed by a concurrent clean
                continue
            files.append(
                LogFile(
                    session_name=path.stem,
                    path=path,
                    last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                    size_bytes=stat.st_size,
                )
            )
        return sorted(files, key=lambda f: f.last_modified, reverse=True)

    def show(self, session_name: str) -> str:
        """
        Full content of a session's log.

        Raises:
            NotFoundError: If the session has no log.
            LogIOError: If the file exists but cannot be read.
        """
        path = self.path_for(session_name)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise NotFoundError(session_name, f"No log found for session '{session_name}'") from None
        except OSError as e:
            raise LogIOError(f"Failed to read log for {session_name}: {e}") from e

    def tail(self, session_name: str, lines: int) -> str:
        """Last ``lines`` lines of a session's log."""
        content = self.show(session_name)
        if lines <= 0:
            return ""
        return "".join(content.splitlines(keepends=True)[-lines:])

    def clean(self, older_than_days: float = 7) -> int:
        """
        Delete logs last modified strictly before now minus ``older_than_days``.

        ``older_than_days=0`` removes every log.

        Returns:
            Number of files removed.
        """
        if older_than_days < 0:
            raise ValueError("older_than_days must not be negative")

        cutoff = time.time() - older_than_days * SECONDS_PER_DAY
        removed = 0
        for log_file in self.list():
            if older_than_days and log_file.last_modified.timestamp() >= cutoff:
                continue
            try:
                log_file.path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                raise LogIOError(f"Failed to remove {log_file.path}: {e}") from e
            removed += 1

        logger.info(f"Removed {removed} log file(s) older than {older_than_days:g} day(s)")
        return removed
