"""Session manager - coordinates the registry, tmux and the event logs.

This module provides the primary interface behind every CLI command. Each
operation follows the same pipeline: reconcile the registry against live
multiplexer state, act on the multiplexer, write the registry, record an
event. Event-log failures are reported and never fail the operation.
"""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from ccx.core.config import Settings, get_settings
from ccx.core.errors import (
    AlreadyExistsError,
    CcxError,
    LogIOError,
    NotFoundError,
    SpawnError,
    TmuxUnavailableError,
)
from ccx.logs.store import LogStore
from ccx.sessions.base import Multiplexer
from ccx.sessions.extractor import extract_title, parse_activity, title_from_pane_title
from ccx.sessions.models import Activity, EventKind, LiveSession, LogFile, Session
from ccx.sessions.naming import slugify, unique_name
from ccx.sessions.registry import SessionRegistry
from ccx.sessions.tmux import TmuxMultiplexer

# Scrollback read when deriving a title from pane text
TITLE_CAPTURE_LINES = 50

# Attempts at claiming an auto-generated name when racing other processes
MAX_NAME_ATTEMPTS = 5


@dataclass
class SessionDetail:
    """A session plus its most recent output."""

    session: Session
    output_lines: list[str] = field(default_factory=list)


class SessionManager:
    """
    Main ccx entry point.

    Example:
        >>> manager = SessionManager()
        >>> session = manager.start("fix the login bug", cwd="/repo")
        >>> session.name
        'fix-the-login-bug'
        >>> manager.stop(session.name).status
        <SessionStatus.EXITED: 'exited'>
    """

    def __init__(
        self,
        settings: Settings | None = None,
        multiplexer: Multiplexer | None = None,
        registry: SessionRegistry | None = None,
        log_store: LogStore | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            settings: Optional settings override. Uses default if not provided.
            multiplexer: Multiplexer adapter (tmux unless given).
            registry: Session registry (file under ``settings.home`` unless given).
            log_store: Event log store (``settings.logs_dir`` unless given).
        """
        self.settings = settings or get_settings()
        self.multiplexer = multiplexer or TmuxMultiplexer.from_settings(self.settings)
        self.registry = registry or SessionRegistry(
            self.settings.registry_path,
            lock_path=self.settings.lock_path,
            lock_timeout=self.settings.lock_timeout,
            spawn_grace_seconds=self.settings.spawn_grace_seconds,
        )
        self.log_store = log_store or LogStore(self.settings.logs_dir)

    # =========================================================================
    # EVENT LOG
    # =========================================================================

    def _record(self, session_name: str, event_kind: EventKind, detail: str = "") -> None:
        """Append to the event log; failures are reported, never raised."""
        try:
            self.log_store.append(session_name, event_kind, detail)
        except LogIOError as e:
            logger.warning(f"Could not record {event_kind.value} for {session_name}: {e}")

    # =========================================================================
    # RECONCILIATION
    # =========================================================================

    def reconcile(self) -> list[LiveSession]:
        """
        Sync registry liveness with tmux.

        Returns:
            The live sessions reported by the multiplexer.
        """
        live = self.multiplexer.list_sessions()
        for session in self.registry.reconcile({s.handle for s in live}):
            self._record(session.name, EventKind.EXITED_EXTERNALLY, f"{session.multiplexer_id} is gone")
        return live

    def _refresh(self, session: Session) -> tuple[str, Activity]:
        """Read title and activity for a running session from its pane."""
        handle = session.multiplexer_id
        width = self.settings.title_width
        try:
            pane_title = self.multiplexer.pane_title(handle)
            title = title_from_pane_title(pane_title, width)
            if not title:
                title = extract_title(self.multiplexer.capture_pane(handle, TITLE_CAPTURE_LINES), width)
        except NotFoundError:
            # Exited between reconciliation and capture; the next pass reaps it
            return session.title, Activity.UNKNOWN
        return title or session.title, parse_activity(pane_title)

    def _refresh_titles(self, sessions: list[Session]) -> None:
        changed: dict[str, str] = {}
        for session in sessions:
            if not session.is_running:
                continue
            title, session.activity = self._refresh(session)
            if title != session.title:
                changed[session.name] = title
                self._record(session.name, EventKind.STATUS_CHANGED, f"title: {title}")
                session.title = title
        if changed:
            self.registry.update_titles(changed)

    # =========================================================================
    # COMMANDS
    # =========================================================================

    def _agent_command(self, prompt: str) -> list[str]:
        return [*shlex.split(self.settings.agent_command), prompt]

    def _resolve_cwd(self, cwd: str | Path | None) -> str:
        path = Path(cwd).expanduser() if cwd else Path(os.getcwd())
        path = path.resolve()
        if not path.is_dir():
            raise CcxError(f"Working directory does not exist: {path}")
        return str(path)

    def _taken_names(self) -> set[str]:
        prefix = self.settings.session_prefix
        taken = self.registry.running_names()
        for handle in self.multiplexer.live_handles():
            if handle.startswith(prefix):
                taken.add(handle[len(prefix) :])
        return taken

    def start(self, prompt: str, cwd: str | Path | None = None, name: str | None = None) -> Session:
        """
        Register and spawn a new background session.

        Args:
            prompt: Prompt for the agent.
            cwd: Working directory (current directory if omitted).
            name: Explicit session name; derived from the prompt if omitted.

        Returns:
            The registered session.

        Raises:
            AlreadyExistsError: If ``name`` is given and a running session uses it.
            SpawnError: If tmux could not create the session (registration is rolled back).
            TmuxUnavailableError: If tmux cannot be reached.
        """
        if not prompt.strip():
            raise CcxError("Prompt must not be empty")
        workdir = self._resolve_cwd(cwd)

        session: Session | None = None
        if name is not None:
            slug = slugify(name)
            if slug != name:
                logger.info(f"Using session name '{slug}' for '{name}'")
            session = self.registry.register(slug, workdir, prompt, self.multiplexer.handle_for(slug))
        else:
            base = slugify(prompt)
            for _ in range(MAX_NAME_ATTEMPTS):
                candidate = unique_name(base, self._taken_names())
                try:
                    session = self.registry.register(
                        candidate, workdir, prompt, self.multiplexer.handle_for(candidate)
                    )
                    break
                except AlreadyExistsError:
                    logger.debug(f"Lost race for name {candidate}, retrying")
            if session is None:
                raise AlreadyExistsError(base)

        try:
            self.multiplexer.spawn(session.name, workdir, self._agent_command(prompt))
        except (SpawnError, TmuxUnavailableError) as e:
            try:
                self.registry.remove(session.name)
            except CcxError as rollback_error:
                logger.error(f"Could not roll back {session.name}: {rollback_error}")
            self._record(session.name, EventKind.ERROR, f"spawn failed: {e}")
            raise

        try:
            session = self.registry.mark_spawned(session.name)
        except CcxError as e:
            # Unspawned entries are still reconciled once the grace window ends
            logger.warning(f"Could not mark {session.name} as spawned: {e}")

        self._record(session.name, EventKind.STARTED, f"cwd={workdir} prompt={prompt}")
        logger.info(f"Started session {session.name}")
        return session

    def list_sessions(self, refresh_titles: bool = True) -> list[Session]:
        """All sessions ordered by name, reconciled against tmux."""
        live = {s.handle: s for s in self.reconcile()}
        sessions = self.registry.list()
        for session in sessions:
            if session.is_running and session.multiplexer_id in live:
                session.attached = live[session.multiplexer_id].attached
        if refresh_titles:
            self._refresh_titles(sessions)
        return sessions

    def get(self, name: str) -> Session:
        """
        One session, reconciled against tmux.

        Raises:
            NotFoundError: If the session is unknown.
        """
        self.reconcile()
        return self.registry.get(name)

    def _get_running(self, name: str) -> Session:
        session = self.get(name)
        if not session.is_running:
            raise NotFoundError(name, f"Session '{name}' has exited")
        return session

    def status(self, name: str, lines: int = 10) -> SessionDetail:
        """
        Status of one session and its last ``lines`` non-blank output lines.

        Raises:
            NotFoundError: If the session is unknown.
        """
        session = self.get(name)
        if not session.is_running:
            return SessionDetail(session=session)

        self._refresh_titles([session])
        try:
            content = self.multiplexer.capture_pane(session.multiplexer_id, lines)
        except NotFoundError:
            return SessionDetail(session=session)

        output = [line for line in content.splitlines() if line.strip()]
        return SessionDetail(session=session, output_lines=output[-lines:] if lines > 0 else [])

    def stop(self, name: str) -> Session:
        """
        Kill a session's tmux session and mark it Exited.

        A session that is already gone from tmux is still marked Exited.

        Raises:
            NotFoundError: If the session is unknown.
        """
        session = self.registry.get(name)
        if not session.is_running:
            logger.info(f"Session {name} has already exited")
            return session

        try:
            self.multiplexer.kill(session.multiplexer_id)
        except NotFoundError:
            logger.info(f"tmux session {session.multiplexer_id} was already gone")

        session = self.registry.mark_exited(name)
        self._record(name, EventKind.STOPPED, "stopped by user")
        return session

    def attach(self, name: str) -> int:
        """
        Attach the terminal to a running session.

        Returns:
            tmux's exit status.

        Raises:
            NotFoundError: If the session is unknown or has exited.
        """
        session = self._get_running(name)
        return self.multiplexer.attach(session.multiplexer_id)

    def send(self, name: str, message: str) -> None:
        """
        Type a follow-up message into a running session.

        Raises:
            NotFoundError: If the session is unknown or has exited.
        """
        session = self._get_running(name)
        self.multiplexer.send_keys(session.multiplexer_id, message)
        self._record(name, EventKind.MESSAGE_SENT, message)

    def prune(self) -> list[str]:
        """Forget every Exited session. Logs are kept."""
        self.reconcile()
        removed = self.registry.prune()
        if removed:
            logger.info(f"Pruned {len(removed)} exited session(s)")
        return removed

    # =========================================================================
    # LOGS
    # =========================================================================

    def list_logs(self) -> list[LogFile]:
        """Session logs, newest first."""
        return self.log_store.list()

    def show_log(self, name: str, tail: int | None = None) -> str:
        """
        Content of a session log.

        Raises:
            NotFoundError: If the session has no log.
        """
        if tail is not None:
            return self.log_store.tail(name, tail)
        return self.log_store.show(name)

    def clean_logs(self, older_than_days: float | None = None) -> int:
        """Delete old session logs and return how many were removed."""
        days = self.settings.log_retention_days if older_than_days is None else older_than_days
        return self.log_store.clean(days)
