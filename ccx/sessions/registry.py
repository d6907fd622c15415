"""
Persisted session registry.

The registry is a JSON file shared by every ccx process. All read-modify-write
sequences run under an exclusive ``flock`` on a sibling lock file; the lock is
held only for the critical section, never across tmux calls that can block.
"""

from __future__ import annotations

import fcntl
import json
import os
import shutil
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from ccx.core.errors import AlreadyExistsError, LockContentionError, NotFoundError
from ccx.sessions.models import RegistryDocument, Session, SessionStatus

INITIAL_BACKOFF = 0.02
MAX_BACKOFF = 0.5


@contextmanager
def registry_lock(lock_path: Path, timeout: float) -> Iterator[None]:
    """
    Hold an exclusive advisory lock on ``lock_path``.

    The lock is taken non-blocking and retried with exponential backoff until
    ``timeout`` seconds have passed.

    Raises:
        LockContentionError: If another process keeps the lock past the timeout.
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o644)
    try:
        deadline = time.monotonic() + timeout
        delay = INITIAL_BACKOFF
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise LockContentionError(str(lock_path), timeout) from None
                time.sleep(min(delay, remaining))
                delay = min(delay * 2, MAX_BACKOFF)
        try:
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)


class SessionRegistry:
    """
    File-backed mapping of session name to :class:`Session`.

    The multiplexer is the source of truth for liveness; the registry caches
    intent and metadata, and :meth:`reconcile` brings it back in line.

    Example:
        >>> registry = SessionRegistry(Path("~/.ccx/sessions.json").expanduser())
        >>> registry.register("fix-bug", "/repo", "fix the bug", "ccx-fix-bug")
        >>> [s.name for s in registry.list()]
        ['fix-bug']
    """

    def __init__(
        self,
        path: Path,
        lock_path: Path | None = None,
        lock_timeout: float = 5.0,
        spawn_grace_seconds: float = 5.0,
    ) -> None:
        """
        Initialize the registry.

        Args:
            path: Registry JSON file.
            lock_path: Advisory lock file (defaults to ``<path>.lock``).
            lock_timeout: Seconds to wait for the lock.
            spawn_grace_seconds: Minimum age before reconciliation may reap an unspawned entry.
        """
        self.path = path
        self.lock_path = lock_path or path.with_suffix(".lock")
        self.lock_timeout = lock_timeout
        self.spawn_grace_seconds = spawn_grace_seconds

    @contextmanager
    def _locked(self) -> Iterator[dict[str, Session]]:
        """Load under the lock, yield the sessions, save on clean exit."""
        with registry_lock(self.lock_path, self.lock_timeout):
            sessions = self._load()
            before = self._dump(sessions)
            yield sessions
            if self._dump(sessions) != before:
                self._save(sessions)

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def _load(self) -> dict[str, Session]:
        if not self.path.exists():
            return {}
        try:
            document = RegistryDocument.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (ValidationError, ValueError) as e:
            backup = self.path.with_name(self.path.name + ".corrupt")
            logger.warning(f"Registry {self.path} is corrupt ({e}); backed up to {backup}")
            shutil.copy2(self.path, backup)
            return {}
        return dict(document.sessions)

    @staticmethod
    def _dump(sessions: Mapping[str, Session]) -> str:
        document = RegistryDocument(sessions={name: sessions[name] for name in sorted(sessions)})
        return json.dumps(document.model_dump(mode="json"), indent=2)

    def _save(self, sessions: Mapping[str, Session]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f"{self.path.name}.{os.getpid()}.tmp")
        tmp_path.write_text(self._dump(sessions) + "\n", encoding="utf-8")
        os.replace(tmp_path, self.path)

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def register(self, name: str, cwd: str, prompt: str, multiplexer_id: str) -> Session:
        """
        Add a Running entry.

        An Exited entry with the same name is replaced.

        Raises:
            AlreadyExistsError: If a Running entry already uses ``name``.
        """
        with self._locked() as sessions:
            existing = sessions.get(name)
            if existing is not None and existing.is_running:
                raise AlreadyExistsError(name)
            session = Session(
                name=name, cwd=cwd, prompt=prompt, multiplexer_id=multiplexer_id, spawned=False
            )
            sessions[name] = session
        logger.debug(f"Registered session {name} -> {multiplexer_id}")
        return session

    def list(self) -> list[Session]:
        """All entries ordered by name (not reconciled)."""
        with registry_lock(self.lock_path, self.lock_timeout):
            sessions = self._load()
        return [sessions[name] for name in sorted(sessions)]

    def running_names(self) -> set[str]:
        """Names of entries currently marked Running."""
        return {s.name for s in self.list() if s.is_running}

    def get(self, name: str) -> Session:
        """
        Look up one entry.

        Raises:
            NotFoundError: If no entry has that name.
        """
        with registry_lock(self.lock_path, self.lock_timeout):
            sessions = self._load()
        if name not in sessions:
            raise NotFoundError(name)
        return sessions[name]

    def remove(self, name: str) -> None:
        """
        Delete an entry.

        Raises:
            NotFoundError: If no entry has that name.
        """
        with self._locked() as sessions:
            if name not in sessions:
                raise NotFoundError(name)
            del sessions[name]
        logger.debug(f"Removed session {name}")

    def mark_spawned(self, name: str) -> Session:
        """
        Record that the multiplexer session for an entry now exists.

        Raises:
            NotFoundError: If no entry has that name.
        """
        with self._locked() as sessions:
            if name not in sessions:
                raise NotFoundError(name)
            session = sessions[name]
            session.spawned = True
        return session

    def mark_exited(self, name: str) -> Session:
        """
        Transition an entry to Exited (no-op if it already is).

        Raises:
            NotFoundError: If no entry has that name.
        """
        with self._locked() as sessions:
            if name not in sessions:
                raise NotFoundError(name)
            session = sessions[name]
            if session.is_running:
                session.mark_exited()
        return session

    def update_titles(self, titles: Mapping[str, str]) -> None:
        """Store refreshed titles for entries that are still Running."""
        with self._locked() as sessions:
            for name, title in titles.items():
                session = sessions.get(name)
                if session is not None and session.is_running and title:
                    session.title = title

    def prune(self) -> list[str]:
        """Remove every Exited entry and return their names."""
        with self._locked() as sessions:
            removed = [name for name, s in sessions.items() if s.status == SessionStatus.EXITED]
            for name in removed:
                del sessions[name]
        return sorted(removed)

    def reconcile(self, live_handles: set[str]) -> list[Session]:
        """
        Mark Running entries whose handle is not live as Exited.

        Live handles without an entry are ignored rather than adopted. Entries
        not yet spawned and registered less than ``spawn_grace_seconds`` ago are
        left alone, since their spawn may still be in flight in another process.
        Spawned entries are reaped as soon as their handle disappears.

        Args:
            live_handles: Handles the multiplexer currently reports.

        Returns:
            Entries transitioned to Exited by this pass.
        """
        with self._locked() as sessions:
            exited: list[Session] = []
            for name in sorted(sessions):
                session = sessions[name]
                if not session.is_running or session.multiplexer_id in live_handles:
                    continue
                if not session.spawned and session.age_seconds < self.spawn_grace_seconds:
                    logger.debug(f"Skipping reconciliation of {name}: spawn pending for {session.age_seconds:.1f}s")
                    continue
                session.mark_exited()
                exited.append(session)
        for session in exited:
            logger.info(f"Session {session.name} exited outside ccx")
        return exited
