"""
tmux multiplexer adapter for ccx.

Drives the ``tmux`` binary with :mod:`subprocess`. This is the only module
that knows tmux command syntax.
"""

import os
import shutil
import signal
import subprocess
import time
from collections.abc import Sequence

from loguru import logger

from ccx.core.config import Settings
from ccx.core.errors import CcxError, NotFoundError, SpawnError, TmuxUnavailableError
from ccx.sessions.base import Multiplexer
from ccx.sessions.models import LiveSession

# Detached sessions default to 80x24, which truncates most agent output
DEFAULT_WIDTH = 220
DEFAULT_HEIGHT = 50

POLL_INTERVAL = 0.1

_NO_SERVER_MARKERS = ("no server running", "error connecting to", "server exited")
_NOT_FOUND_MARKERS = ("can't find session", "session not found", "can't find pane", "can't find window")


def _is_no_server(stderr: str) -> bool:
    return any(marker in stderr for marker in _NO_SERVER_MARKERS)


def _is_not_found(stderr: str) -> bool:
    return any(marker in stderr for marker in _NOT_FOUND_MARKERS)


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class TmuxMultiplexer(Multiplexer):
    """
    Manages ccx sessions as tmux sessions.

    Each ccx session is one tmux session named ``<prefix><name>`` whose single
    window runs the agent directly (no intermediate shell), so the pane's
    process group is the agent's.

    Example:
        >>> tmux = TmuxMultiplexer(prefix="ccx-")
        >>> handle = tmux.spawn("fix-bug", "/repo", ["claude", "fix the bug"])
        >>> tmux.capture_pane(handle, 20)
    """

    def __init__(
        self,
        binary: str = "tmux",
        socket_name: str | None = None,
        prefix: str = "ccx-",
        command_timeout: float = 10.0,
        kill_grace: float = 3.0,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            binary: tmux executable.
            socket_name: Named server socket (``tmux -L``).
            prefix: Prefix identifying sessions created by ccx.
            command_timeout: Timeout for every non-interactive tmux call.
            kill_grace: Default seconds between SIGTERM and SIGKILL.
        """
        self.binary = binary
        self.socket_name = socket_name
        self.prefix = prefix
        self.command_timeout = command_timeout
        self.kill_grace = kill_grace

    @classmethod
    def from_settings(cls, settings: Settings) -> "TmuxMultiplexer":
        """Build an adapter from application settings."""
        return cls(
            binary=settings.tmux_binary,
            socket_name=settings.tmux_socket,
            prefix=settings.session_prefix,
            command_timeout=settings.command_timeout,
            kill_grace=settings.kill_grace,
        )

    # =========================================================================
    # COMMAND EXECUTION
    # =========================================================================

    def _base_command(self) -> list[str]:
        executable = shutil.which(self.binary)
        if executable is None:
            raise TmuxUnavailableError(f"tmux executable '{self.binary}' not found on PATH")
        command = [executable]
        if self.socket_name:
            command += ["-L", self.socket_name]
        return command

    def _run(self, *args: str) -> subprocess.CompletedProcess[str]:
        command = self._base_command() + list(args)
        logger.debug(f"Running {' '.join(command)}")
        try:
            return subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.command_timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise TmuxUnavailableError(f"Failed to execute tmux: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise TmuxUnavailableError(
                f"tmux did not respond within {self.command_timeout:g}s ({args[0]})"
            ) from e

    def _check(self, result: subprocess.CompletedProcess[str], handle: str) -> str:
        """Return stdout, or raise the error matching tmux's complaint."""
        if result.returncode == 0:
            return result.stdout
        stderr = result.stderr.strip()
        if _is_not_found(stderr) or _is_no_server(stderr):
            raise NotFoundError(handle, f"tmux session '{handle}' does not exist")
        raise TmuxUnavailableError(f"tmux failed: {stderr or f'exit status {result.returncode}'}")

    @staticmethod
    def _session_target(handle: str) -> str:
        # '=' forces an exact match; tmux otherwise accepts name prefixes
        return f"={handle}"

    @staticmethod
    def _pane_target(handle: str) -> str:
        return f"={handle}:"

    def handle_for(self, name: str) -> str:
        """tmux session name used for a ccx session name."""
        return f"{self.prefix}{name}"

    # =========================================================================
    # MULTIPLEXER INTERFACE
    # =========================================================================

    def spawn(self, name: str, cwd: str, command: Sequence[str]) -> str:
        """Create a detached tmux session running ``command``."""
        handle = self.handle_for(name)
        result = self._run(
            "new-session",
            "-d",
            "-s",
            handle,
            "-n",
            name,
            "-c",
            cwd,
            "-x",
            str(DEFAULT_WIDTH),
            "-y",
            str(DEFAULT_HEIGHT),
            *command,
        )
        if result.returncode != 0:
            raise SpawnError(handle, result.stderr.strip() or f"exit status {result.returncode}")

        # Let the agent rename its window; failure only costs cosmetics
        option = self._run("set-option", "-w", "-t", self._pane_target(handle), "allow-rename", "on")
        if option.returncode != 0:
            logger.debug(f"Could not enable allow-rename for {handle}: {option.stderr.strip()}")

        logger.info(f"Spawned tmux session {handle} in {cwd}")
        return handle

    def list_sessions(self) -> list[LiveSession]:
        """List live tmux sessions carrying the ccx prefix."""
        result = self._run(
            "list-sessions",
            "-F",
            "#{session_name}\t#{session_attached}\t#{pane_pid}",
        )
        if result.returncode != 0:
            stderr = result.stderr.strip()
            if _is_no_server(stderr):
                return []
            raise TmuxUnavailableError(f"tmux list-sessions failed: {stderr}")

        sessions: list[LiveSession] = []
        for line in result.stdout.splitlines():
            parts = line.split("\t")
            if len(parts) < 2 or not parts[0].startswith(self.prefix):
                continue
            pane_pid = int(parts[2]) if len(parts) > 2 and parts[2].isdigit() else None
            sessions.append(
                LiveSession(
                    handle=parts[0],
                    attached=parts[1] not in ("", "0"),
                    pane_pid=pane_pid,
                )
            )
        return sessions

    def capture_pane(self, handle: str, last_n_lines: int) -> str:
        """Capture pane content without modifying it."""
        result = self._run(
            "capture-pane",
            "-p",
            "-J",
            "-t",
            self._pane_target(handle),
            "-S",
            f"-{max(last_n_lines, 0)}",
        )
        return self._check(result, handle)

    def pane_title(self, handle: str) -> str:
        """Read the pane title set by the agent."""
        result = self._run("display-message", "-p", "-t", self._pane_target(handle), "#{pane_title}")
        return self._check(result, handle).strip()

    def is_alive(self, handle: str) -> bool:
        """Check if a tmux session exists."""
        return self._run("has-session", "-t", self._session_target(handle)).returncode == 0

    def pane_pid(self, handle: str) -> int | None:
        """PID of the process running in the session's pane."""
        result = self._run("list-panes", "-s", "-t", self._session_target(handle), "-F", "#{pane_pid}")
        for line in self._check(result, handle).splitlines():
            if line.strip().isdigit():
                return int(line.strip())
        return None

    def kill(self, handle: str, grace: float | None = None) -> None:
        """
        Terminate the session's process group, then the session itself.

        Sends SIGTERM to the pane's process group and waits up to ``grace``
        seconds before escalating to SIGKILL and ``kill-session``.
        """
        grace = self.kill_grace if grace is None else grace
        pid = self.pane_pid(handle)

        if pid is not None:
            self._signal_group(pid, signal.SIGTERM)
            deadline = time.monotonic() + grace
            while _pid_alive(pid) and time.monotonic() < deadline:
                time.sleep(POLL_INTERVAL)
            if _pid_alive(pid):
                logger.warning(f"Session {handle} ignored SIGTERM for {grace:g}s, sending SIGKILL")
                self._signal_group(pid, signal.SIGKILL)

        # A single-pane session usually disappears with its process
        result = self._run("kill-session", "-t", self._session_target(handle))
        if result.returncode != 0 and self.is_alive(handle):
            raise CcxError(f"Failed to kill tmux session {handle}: {result.stderr.strip()}")

        logger.info(f"Killed tmux session {handle}")

    @staticmethod
    def _signal_group(pid: int, sig: signal.Signals) -> None:
        try:
            os.killpg(os.getpgid(pid), sig)
        except ProcessLookupError:
            pass
        except PermissionError as e:
            logger.warning(f"Not allowed to signal process group of {pid}: {e}")

    def send_keys(self, handle: str, text: str) -> None:
        """Type ``text`` literally, then press Enter."""
        target = self._pane_target(handle)
        self._check(self._run("send-keys", "-t", target, "-l", text), handle)
        self._check(self._run("send-keys", "-t", target, "Enter"), handle)

    def attach(self, handle: str) -> int:
        """Attach (or switch, when already inside tmux) to the session."""
        verb = "switch-client" if os.environ.get("TMUX") else "attach-session"
        command = self._base_command() + [verb, "-t", self._session_target(handle)]
        logger.debug(f"Running {' '.join(command)}")
        try:
            return subprocess.run(command, check=False).returncode
        except FileNotFoundError as e:
            raise TmuxUnavailableError(f"Failed to execute tmux: {e}") from e
