"""Exception hierarchy for ccx.

Every error raised by the registry, the multiplexer adapter and the log store
derives from :class:`CcxError`. The CLI inspects ``exit_code`` to decide how
the process terminates.
"""

EXIT_ERROR = 1
EXIT_NOT_FOUND = 2


class CcxError(Exception):
    """Base exception for ccx errors."""

    exit_code: int = EXIT_ERROR


class AlreadyExistsError(CcxError):
    """A running session already uses this name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Session '{name}' already exists")
        self.name = name


class NotFoundError(CcxError):
    """Unknown session, missing tmux session or missing log file."""

    exit_code = EXIT_NOT_FOUND

    def __init__(self, name: str, message: str | None = None) -> None:
        super().__init__(message or f"Session '{name}' does not exist")
        self.name = name


class TmuxUnavailableError(CcxError):
    """tmux is not installed or its server cannot be reached."""


class SpawnError(CcxError):
    """tmux refused to create the session."""

    def __init__(self, handle: str, detail: str) -> None:
        super().__init__(f"Failed to create tmux session {handle}: {detail}")
        self.handle = handle
        self.detail = detail


class LockContentionError(CcxError):
    """The registry lock could not be acquired in time."""

    def __init__(self, path: str, timeout: float) -> None:
        super().__init__(f"Registry is locked by another ccx process ({path}, waited {timeout:g}s)")
        self.path = path
        self.timeout = timeout


class LogIOError(CcxError):
    """Reading or writing a session event log failed."""
