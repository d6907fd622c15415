"""Core module - session manager, configuration, errors and logging."""

from ccx.core.config import Settings, get_settings
from ccx.core.errors import (
    AlreadyExistsError,
    CcxError,
    LockContentionError,
    LogIOError,
    NotFoundError,
    SpawnError,
    TmuxUnavailableError,
)
from ccx.core.manager import SessionDetail, SessionManager

__all__ = [
    "AlreadyExistsError",
    "CcxError",
    "LockContentionError",
    "LogIOError",
    "NotFoundError",
    "SessionDetail",
    "SessionManager",
    "Settings",
    "SpawnError",
    "TmuxUnavailableError",
    "get_settings",
]
