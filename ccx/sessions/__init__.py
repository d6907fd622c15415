"""Session management - registry, tmux adapter and pane parsing."""

from ccx.sessions.base import Multiplexer
from ccx.sessions.models import Activity, EventKind, Session, SessionStatus
from ccx.sessions.registry import SessionRegistry
from ccx.sessions.tmux import TmuxMultiplexer

__all__ = [
    "Activity",
    "EventKind",
    "Multiplexer",
    "Session",
    "SessionRegistry",
    "SessionStatus",
    "TmuxMultiplexer",
]
