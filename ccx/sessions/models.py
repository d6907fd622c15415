"""Data model for ccx sessions and their event logs."""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# ENUMS
# =============================================================================


class SessionStatus(str, Enum):
    """Liveness of a session as seen by the registry."""

    RUNNING = "running"
    EXITED = "exited"


class Activity(str, Enum):
    """What the agent appears to be doing, derived from its pane title."""

    WORKING = "working"
    IDLE = "idle"
    UNKNOWN = "unknown"


class EventKind(str, Enum):
    """Kinds of entries written to a session's event log."""

    STARTED = "STARTED"
    STATUS_CHANGED = "STATUS_CHANGED"
    STOPPED = "STOPPED"
    EXITED_EXTERNALLY = "EXITED_EXTERNALLY"
    MESSAGE_SENT = "MESSAGE_SENT"
    ERROR = "ERROR"


# =============================================================================
# PYDANTIC MODELS
# =============================================================================


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


class Session(BaseModel):
    """A tracked background session."""

    model_config = ConfigDict(frozen=False)

    name: str = Field(description="Unique session name (slug)")
    cwd: str = Field(description="Absolute working directory")
    prompt: str = Field(description="Prompt the agent was started with")
    multiplexer_id: str = Field(description="tmux session name")
    start_time: datetime = Field(default_factory=utcnow)
    title: str = Field(default="", description="Derived human-readable title")
    status: SessionStatus = Field(default=SessionStatus.RUNNING)
    exited_at: datetime | None = Field(default=None)
    spawned: bool = Field(default=True, description="False until tmux has created the session")

    # Refreshed on every status read, never persisted as liveness truth
    activity: Activity = Field(default=Activity.UNKNOWN, exclude=True)
    attached: bool = Field(default=False, exclude=True)

    @property
    def is_running(self) -> bool:
        """Check if the registry believes the session is alive."""
        return self.status == SessionStatus.RUNNING

    @property
    def age_seconds(self) -> float:
        """Seconds since the session was registered."""
        return (utcnow() - self.start_time).total_seconds()

    def mark_exited(self) -> None:
        """Transition to Exited."""
        self.status = SessionStatus.EXITED
        self.exited_at = utcnow()
        self.activity = Activity.UNKNOWN
        self.attached = False


class RegistryDocument(BaseModel):
    """On-disk layout of the registry file."""

    version: int = 1
    sessions: dict[str, Session] = Field(default_factory=dict)


class LiveSession(BaseModel):
    """A session reported by the tmux server."""

    model_config = ConfigDict(frozen=True)

    handle: str
    attached: bool = False
    pane_pid: int | None = None


class LogEntry(BaseModel):
    """One line of a session event log."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utcnow)
    session_name: str
    event_kind: EventKind
    detail: str = ""

    def to_line(self) -> str:
        """Render as a single log line."""
        detail = " ".join(self.detail.split())
        return f"{self.timestamp.isoformat(timespec='seconds')} [{self.event_kind.value}] {detail}".rstrip()


class LogFile(BaseModel):
    """A session event log on disk."""

    model_config = ConfigDict(frozen=True)

    session_name: str
    path: Path
    last_modified: datetime
    size_bytes: int = 0
