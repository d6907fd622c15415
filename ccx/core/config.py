"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CCX_",
        case_sensitive=False,
        extra="ignore",
    )

    # State
    home: Path = Field(
        default_factory=lambda: Path.home() / ".ccx",
        description="Root directory for the registry and session logs",
    )

    # Agent
    agent_command: str = Field(
        default="claude",
        description="Coding-agent binary started inside each session",
    )

    # tmux
    tmux_binary: str = Field(
        default="tmux",
        description="tmux executable (looked up on PATH)",
    )
    tmux_socket: str | None = Field(
        default=None,
        description="Named tmux socket (-L); None uses the default server",
    )
    session_prefix: str = Field(
        default="ccx-",
        description="Prefix for tmux session names created by ccx",
    )
    command_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Timeout in seconds for non-interactive tmux calls",
    )
    kill_grace: float = Field(
        default=3.0,
        ge=0,
        description="Seconds to wait after SIGTERM before force-killing",
    )

    # Registry
    lock_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Seconds to wait for the registry lock",
    )
    spawn_grace_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Unspawned entries younger than this are not reaped by reconciliation",
    )

    # Display
    title_width: int = Field(
        default=60,
        ge=8,
        description="Maximum width of derived session titles",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Logging level for stderr output",
    )
    log_retention_days: int = Field(
        default=7,
        ge=0,
        description="Default age threshold for `ccx logs clean`",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    @field_validator("home")
    @classmethod
    def _expand_home(cls, value: Path) -> Path:
        return value.expanduser()

    @property
    def registry_path(self) -> Path:
        """Path of the persisted session registry."""
        return self.home / "sessions.json"

    @property
    def lock_path(self) -> Path:
        """Path of the advisory lock guarding the registry."""
        return self.home / "sessions.lock"

    @property
    def logs_dir(self) -> Path:
        """Directory holding one event log per session."""
        return self.home / "logs"

    @property
    def debug_log_path(self) -> Path:
        """Rotating debug log written by loguru."""
        return self.home / "debug" / "ccx_{time:YYYY-MM-DD}.log"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings instance loaded from environment.

    Example:
        >>> settings = get_settings()
        >>> settings.session_prefix
        'ccx-'
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
