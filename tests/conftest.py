"""Pytest configuration and shared fixtures."""

import os
from collections.abc import Generator, Sequence
from pathlib import Path
from typing import Any

import pytest

from ccx.core.config import Settings, clear_settings_cache, get_settings
from ccx.core.errors import NotFoundError, SpawnError
from ccx.core.manager import SessionManager
from ccx.sessions.base import Multiplexer
from ccx.sessions.models import LiveSession
from ccx.sessions.tmux import TmuxMultiplexer

# Set test environment (rich reads COLUMNS when the CLI console is created)
os.environ.setdefault("COLUMNS", "200")


class FakeMultiplexer(Multiplexer):
    """In-memory stand-in for tmux."""

    def __init__(self, prefix: str = "ccx-") -> None:
        self.prefix = prefix
        self.sessions: dict[str, dict[str, Any]] = {}
        self.spawn_error: Exception | None = None
        self.attach_code = 0
        self.attached: list[str] = []
        self.killed: list[str] = []

    def handle_for(self, name: str) -> str:
        return f"{self.prefix}{name}"

    def spawn(self, name: str, cwd: str, command: Sequence[str]) -> str:
        if self.spawn_error is not None:
            raise self.spawn_error
        handle = self.handle_for(name)
        if handle in self.sessions:
            raise SpawnError(handle, f"duplicate session: {handle}")
        self.sessions[handle] = {
            "name": name,
            "cwd": cwd,
            "command": list(command),
            "pane": "",
            "title": "",
            "attached": False,
            "sent": [],
        }
        return handle

    def list_sessions(self) -> list[LiveSession]:
        return [LiveSession(handle=h, attached=s["attached"]) for h, s in self.sessions.items()]

    def _require(self, handle: str) -> dict[str, Any]:
        if handle not in self.sessions:
            raise NotFoundError(handle, f"tmux session '{handle}' does not exist")
        return self.sessions[handle]

    def capture_pane(self, handle: str, last_n_lines: int) -> str:
        return self._require(handle)["pane"]

    def pane_title(self, handle: str) -> str:
        return self._require(handle)["title"]

    def is_alive(self, handle: str) -> bool:
        return handle in self.sessions

    def kill(self, handle: str, grace: float | None = None) -> None:
        self._require(handle)
        del self.sessions[handle]
        self.killed.append(handle)

    def send_keys(self, handle: str, text: str) -> None:
        session = self._require(handle)
        session["sent"].append(text)
        session["pane"] += f"> {text}\n"

    def attach(self, handle: str) -> int:
        self._require(handle)
        self.attached.append(handle)
        return self.attach_code

    # Test helpers

    def set_output(self, handle: str, pane: str, title: str = "") -> None:
        self.sessions[handle]["pane"] = pane
        self.sessions[handle]["title"] = title

    def exit_externally(self, handle: str) -> None:
        del self.sessions[handle]


@pytest.fixture(autouse=True)
def ccx_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Point ccx at a throwaway home directory."""
    home = tmp_path / "ccx-home"
    monkeypatch.setenv("CCX_HOME", str(home))
    monkeypatch.setenv("CCX_SPAWN_GRACE_SECONDS", "0")
    monkeypatch.setenv("CCX_LOCK_TIMEOUT", "1")
    monkeypatch.delenv("CCX_TMUX_SOCKET", raising=False)
    monkeypatch.delenv("CCX_DEBUG", raising=False)

    # Clear any cached settings
    clear_settings_cache()

    yield home

    # Clear again after test
    clear_settings_cache()


@pytest.fixture
def settings() -> Settings:
    """Settings bound to the temporary home."""
    return get_settings()


@pytest.fixture
def fake_mux() -> FakeMultiplexer:
    """Provide an in-memory multiplexer."""
    return FakeMultiplexer()


@pytest.fixture
def manager(settings: Settings, fake_mux: FakeMultiplexer) -> SessionManager:
    """Session manager wired to the fake multiplexer."""
    return SessionManager(settings, multiplexer=fake_mux)


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    """An existing working directory for sessions."""
    path = tmp_path / "repo"
    path.mkdir()
    return path


@pytest.fixture
def cli_mux(fake_mux: FakeMultiplexer, monkeypatch: pytest.MonkeyPatch) -> FakeMultiplexer:
    """Make the CLI build its manager around the fake multiplexer."""
    monkeypatch.setattr(
        TmuxMultiplexer,
        "from_settings",
        classmethod(lambda cls, settings: fake_mux),
    )
    return fake_mux


# Markers
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "e2e: mark test as end-to-end test against a real tmux")
    config.addinivalue_line("markers", "slow: mark test as slow running")
