"""Unit tests for settings."""

from pathlib import Path

import pytest

from ccx.core.config import Settings, clear_settings_cache, get_settings


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Default values apply when no environment overrides exist."""
        monkeypatch.delenv("CCX_HOME", raising=False)
        monkeypatch.delenv("CCX_SPAWN_GRACE_SECONDS", raising=False)
        monkeypatch.delenv("CCX_LOCK_TIMEOUT", raising=False)

        settings = Settings()

        assert settings.home == Path("~/.ccx").expanduser()
        assert settings.agent_command == "claude"
        assert settings.session_prefix == "ccx-"
        assert settings.log_retention_days == 7
        assert settings.lock_timeout == 5.0

    def test_derived_paths(self, ccx_env: Path) -> None:
        settings = get_settings()

        assert settings.home == ccx_env
        assert settings.registry_path == ccx_env / "sessions.json"
        assert settings.lock_path == ccx_env / "sessions.lock"
        assert settings.logs_dir == ccx_env / "logs"

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CCX_AGENT_COMMAND", "claude --model opus")
        monkeypatch.setenv("CCX_TMUX_SOCKET", "ccx-test")
        clear_settings_cache()

        settings = get_settings()

        assert settings.agent_command == "claude --model opus"
        assert settings.tmux_socket == "ccx-test"

    def test_invalid_value_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CCX_LOCK_TIMEOUT", "0")

        with pytest.raises(ValueError):
            Settings()

    def test_settings_are_cached(self) -> None:
        assert get_settings() is get_settings()
