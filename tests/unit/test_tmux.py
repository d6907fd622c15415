"""Unit tests for the tmux adapter (subprocess mocked)."""

import signal
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from ccx.core.config import Settings
from ccx.core.errors import NotFoundError, SpawnError, TmuxUnavailableError
from ccx.sessions.tmux import TmuxMultiplexer

TMUX = "/usr/bin/tmux"


def completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def tmux() -> TmuxMultiplexer:
    return TmuxMultiplexer(prefix="ccx-", command_timeout=2.0, kill_grace=0.2)


@pytest.fixture
def mock_run():
    with patch("ccx.sessions.tmux.shutil.which", return_value=TMUX), patch(
        "ccx.sessions.tmux.subprocess.run"
    ) as run:
        run.return_value = completed()
        yield run


def _args(call) -> list[str]:
    return call.args[0]


class TestCommandExecution:
    """Tests for how tmux is invoked."""

    def test_missing_binary(self, tmux: TmuxMultiplexer) -> None:
        with patch("ccx.sessions.tmux.shutil.which", return_value=None):
            with pytest.raises(TmuxUnavailableError):
                tmux.list_sessions()

    def test_timeout_is_unavailable(self, tmux: TmuxMultiplexer, mock_run: MagicMock) -> None:
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="tmux", timeout=2.0)

        with pytest.raises(TmuxUnavailableError):
            tmux.capture_pane("ccx-s1", 10)

    def test_socket_name(self, mock_run: MagicMock) -> None:
        tmux = TmuxMultiplexer(socket_name="ccx-test")

        tmux.is_alive("ccx-s1")

        assert _args(mock_run.call_args)[:3] == [TMUX, "-L", "ccx-test"]

    def test_from_settings(self) -> None:
        settings = Settings(tmux_socket="sock", session_prefix="x-", kill_grace=1.5)

        tmux = TmuxMultiplexer.from_settings(settings)

        assert tmux.socket_name == "sock"
        assert tmux.handle_for("a") == "x-a"
        assert tmux.kill_grace == 1.5


class TestSpawn:
    """Tests for spawn."""

    def test_spawn_command(self, tmux: TmuxMultiplexer, mock_run: MagicMock) -> None:
        handle = tmux.spawn("fix-bug", "/repo", ["claude", "fix the bug"])

        assert handle == "ccx-fix-bug"
        args = _args(mock_run.call_args_list[0])
        assert args[:3] == [TMUX, "new-session", "-d"]
        assert args[args.index("-s") + 1] == "ccx-fix-bug"
        assert args[args.index("-n") + 1] == "fix-bug"
        assert args[args.index("-c") + 1] == "/repo"
        assert args[-2:] == ["claude", "fix the bug"]

    def test_spawn_enables_rename(self, tmux: TmuxMultiplexer, mock_run: MagicMock) -> None:
        tmux.spawn("s1", "/repo", ["claude", "x"])

        args = _args(mock_run.call_args_list[1])
        assert "allow-rename" in args
        assert "=ccx-s1:" in args

    def test_spawn_failure(self, tmux: TmuxMultiplexer, mock_run: MagicMock) -> None:
        mock_run.return_value = completed(1, stderr="duplicate session: ccx-s1")

        with pytest.raises(SpawnError, match="duplicate session"):
            tmux.spawn("s1", "/repo", ["claude", "x"])


class TestQueries:
    """Tests for list/capture/title/is_alive."""

    def test_list_sessions_filters_prefix(self, tmux: TmuxMultiplexer, mock_run: MagicMock) -> None:
        mock_run.return_value = completed(
            stdout="ccx-a\t1\t100\nmain\t0\t200\nccx-b\t0\t300\n",
        )

        sessions = tmux.list_sessions()

        assert [s.handle for s in sessions] == ["ccx-a", "ccx-b"]
        assert sessions[0].attached is True
        assert sessions[1].pane_pid == 300

    def test_no_server_means_no_sessions(self, tmux: TmuxMultiplexer, mock_run: MagicMock) -> None:
        mock_run.return_value = completed(1, stderr="no server running on /tmp/tmux-1000/default")

        assert tmux.list_sessions() == []
        assert tmux.live_handles() == set()

    def test_list_other_failure(self, tmux: TmuxMultiplexer, mock_run: MagicMock) -> None:
        mock_run.return_value = completed(1, stderr="protocol version mismatch")

        with pytest.raises(TmuxUnavailableError):
            tmux.list_sessions()

    def test_capture_pane(self, tmux: TmuxMultiplexer, mock_run: MagicMock) -> None:
        mock_run.return_value = completed(stdout="hello\n")

        assert tmux.capture_pane("ccx-s1", 25) == "hello\n"
        args = _args(mock_run.call_args)
        assert "capture-pane" in args
        assert args[args.index("-S") + 1] == "-25"
        assert args[args.index("-t") + 1] == "=ccx-s1:"

    def test_capture_missing_session(self, tmux: TmuxMultiplexer, mock_run: MagicMock) -> None:
        mock_run.return_value = completed(1, stderr="can't find session: =ccx-s1")

        with pytest.raises(NotFoundError):
            tmux.capture_pane("ccx-s1", 10)

    def test_pane_title(self, tmux: TmuxMultiplexer, mock_run: MagicMock) -> None:
        mock_run.return_value = completed(stdout="✳ Fix login\n")

        assert tmux.pane_title("ccx-s1") == "✳ Fix login"

    @pytest.mark.parametrize(("returncode", "alive"), [(0, True), (1, False)])
    def test_is_alive(
        self, tmux: TmuxMultiplexer, mock_run: MagicMock, returncode: int, alive: bool
    ) -> None:
        mock_run.return_value = completed(returncode)

        assert tmux.is_alive("ccx-s1") is alive
        assert _args(mock_run.call_args)[-2:] == ["-t", "=ccx-s1"]


class TestKill:
    """Tests for kill."""

    def test_kill_missing_session(self, tmux: TmuxMultiplexer, mock_run: MagicMock) -> None:
        mock_run.return_value = completed(1, stderr="can't find session: =ccx-s1")

        with pytest.raises(NotFoundError):
            tmux.kill("ccx-s1")

    def test_graceful_kill(self, tmux: TmuxMultiplexer, mock_run: MagicMock) -> None:
        """SIGTERM is enough when the process exits within the grace period."""
        mock_run.side_effect = [
            completed(stdout="4242\n"),  # list-panes
            completed(1, stderr="can't find session: =ccx-s1"),  # kill-session
            completed(1),  # has-session
        ]

        with patch("ccx.sessions.tmux.os.getpgid", return_value=4242), patch(
            "ccx.sessions.tmux.os.killpg"
        ) as killpg, patch("ccx.sessions.tmux._pid_alive", return_value=False):
            tmux.kill("ccx-s1")

        killpg.assert_called_once_with(4242, signal.SIGTERM)

    def test_force_kill_after_grace(self, tmux: TmuxMultiplexer, mock_run: MagicMock) -> None:
        """A process ignoring SIGTERM gets SIGKILL and the session is removed."""
        mock_run.side_effect = [
            completed(stdout="4242\n"),  # list-panes
            completed(0),  # kill-session
        ]

        with patch("ccx.sessions.tmux.os.getpgid", return_value=4242), patch(
            "ccx.sessions.tmux.os.killpg"
        ) as killpg, patch("ccx.sessions.tmux._pid_alive", return_value=True):
            tmux.kill("ccx-s1", grace=0.05)

        assert [c.args[1] for c in killpg.call_args_list] == [signal.SIGTERM, signal.SIGKILL]
        assert "kill-session" in _args(mock_run.call_args_list[1])


class TestInteractive:
    """Tests for send_keys and attach."""

    def test_send_keys_literal_then_enter(self, tmux: TmuxMultiplexer, mock_run: MagicMock) -> None:
        tmux.send_keys("ccx-s1", "run the tests")

        first, second = (_args(c) for c in mock_run.call_args_list)
        assert first[-2:] == ["-l", "run the tests"]
        assert second[-1] == "Enter"

    def test_attach_outside_tmux(
        self, tmux: TmuxMultiplexer, mock_run: MagicMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("TMUX", raising=False)
        mock_run.return_value = completed(0)

        assert tmux.attach("ccx-s1") == 0
        assert _args(mock_run.call_args)[1:] == ["attach-session", "-t", "=ccx-s1"]
        assert "timeout" not in mock_run.call_args.kwargs

    def test_attach_inside_tmux_switches(
        self, tmux: TmuxMultiplexer, mock_run: MagicMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TMUX", "/tmp/tmux-1000/default,1,0")
        mock_run.return_value = completed(1)

        assert tmux.attach("ccx-s1") == 1
        assert _args(mock_run.call_args)[1] == "switch-client"
