"""
Base multiplexer interface for ccx.

The registry and the session manager only ever talk to a terminal multiplexer
through this narrow contract, so tmux can be swapped for another multiplexer
(or a fake in tests) without touching them.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from ccx.sessions.models import LiveSession


class Multiplexer(ABC):
    """
    Abstract base class for terminal multiplexers.

    Implementations:
    - TmuxMultiplexer: tmux driven as a subprocess

    Handles are opaque strings returned by :meth:`spawn`.
    """

    @abstractmethod
    def handle_for(self, name: str) -> str:
        """Handle that :meth:`spawn` will use for session ``name``."""

    @abstractmethod
    def spawn(self, name: str, cwd: str, command: Sequence[str]) -> str:
        """
        Start a detached session running ``command`` in ``cwd``.

        Args:
            name: ccx session name, used as the visible window name.
            cwd: Absolute working directory.
            command: Program and arguments to run as the session's only job.

        Returns:
            handle: Identifier of the new session.

        Raises:
            SpawnError: If the multiplexer refused to create the session.
        """

    @abstractmethod
    def list_sessions(self) -> list[LiveSession]:
        """Sessions currently alive on the multiplexer that belong to ccx."""

    @abstractmethod
    def capture_pane(self, handle: str, last_n_lines: int) -> str:
        """
        Read the visible pane plus up to ``last_n_lines`` of scrollback.

        Raises:
            NotFoundError: If the session does not exist.
        """

    @abstractmethod
    def pane_title(self, handle: str) -> str:
        """Title the program in the pane set via terminal escapes."""

    @abstractmethod
    def is_alive(self, handle: str) -> bool:
        """Check whether the session exists."""

    @abstractmethod
    def kill(self, handle: str, grace: float | None = None) -> None:
        """
        Terminate a session, gracefully first.

        Raises:
            NotFoundError: If the session does not exist.
        """

    @abstractmethod
    def send_keys(self, handle: str, text: str) -> None:
        """Type ``text`` into the session followed by Enter."""

    @abstractmethod
    def attach(self, handle: str) -> int:
        """
        Hand the terminal over to the multiplexer until the user detaches.

        Returns:
            Exit status of the multiplexer's attach command.
        """

    def live_handles(self) -> set[str]:
        """Handles of all live ccx sessions."""
        return {s.handle for s in self.list_sessions()}
