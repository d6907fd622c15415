"""
ccx - run Claude Code sessions in the background with tmux.

Start named sessions with a prompt, poll their status, attach, and clean up.
"""

__version__ = "0.3.0"
__author__ = "ccx contributors"

from ccx.core.manager import SessionManager

__all__ = ["SessionManager", "__version__"]
