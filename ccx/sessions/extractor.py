"""
Title and status extraction from captured pane output.

Everything here is a pure function over text so it can be exercised against
fixtures without a tmux server. Captured output may be cut mid-write, so no
function in this module raises on malformed input.
"""

import re

from ccx.sessions.models import Activity, SessionStatus

DEFAULT_TITLE_WIDTH = 60
ELLIPSIS = "…"

# CSI/OSC escape sequences and stray control characters
_ANSI = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)?|\x1b[@-Z\\-_]")
_CONTROL = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")

# Box drawing used by the agent's TUI frames
_BORDER_CHARS = "│┃║╭╮╰╯─━═┌┐└┘├┤┬┴┼╌╎▐▌"

# Lines the agent prefixes with a bullet or status glyph
_MARKER = re.compile(r"^\s*[⏺●✻✳✶✢✽✺✷✸✹]\s*(?P<text>\S.*)$")

# Claude Code's idle glyph and braille spinner frames in the terminal title
_IDLE_ICON = "✳"
_BRAILLE_START, _BRAILLE_END = 0x2800, 0x28FF


def clean_line(line: str) -> str:
    """Strip escape sequences, control characters and frame borders."""
    line = _ANSI.sub("", line)
    line = _CONTROL.sub("", line)
    return line.strip().strip(_BORDER_CHARS).strip()


def truncate(text: str, width: int = DEFAULT_TITLE_WIDTH) -> str:
    """Truncate ``text`` to ``width`` characters, marking the cut."""
    if width <= 0:
        return ""
    if len(text) <= width:
        return text
    return text[: max(width - 1, 0)].rstrip() + ELLIPSIS


def _is_noise(line: str) -> bool:
    # Separator rows and the input prompt carry no information
    return not line or set(line) <= set(_BORDER_CHARS + " >") or line in {">", "›"}


def extract_title(pane_text: str | None, width: int = DEFAULT_TITLE_WIDTH) -> str:
    """
    Derive a human-readable title from captured pane text.

    Scans from the most recent line backward. A line carrying an agent marker
    wins; otherwise the last meaningful line is used.

    Args:
        pane_text: Output of ``capture-pane``; may be empty or partial.
        width: Maximum title width.

    Returns:
        The title, or an empty string if the pane has no output yet.
    """
    if not pane_text:
        return ""

    fallback = ""
    for raw in reversed(pane_text.splitlines()):
        line = clean_line(raw)
        if _is_noise(line):
            continue
        match = _MARKER.match(line)
        if match:
            return truncate(match.group("text").strip(), width)
        if not fallback:
            fallback = line

    return truncate(fallback, width)


def _split_icon(pane_title: str) -> tuple[str, str]:
    title = clean_line(pane_title)
    if not title:
        return "", ""
    return title[0], title[1:].strip()


def parse_activity(pane_title: str | None) -> Activity:
    """Read the agent's activity from the status icon in its terminal title."""
    if not pane_title:
        return Activity.UNKNOWN
    icon, _ = _split_icon(pane_title)
    if icon == _IDLE_ICON:
        return Activity.IDLE
    if icon and _BRAILLE_START <= ord(icon) <= _BRAILLE_END:
        return Activity.WORKING
    return Activity.UNKNOWN


def title_from_pane_title(pane_title: str | None, width: int = DEFAULT_TITLE_WIDTH) -> str:
    """Title text the agent set on its terminal, if it set one."""
    if parse_activity(pane_title) is Activity.UNKNOWN:
        return ""
    _, text = _split_icon(pane_title or "")
    return truncate(text, width)


def classify_status(alive: bool) -> SessionStatus:
    """Map tmux liveness onto the registry status."""
    return SessionStatus.RUNNING if alive else SessionStatus.EXITED
