"""Session name generation."""

import re
from collections.abc import Container

MAX_SLUG_LENGTH = 32
FALLBACK_SLUG = "session"

_NON_SLUG = re.compile(r"[^a-z0-9]+")
_VALID_NAME = re.compile(r"[a-z0-9]+(?:-[a-z0-9]+)*")


def slugify(text: str, max_length: int = MAX_SLUG_LENGTH) -> str:
    """
    Turn free text into a filesystem and tmux safe name.

    Example:
        >>> slugify("Fix the login bug!")
        'fix-the-login-bug'
    """
    slug = _NON_SLUG.sub("-", text.lower()).strip("-")
    if len(slug) > max_length:
        slug = slug[:max_length]
        # Avoid cutting a word in half when there is a sensible break
        if "-" in slug[max_length // 2 :]:
            slug = slug.rsplit("-", 1)[0]
        slug = slug.strip("-")
    return slug or FALLBACK_SLUG


def unique_name(base: str, taken: Container[str]) -> str:
    """Return ``base`` or the first ``base-N`` (N >= 2) not in ``taken``."""
    if base not in taken:
        return base
    n = 2
    while f"{base}-{n}" in taken:
        n += 1
    return f"{base}-{n}"


def is_valid_name(name: str) -> bool:
    """Check that ``name`` is a slug ccx could have produced."""
    return _VALID_NAME.fullmatch(name) is not None
