"""Shared naming utilities: filesystem-safe branch tokens and stable screenshot names."""

from __future__ import annotations

import re
from urllib.parse import unquote, urlparse

# Path separators, whitespace, dots and the characters Windows forbids in paths.
_BRANCH_UNSAFE = re.compile(r'[/\\.\s#:*?"<>|]')
_NAME_UNSAFE = re.compile(r"[^A-Za-z0-9_-]+")
_HYPHEN_RUN = re.compile(r"-{2,}")


def sanitize_branch_name(branch: str, collapse_hyphens: bool = False) -> str:
    """Turn a branch name into a single path segment.

    Every unsafe character becomes one hyphen, so ``feature/login#123`` maps to
    ``feature-login-123``. ``collapse_hyphens`` additionally squeezes runs of
    hyphens (``a//b`` -> ``a-b``); it is off by default so compare directories
    keep the same names across tool versions.
    """
    token = _BRANCH_UNSAFE.sub("-", branch)
    if collapse_hyphens:
        token = _HYPHEN_RUN.sub("-", token)
    return token


def sanitize_screenshot_name(name: str) -> str:
    """Make a screenshot name safe to use as a file stem.

    Idempotent: ``sanitize_screenshot_name(sanitize_screenshot_name(x))`` is
    ``sanitize_screenshot_name(x)``.
    """
    token = _NAME_UNSAFE.sub("-", name.strip())
    token = _HYPHEN_RUN.sub("-", token).strip("-")
    return token or "unnamed"


def name_from_url(url: str) -> str:
    """Derive a stable screenshot name from a navigation target's path."""
    path = unquote(urlparse(url).path).strip("/")
    if not path:
        return "index"
    return sanitize_screenshot_name(path.replace("/", "-"))
