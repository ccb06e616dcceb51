"""
services/path_classifier.py

Responsibility: Maps a filesystem path to the reload targets it implies.
Does NOT: stat the path, debounce, or call the server.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import PurePosixPath


class ReloadTarget(str, Enum):
    """A configuration domain the server can reload on its own."""

    DASHBOARDS = "dashboards"
    DATASOURCES = "datasources"

    @property
    def endpoint(self) -> str:
        """API path (below /api/) that reloads this target."""
        return f"admin/provisioning/{self.value}/reload"

    @property
    def pattern(self) -> str:
        return f"**/{self.value}/*"


def _parts(path: str | os.PathLike[str]) -> tuple[str, ...]:
    # Normalise Windows separators so matching stays purely lexical.
    text = os.fspath(path).replace("\\", "/")
    return PurePosixPath(text).parts


def _below(parts: tuple[str, ...], root: str | os.PathLike[str] | None) -> tuple[str, ...]:
    if not root:
        return parts
    root_parts = _parts(root)
    if parts[: len(root_parts)] == root_parts:
        return parts[len(root_parts) :]
    return parts


def matches(
    target: ReloadTarget,
    path: str | os.PathLike[str],
    root: str | os.PathLike[str] | None = None,
) -> bool:
    """
    Returns True if path has the shape **/<target>/<name>.

    <name> is a single path segment. Like a glob ``**``, the match never
    crosses a hidden segment (leading dot, e.g. editor swap files or a
    .git directory). Segments of root itself are not checked, so a watched
    root may live under a hidden directory.
    """
    parts = _parts(path)
    if len(parts) < 2:
        return False
    name = parts[-1]
    if parts[-2] != target.value or name in ("", "/"):
        return False
    return not any(part.startswith(".") for part in _below(parts, root))


def classify(
    path: str | os.PathLike[str],
    root: str | os.PathLike[str] | None = None,
) -> frozenset[ReloadTarget]:
    """
    Returns the set of reload targets a change to path should trigger.

    Args:
        path: Absolute or relative path of the changed file.
        root: Watched provisioning root, if known.

    Returns:
        Zero, one, or both ReloadTarget members.
    """
    return frozenset(target for target in ReloadTarget if matches(target, path, root))
