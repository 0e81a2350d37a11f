"""Path materialization: home expansion and cache-volume locations."""

from __future__ import annotations

import os
from typing import Optional


def resolve_home(filepath: str, home: Optional[str] = None) -> str:
    """Expand a leading ``~`` segment.

    Only an exact ``~`` first segment is replaced (``~user`` is left
    alone). Relative and absolute paths come back unchanged.

    Args:
        filepath: Logical path, possibly home-relative.
        home: Home directory. Defaults to $HOME, or a literal ``~``.

    Returns:
        str: The expanded path.
    """
    if home is None:
        home = os.environ.get("HOME") or "~"
    parts = filepath.split(os.sep)
    if parts[0] != "~":
        return filepath
    rest = [p for p in parts[1:] if p]
    return os.path.join(home, *rest)


def path_in_cache(volume_root: str, mount_target: str, home: Optional[str] = None) -> str:
    """Location of a mount target's content inside the cache volume.

    The expanded target is appended to the volume root even when it
    is absolute, so ``/x/gocache`` lives at ``<root>/x/gocache``.
    """
    expanded = resolve_home(mount_target, home)
    return os.path.normpath(f"{volume_root}{os.sep}{expanded}")


def ancestors(filepath: str) -> list[str]:
    """All directories leading to ``filepath``, outermost first.

    ``/`` and ``.`` are never included.
    """
    res: list[str] = []
    norm = os.path.normpath(filepath)
    while norm not in (".", os.sep):
        res.insert(0, norm)
        parent = os.path.dirname(norm)
        if not parent or parent == norm:
            break
        norm = parent
    return res
