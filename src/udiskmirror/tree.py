from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import stat
from typing import Iterator


@dataclass(frozen=True, slots=True)
class WalkEntry:
    path: Path
    info: os.stat_result | None
    error: OSError | None = None

    @property
    def is_dir(self) -> bool:
        return self.info is not None and stat.S_ISDIR(self.info.st_mode)


def walk_tree(root: Path) -> Iterator[WalkEntry]:
    """Depth-first, lexically ordered walk that never raises.

    The root is yielded first. Symlinks are reported, not followed. Failures
    are yielded as entries with ``info=None`` and the error attached, and the
    walk moves on to the next sibling.
    """
    try:
        info = root.lstat()
    except OSError as exc:
        yield WalkEntry(root, None, exc)
        return

    yield WalkEntry(root, info)
    if stat.S_ISDIR(info.st_mode):
        yield from _walk_directory(root)


def _walk_directory(directory: Path) -> Iterator[WalkEntry]:
    try:
        names = sorted(os.listdir(directory))
    except OSError as exc:
        yield WalkEntry(directory, None, exc)
        return

    for name in names:
        path = directory / name
        try:
            info = path.lstat()
        except OSError as exc:
            yield WalkEntry(path, None, exc)
            continue

        yield WalkEntry(path, info)
        if stat.S_ISDIR(info.st_mode):
            yield from _walk_directory(path)


def count_entries(root: Path) -> int:
    """Count files and directories below ``root``; unreadable entries are skipped."""
    return sum(1 for entry in walk_tree(root) if entry.info is not None and entry.path != root)
