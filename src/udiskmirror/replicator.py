from __future__ import annotations

import logging
import os
from pathlib import Path
import shutil
import stat

from udiskmirror.models import DestinationTarget, ReplicationStats
from udiskmirror.progress import ProgressSink
from udiskmirror.tree import walk_tree


log = logging.getLogger("udiskmirror.replicator")


class ReplicationError(RuntimeError):
    """Ends the replication of a single destination target."""


class SamePathError(ReplicationError):
    pass


def _apply_mode(fd: int, destination_file: Path, mode: int) -> None:
    # vfat refuses chmod for non-owners and for setuid/setgid/sticky bits
    try:
        os.fchmod(fd, mode)
    except OSError as exc:
        log.warning("Could not set mode %o on %s: %s", mode, destination_file, exc)


def _copy_file(source_file: Path, destination_file: Path) -> None:
    """Copy content and mode of the file ``source_file`` resolves to."""
    with source_file.open("rb") as src:
        mode = stat.S_IMODE(os.fstat(src.fileno()).st_mode)
        fd = os.open(destination_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode & 0o777)
        try:
            with os.fdopen(fd, "wb") as dst:
                shutil.copyfileobj(src, dst, 1024 * 1024)
                dst.flush()
                os.fsync(dst.fileno())
                _apply_mode(dst.fileno(), destination_file, mode)
        except OSError:
            destination_file.unlink(missing_ok=True)
            raise


def purge_destination(destination_root: Path) -> bool:
    """Remove a previous copy. Returns False if anything could not be removed."""
    if not os.path.lexists(destination_root):
        return True

    try:
        if destination_root.is_dir() and not destination_root.is_symlink():
            shutil.rmtree(destination_root)
        else:
            destination_root.unlink()
    except OSError as exc:
        log.warning("Could not purge %s: %s", destination_root, exc)
        return False
    return True


def _check_not_same_path(source_root: Path, destination_root: Path) -> None:
    if str(source_root).strip() == str(destination_root).strip():
        raise SamePathError(f"Source and destination are the same path: {source_root}")

    if destination_root.is_relative_to(source_root):
        raise ReplicationError(f"Destination is inside source, which can recurse: {destination_root}")


def replicate_target(target: DestinationTarget, source_root: Path, sink: ProgressSink) -> ReplicationStats:
    destination_root = target.destination_root
    stats = ReplicationStats()

    try:
        _check_not_same_path(source_root, destination_root)

        stats.purge_failed = not purge_destination(destination_root)

        try:
            destination_root.mkdir(mode=stat.S_IMODE(target.source_mode), parents=True, exist_ok=True)
        except OSError as exc:
            raise ReplicationError(f"Cannot create {destination_root}: {exc}") from exc

        for entry in walk_tree(source_root):
            if entry.path == source_root and entry.error is None:
                continue

            if entry.error is not None or entry.info is None:
                log.error("%s: %s", entry.path, entry.error or "file info unavailable")
                stats.failed += 1
                sink.advance(1)
                continue

            destination_path = destination_root / entry.path.relative_to(source_root)
            try:
                if entry.is_dir:
                    destination_path.mkdir(mode=stat.S_IMODE(entry.info.st_mode), parents=True, exist_ok=True)
                    stats.directories += 1
                else:
                    _copy_file(entry.path, destination_path)
                    stats.copied += 1
                log.debug("[%s] %s -> %s", target.index, entry.path, destination_path)
            except OSError as exc:
                log.error("%s: %s", entry.path, exc)
                stats.failed += 1

            sink.advance(1)
    finally:
        sink.finish()

    return stats
