from __future__ import annotations

from pathlib import Path
import re
from typing import Iterable, Iterator, TextIO

from udiskmirror.models import MountRecord


DEFAULT_MOUNT_TABLE = Path("/proc/mounts")


_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


def _unescape(field: str) -> str:
    # the kernel writes space, tab, newline and backslash as \040 \011 \012 \134
    return _OCTAL_ESCAPE.sub(lambda match: chr(int(match.group(1), 8)), field)


def parse_mount_line(line: str) -> MountRecord | None:
    fields = line.split()
    if len(fields) < 4:
        return None
    return MountRecord(
        device=_unescape(fields[0]),
        mount_point=_unescape(fields[1]),
        fs_type=fields[2],
        options=fields[3],
    )


def iter_mount_records(mount_table: Path = DEFAULT_MOUNT_TABLE) -> Iterator[MountRecord]:
    """Yield one record per well-formed line of the live mount table.

    The table is opened eagerly so an unreadable table raises ``OSError`` on
    the call itself rather than on first iteration.
    """
    handle = mount_table.open("r", encoding="utf-8", errors="replace")
    return _read_records(handle)


def _read_records(handle: TextIO) -> Iterator[MountRecord]:
    with handle:
        for line in handle:
            record = parse_mount_line(line)
            if record is not None:
                yield record


def filter_devices(records: Iterable[MountRecord], fs_type: str) -> list[MountRecord]:
    return [record for record in records if record.fs_type == fs_type]


def discover_devices(fs_type: str, mount_table: Path = DEFAULT_MOUNT_TABLE) -> list[MountRecord]:
    return filter_devices(iter_mount_records(mount_table), fs_type)
