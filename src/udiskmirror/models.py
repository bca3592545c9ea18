from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class MountRecord:
    device: str
    mount_point: str
    fs_type: str
    options: str


@dataclass(frozen=True, slots=True)
class DestinationTarget:
    mount: MountRecord
    index: int
    dst_dir_name: str
    source_mode: int
    total: int

    @property
    def destination_root(self) -> Path:
        return Path(self.mount.mount_point) / self.dst_dir_name

    @property
    def label(self) -> str:
        return f"{self.index}:{self.destination_root}"


@dataclass(slots=True)
class ProgressState:
    total: int
    processed: int = 0

    def advance(self, count: int = 1) -> None:
        self.processed += count


@dataclass(slots=True)
class ReplicationStats:
    copied: int = 0
    directories: int = 0
    failed: int = 0
    purge_failed: bool = False
