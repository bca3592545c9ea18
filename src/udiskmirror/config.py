from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import json
import os
import yaml

from udiskmirror.mounts import DEFAULT_MOUNT_TABLE


DEFAULT_SOURCE = "tpcbackup"
DEFAULT_DST_DIR_NAME = "tpcbackup"
DEFAULT_FS_TYPE = "vfat"


@dataclass(frozen=True, slots=True)
class FanoutConfig:
    source: Path
    dst_dir_name: str
    fs_type: str = DEFAULT_FS_TYPE
    mount_table: Path = DEFAULT_MOUNT_TABLE


_LOADERS: dict[str, Callable[[str], Any]] = {
    ".yml": yaml.safe_load,
    ".yaml": yaml.safe_load,
    ".json": json.loads,
}


def _as_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field_name} must be a non-empty string")
    return value


def _as_path(value: Any, field_name: str) -> Path:
    return Path(_as_str(value, field_name)).expanduser()


def validate_dst_dir_name(name: str) -> str:
    if not name or not name.strip():
        raise ValueError("dstDirName must be a non-empty string")
    if "/" in name or "\\" in name or name in {".", ".."}:
        raise ValueError(f"dstDirName must be a single relative path segment: {name!r}")
    return name


def _read_mapping(config_path: Path) -> dict[str, Any]:
    loader = _LOADERS.get(config_path.suffix.lower())
    if loader is None:
        raise ValueError(f"Config file must be .yaml/.yml or .json: {config_path}")

    try:
        text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ValueError(f"Config file does not exist: {config_path}") from None

    # an empty YAML document loads as None
    loaded = loader(text)
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ValueError(f"Config root must be an object: {config_path}")
    return loaded


def load_config_file(config_path: Path) -> dict[str, Any]:
    """Read a config file into ``FanoutConfig`` keyword arguments.

    Only keys present in the file are returned, so callers can layer command
    line values on top.
    """
    raw = _read_mapping(config_path)
    values: dict[str, Any] = {}

    if raw.get("source") is not None:
        values["source"] = _as_path(raw["source"], "source")
    if raw.get("dstDirName") is not None:
        values["dst_dir_name"] = validate_dst_dir_name(_as_str(raw["dstDirName"], "dstDirName"))
    if raw.get("fsType") is not None:
        values["fs_type"] = _as_str(raw["fsType"], "fsType")
    if raw.get("mountTable") is not None:
        values["mount_table"] = _as_path(raw["mountTable"], "mountTable")

    unknown = sorted(set(raw) - {"source", "dstDirName", "fsType", "mountTable"})
    if unknown:
        raise ValueError(f"Unknown config key(s): {', '.join(unknown)}")
    return values


def build_config(
    config_path: Path | None = None,
    source: str | None = None,
    dst_dir_name: str | None = None,
    fs_type: str | None = None,
    mount_table: Path | None = None,
) -> FanoutConfig:
    values = load_config_file(config_path) if config_path is not None else {}

    if source is not None:
        values["source"] = _as_path(source, "source")
    if dst_dir_name is not None:
        values["dst_dir_name"] = validate_dst_dir_name(dst_dir_name)
    if fs_type is not None:
        values["fs_type"] = _as_str(fs_type, "fsType")
    if mount_table is not None:
        values["mount_table"] = mount_table

    source_path = values.pop("source", Path(DEFAULT_SOURCE))
    return FanoutConfig(
        source=Path(os.path.abspath(source_path)),
        dst_dir_name=values.pop("dst_dir_name", DEFAULT_DST_DIR_NAME),
        **values,
    )
