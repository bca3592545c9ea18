import logging
from pathlib import Path

from udiskmirror.config import FanoutConfig
from udiskmirror.models import DestinationTarget, MountRecord
from udiskmirror.progress import NullProgressSink
from udiskmirror.run_service import (
    EXIT_RUNTIME_ERROR,
    EXIT_SUCCESS,
    build_targets,
    run_fanout,
)


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _mount_table(tmp_path: Path, *mount_points: Path, fs_type: str = "vfat") -> Path:
    table = tmp_path / "mounts"
    lines = ["/dev/sda1 / ext4 rw,relatime 0 0"]
    lines.extend(f"/dev/sd{chr(98 + i)}1 {mount} {fs_type} rw 0 0" for i, mount in enumerate(mount_points))
    _write(table, "\n".join(lines) + "\n")
    return table


def _source(tmp_path: Path) -> Path:
    source = tmp_path / "src"
    _write(source / "a.txt", "hello")
    _write(source / "sub" / "b.txt", "world")
    return source


def _relative_paths(root: Path) -> list[str]:
    return sorted(path.relative_to(root).as_posix() for path in root.rglob("*"))


def test_run_fanout_replicates_to_every_device(tmp_path: Path) -> None:
    source = _source(tmp_path)
    usb0 = tmp_path / "media" / "usb0"
    usb1 = tmp_path / "media" / "usb1"
    usb0.mkdir(parents=True)
    usb1.mkdir(parents=True)
    config = FanoutConfig(source=source, dst_dir_name="backup", mount_table=_mount_table(tmp_path, usb0, usb1))

    exit_code, summary = run_fanout(config)

    assert exit_code == EXIT_SUCCESS
    assert summary.devices == 2
    assert summary.total == 3
    assert summary.copied == 4
    assert summary.failed_targets == 0
    for mount in (usb0, usb1):
        assert _relative_paths(mount) == ["backup", "backup/a.txt", "backup/sub", "backup/sub/b.txt"]
        assert (mount / "backup" / "sub" / "b.txt").read_text(encoding="utf-8") == "world"


def test_run_fanout_gives_each_target_its_own_sink(tmp_path: Path) -> None:
    source = _source(tmp_path)
    mounts = [tmp_path / f"usb{i}" for i in range(3)]
    for mount in mounts:
        mount.mkdir()
    config = FanoutConfig(source=source, dst_dir_name="backup", mount_table=_mount_table(tmp_path, *mounts))
    sinks: dict[int, NullProgressSink] = {}

    def factory(target: DestinationTarget) -> NullProgressSink:
        sink = NullProgressSink(target.total)
        sinks[target.index] = sink
        return sink

    exit_code, summary = run_fanout(config, sink_factory=factory)

    assert exit_code == EXIT_SUCCESS
    assert sorted(sinks) == [0, 1, 2]
    assert all(sink.state.processed == 3 and sink.finished for sink in sinks.values())
    assert [result.target.mount.mount_point for result in summary.results] == [str(m) for m in mounts]


def test_run_fanout_without_devices_is_a_noop(tmp_path: Path, caplog) -> None:
    source = _source(tmp_path)
    config = FanoutConfig(source=source, dst_dir_name="backup", mount_table=_mount_table(tmp_path))

    with caplog.at_level(logging.INFO, logger="udiskmirror.run"):
        exit_code, summary = run_fanout(config)

    assert exit_code == EXIT_SUCCESS
    assert summary.devices == 0
    assert summary.results == []
    assert "Src file total numbers: 3" in caplog.text


def test_run_fanout_missing_source_is_fatal(tmp_path: Path, caplog) -> None:
    config = FanoutConfig(source=tmp_path / "missing", dst_dir_name="backup", mount_table=_mount_table(tmp_path))

    exit_code, summary = run_fanout(config)

    assert exit_code == EXIT_RUNTIME_ERROR
    assert summary.devices == 0
    assert "Source is not accessible" in caplog.text


def test_run_fanout_missing_mount_table_is_fatal(tmp_path: Path, caplog) -> None:
    source = _source(tmp_path)
    config = FanoutConfig(source=source, dst_dir_name="backup", mount_table=tmp_path / "no-mounts")

    exit_code, _ = run_fanout(config)

    assert exit_code == EXIT_RUNTIME_ERROR
    assert "Cannot read mount table" in caplog.text


def test_failed_target_does_not_stop_siblings(tmp_path: Path) -> None:
    source = _source(tmp_path)
    good = tmp_path / "usb0"
    good.mkdir()
    bad = tmp_path / "usb1"
    _write(bad, "a file where a directory should be")
    config = FanoutConfig(source=source, dst_dir_name="backup", mount_table=_mount_table(tmp_path, bad, good))

    exit_code, summary = run_fanout(config)

    assert exit_code == EXIT_SUCCESS
    assert summary.failed_targets == 1
    assert summary.results[0].error is not None
    assert summary.results[1].error is None
    assert (good / "backup" / "a.txt").read_text(encoding="utf-8") == "hello"


def test_same_path_target_is_reported_not_raised(tmp_path: Path) -> None:
    source = _source(tmp_path)
    config = FanoutConfig(source=source, dst_dir_name="src", mount_table=_mount_table(tmp_path, tmp_path))

    exit_code, summary = run_fanout(config)

    assert exit_code == EXIT_SUCCESS
    assert summary.failed_targets == 1
    assert "same path" in summary.results[0].error
    assert (source / "a.txt").read_text(encoding="utf-8") == "hello"


def test_build_targets_gives_each_target_its_own_index(tmp_path: Path) -> None:
    devices = [
        MountRecord("/dev/sdb1", "/media/usb0", "vfat", "rw"),
        MountRecord("/dev/sdb1", "/media/usb0", "vfat", "rw"),
    ]
    config = FanoutConfig(source=tmp_path, dst_dir_name="backup")

    targets = build_targets(devices, config, source_mode=0o40755, total=7)

    assert [target.index for target in targets] == [0, 1]
    assert all(target.total == 7 and target.dst_dir_name == "backup" for target in targets)
    assert targets[0].label == "0:/media/usb0/backup"
