from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
import logging
import os

from udiskmirror.config import FanoutConfig
from udiskmirror.models import DestinationTarget, MountRecord, ReplicationStats
from udiskmirror.mounts import discover_devices
from udiskmirror.progress import SinkFactory, null_sink_factory
from udiskmirror.replicator import ReplicationError, replicate_target
from udiskmirror.tree import count_entries


EXIT_SUCCESS = 0
EXIT_RUNTIME_ERROR = 1
EXIT_INVALID_CONFIG = 3


class FatalRunError(RuntimeError):
    pass


@dataclass(slots=True)
class TargetResult:
    target: DestinationTarget
    stats: ReplicationStats = field(default_factory=ReplicationStats)
    error: str | None = None


@dataclass(slots=True)
class RunSummary:
    devices: int = 0
    total: int = 0
    copied: int = 0
    directories: int = 0
    failed: int = 0
    failed_targets: int = 0
    results: list[TargetResult] = field(default_factory=list)

    def absorb(self, result: TargetResult) -> None:
        self.results.append(result)
        self.copied += result.stats.copied
        self.directories += result.stats.directories
        self.failed += result.stats.failed
        if result.error is not None:
            self.failed_targets += 1


def _check_source(config: FanoutConfig) -> os.stat_result:
    try:
        info = os.stat(config.source)
    except OSError as exc:
        raise FatalRunError(f"Source is not accessible: {exc}") from exc
    if not os.access(config.source, os.R_OK):
        raise FatalRunError(f"Source is not readable: {config.source}")
    return info


def find_devices(config: FanoutConfig) -> list[MountRecord]:
    try:
        return discover_devices(config.fs_type, config.mount_table)
    except OSError as exc:
        raise FatalRunError(f"Cannot read mount table {config.mount_table}: {exc}") from exc


def build_targets(
    devices: list[MountRecord], config: FanoutConfig, source_mode: int, total: int
) -> list[DestinationTarget]:
    return [
        DestinationTarget(
            mount=device,
            index=index,
            dst_dir_name=config.dst_dir_name,
            source_mode=source_mode,
            total=total,
        )
        for index, device in enumerate(devices)
    ]


def _run_target(
    target: DestinationTarget,
    config: FanoutConfig,
    sink_factory: SinkFactory,
    log: logging.Logger,
) -> TargetResult:
    result = TargetResult(target=target)
    try:
        result.stats = replicate_target(target, config.source, sink_factory(target))
    except ReplicationError as exc:
        result.error = str(exc)
        log.error("[%s] replication aborted: %s", target.label, exc)
        return result

    log.info(
        "[%s] done | files=%s dirs=%s failed=%s",
        target.label,
        result.stats.copied,
        result.stats.directories,
        result.stats.failed,
    )
    return result


def run_fanout(
    config: FanoutConfig,
    sink_factory: SinkFactory = null_sink_factory,
    logger: logging.Logger | None = None,
) -> tuple[int, RunSummary]:
    log = logger or logging.getLogger("udiskmirror.run")
    summary = RunSummary()

    try:
        source_info = _check_source(config)
        devices = find_devices(config)
    except FatalRunError as exc:
        log.error("%s", exc)
        return EXIT_RUNTIME_ERROR, summary

    summary.total = count_entries(config.source)
    summary.devices = len(devices)
    log.info("Src dir: %s", config.source)
    log.info("Src file total numbers: %s", summary.total)
    log.info("Udisk dst dir: %s", config.dst_dir_name)
    log.info("Udisk mounted %s devices: %s", config.fs_type, summary.devices)

    targets = build_targets(devices, config, source_info.st_mode, summary.total)
    if not targets:
        return EXIT_SUCCESS, summary

    with ThreadPoolExecutor(max_workers=len(targets), thread_name_prefix="udisk") as executor:
        futures = [executor.submit(_run_target, target, config, sink_factory, log) for target in targets]
        for future in futures:
            summary.absorb(future.result())

    return EXIT_SUCCESS, summary
