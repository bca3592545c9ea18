from __future__ import annotations

import argparse
from contextlib import nullcontext
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
import sys

from rich.console import Console
from rich.logging import RichHandler

from udiskmirror.config import (
    DEFAULT_DST_DIR_NAME,
    DEFAULT_FS_TYPE,
    DEFAULT_SOURCE,
    FanoutConfig,
    build_config,
)
from udiskmirror.progress import null_sink_factory, rich_sink_factory
from udiskmirror.run_service import (
    EXIT_INVALID_CONFIG,
    EXIT_RUNTIME_ERROR,
    EXIT_SUCCESS,
    FatalRunError,
    find_devices,
    run_fanout,
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="udiskmirror",
        description="Copy one source directory onto every mounted removable FAT device in parallel",
    )
    parser.add_argument("-i", "--source", help=f"Source dir path to copy (default: {DEFAULT_SOURCE})")
    parser.add_argument(
        "-o", "--dst-dir-name", help=f"Dst dir name under each mount point (default: {DEFAULT_DST_DIR_NAME})"
    )
    parser.add_argument("--fs-type", help=f"Filesystem type to target (default: {DEFAULT_FS_TYPE})")
    parser.add_argument("--mount-table", type=Path, help="Mount table to read (default: /proc/mounts)")
    parser.add_argument("--config", type=Path, help="Optional .yaml/.yml/.json config file")
    parser.add_argument("--log-file", type=Path, help="Also write logs to this rotating file")
    parser.add_argument("--verbose", action="store_true", help="Log every copied entry")
    parser.add_argument("--no-progress", action="store_true", help="Disable progress bars")
    parser.add_argument("--list", action="store_true", help="List eligible devices and exit")
    return parser


def configure_logging(console: Console, log_file: Path | None, verbose: bool) -> logging.Logger:
    logger = logging.getLogger("udiskmirror")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(console=console, show_path=False)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        logger.addHandler(file_handler)

    return logger


def cmd_list(config: FanoutConfig) -> int:
    try:
        devices = find_devices(config)
    except FatalRunError as exc:
        print(exc, file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    for index, device in enumerate(devices):
        print(f"{index} {device.device} {device.mount_point} {device.fs_type}")
    return EXIT_SUCCESS


def cmd_run(config: FanoutConfig, console: Console, show_progress: bool) -> int:
    log = logging.getLogger("udiskmirror.run")
    progress_scope = rich_sink_factory(console) if show_progress else nullcontext(null_sink_factory)
    with progress_scope as sink_factory:
        exit_code, summary = run_fanout(config, sink_factory=sink_factory, logger=log)

    if exit_code == EXIT_SUCCESS and summary.devices:
        log.info(
            "Finished %s device(s) | files=%s dirs=%s failed=%s aborted=%s",
            summary.devices,
            summary.copied,
            summary.directories,
            summary.failed,
            summary.failed_targets,
        )
    return exit_code


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(
            config_path=args.config,
            source=args.source,
            dst_dir_name=args.dst_dir_name,
            fs_type=args.fs_type,
            mount_table=args.mount_table,
        )
    except Exception as exc:
        print(f"Invalid config: {exc}", file=sys.stderr)
        return EXIT_INVALID_CONFIG

    if args.list:
        return cmd_list(config)

    console = Console(stderr=True)
    configure_logging(console, args.log_file, args.verbose)
    show_progress = not args.no_progress and console.is_terminal
    return cmd_run(config, console, show_progress)


if __name__ == "__main__":
    raise SystemExit(main())
