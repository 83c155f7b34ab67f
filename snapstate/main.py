"""
SnapState - main entry point.

Usage:
    snapstate init
    snapstate create [name]
    snapstate list
    snapstate rollback <name> [--component=DIR]
    snapstate cleanup [count]
    snapstate help

Configuration is read from /etc/snapstate.conf (YAML) when present,
otherwise from SNAPSTATE_* environment variables. See config.py.

Invariants:
    - Every command except help requires root
    - Exit code is 0 on success and 1 on any failure
    - Failures are printed to stderr and appended to the operational log

How to change safely:
    - Add new commands to Command and COMMAND_HANDLERS together
    - Keep list output stable; scripts parse it
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from enum import Enum
from pathlib import Path
from typing import Callable

import json_log_formatter

from .config import SnapStateConfig
from .engine import SnapStateEngine
from .errors import PermissionDeniedError, SnapStateError

logger = logging.getLogger(__name__)


class Command(Enum):
    """Operations accepted on the command line."""

    INIT = "init"
    CREATE = "create"
    LIST = "list"
    ROLLBACK = "rollback"
    CLEANUP = "cleanup"
    HELP = "help"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def parse(cls, value: str | None) -> Command:
        for member in cls:
            if member is not cls.UNRECOGNIZED and member.value == value:
                return member
        return cls.UNRECOGNIZED


USAGE = """SnapState - Intelligent System State Manager

Usage: snapstate <command> [options]

Commands:
    init              Initialize SnapState
    create [name]     Create a new snapshot
    list              List available snapshots
    rollback <name>   Rollback to a snapshot
    cleanup [count]   Cleanup old snapshots
    help              Show this help message

Options:
    --component=DIR   Specify component for rollback
    --config=FILE     Configuration file (default: /etc/snapstate.conf)
    -v, --verbose     Verbose output

Examples:
    snapstate init
    snapstate create my_snapshot
    snapstate rollback my_snapshot --component=etc
    snapstate cleanup 5
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="snapstate", add_help=False, usage=USAGE)
    parser.add_argument("command", nargs="?", help="Command to run")
    parser.add_argument("argument", nargs="?", help="Snapshot name or retention count")
    parser.add_argument("--component", help="Component to roll back")
    parser.add_argument("--config", help="Configuration file")
    parser.add_argument("-h", "--help", action="store_true", dest="show_help", help="Show help")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    return parser


def setup_logging(config: SnapStateConfig, verbose: bool = False) -> None:
    """Configure logging to stderr and to the operational log file.

    Args:
        config: SnapState configuration
        verbose: Log DEBUG to stderr
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    if verbose:
        level = logging.DEBUG

    if config.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter(
            "[%(asctime)s] [%(levelname)s] %(message)s", "%Y-%m-%d %H:%M:%S"
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    console.setLevel(logging.DEBUG if verbose else logging.WARNING)
    # Errors reach the operator through run(), not twice
    console.addFilter(lambda record: record.levelno < logging.ERROR)
    root_logger.handlers = [console]

    log_path = Path(config.log_file)
    try:
        if not log_path.exists():
            log_path.parent.mkdir(parents=True, exist_ok=True)
            log_path.touch(mode=0o640)
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    except OSError as e:
        logger.warning(f"Cannot write log file {log_path}: {e}")
    else:
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    logging.getLogger("filelock").setLevel(logging.WARNING)


def check_root() -> None:
    """Raises PermissionDeniedError unless running as root."""
    if os.geteuid() != 0:
        raise PermissionDeniedError()


def _parse_keep_count(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        raise SnapStateError(f"Invalid retention count '{value}'", code="INVALID_ARGUMENT")


def _do_init(engine: SnapStateEngine, args: argparse.Namespace) -> int:
    hooks = engine.init()
    print(f"Initialized snapshot store at {engine.config.root}")
    for hook in hooks:
        print(f"  Installed hook: {hook}")
    return 0


def _do_create(engine: SnapStateEngine, args: argparse.Namespace) -> int:
    snapshot = engine.create(args.argument)
    print(f"Snapshot {snapshot.name} created successfully")
    for layer in snapshot.layers:
        print(f"  {layer.source} -> {layer.path}")
    return 0


def _do_list(engine: SnapStateEngine, args: argparse.Namespace) -> int:
    print("Available Snapshots:")
    for summary in engine.list_snapshots():
        print(f"{summary.name} - Created: {summary.created.isoformat()}")
    return 0


def _do_rollback(engine: SnapStateEngine, args: argparse.Namespace) -> int:
    if not args.argument:
        raise SnapStateError("rollback requires a snapshot name", code="INVALID_ARGUMENT")
    report = engine.rollback(args.argument, component=args.component)
    print(f"Rollback to {report.snapshot} completed successfully")
    for directory in report.restored:
        print(f"  Restored {directory}")
    return 0


def _do_cleanup(engine: SnapStateEngine, args: argparse.Namespace) -> int:
    deleted = engine.cleanup(_parse_keep_count(args.argument))
    for name in deleted:
        print(f"Removed old snapshot: {name}")
    print(f"Cleanup complete, {len(deleted)} snapshot(s) removed")
    return 0


def _do_help(engine: SnapStateEngine, args: argparse.Namespace) -> int:
    print(USAGE)
    return 0


def _do_unrecognized(engine: SnapStateEngine, args: argparse.Namespace) -> int:
    if args.command:
        print(f"Unknown command: {args.command}", file=sys.stderr)
    print(USAGE, file=sys.stderr)
    return 1


COMMAND_HANDLERS: dict[Command, Callable[[SnapStateEngine, argparse.Namespace], int]] = {
    Command.INIT: _do_init,
    Command.CREATE: _do_create,
    Command.LIST: _do_list,
    Command.ROLLBACK: _do_rollback,
    Command.CLEANUP: _do_cleanup,
    Command.HELP: _do_help,
    Command.UNRECOGNIZED: _do_unrecognized,
}


def run(
    args: argparse.Namespace,
    config: SnapStateConfig,
    engine: SnapStateEngine | None = None,
    require_root: bool = True,
) -> int:
    """Dispatch one parsed command.

    Returns:
        Process exit code
    """
    command = Command.HELP if getattr(args, "show_help", False) else Command.parse(args.command)
    if command in (Command.HELP, Command.UNRECOGNIZED):
        return COMMAND_HANDLERS[command](engine, args)

    try:
        if require_root:
            check_root()
        return COMMAND_HANDLERS[command](engine or SnapStateEngine(config), args)
    except SnapStateError as e:
        logger.error(e.message, extra={"code": e.code, "details": e.details})
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = SnapStateConfig.load(args.config)
    except (OSError, ValueError) as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config, verbose=args.verbose)
    config.log_config()
    sys.exit(run(args, config))


if __name__ == "__main__":
    main()
