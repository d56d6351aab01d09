import argparse
import signal
import sys
from pathlib import Path

from opt_backup import __version__
from opt_backup.config import settings as settings_module
from opt_backup.domain import RestoreMode, RunMode
from opt_backup.lifecycle.controller import execute_run
from opt_backup.logging import LoggerFactory, setup_logging
from opt_backup.storage.exceptions import PreflightError

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="opt-backup",
        description="Back up or restore the /opt/ directory of prefixed containers",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "-b", "--backup", dest="mode", action="store_const", const=RunMode.BACKUP,
        help="Back up every matching container (default)",
    )
    mode.add_argument(
        "-r", "--restore", dest="mode", action="store_const", const=RunMode.RESTORE,
        help="Restore every matching container from its latest backup",
    )
    parser.set_defaults(mode=RunMode.BACKUP)
    parser.add_argument(
        "destination", nargs="?", type=Path,
        help="Backup directory (default: configured backup_dir)",
    )
    parser.add_argument("-n", "--dry-run", action="store_true", help="Report actions without changing anything")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--prefix", dest="container_prefix", help="Container name prefix to target")
    parser.add_argument(
        "--exclude", dest="excluded_names", action="append", metavar="PATTERN",
        help="Exclude containers matching PATTERN (repeatable, replaces the default list)",
    )
    parser.add_argument("--retention", dest="retention_count", type=int, help="Regular backups to keep per container")
    parser.add_argument(
        "--rollback-retention", dest="rollback_retention_count", type=int,
        help="Pre-restore safety snapshots to keep per container",
    )
    parser.add_argument(
        "--consistent", dest="consistent_backup", action=argparse.BooleanOptionalAction,
        default=None, help="Pause running containers while copying /opt/",
    )
    parser.add_argument(
        "--restore-mode", choices=[mode.value for mode in RestoreMode],
        help="overlay merges archived files over /opt/; replace clears /opt/ first",
    )
    parser.add_argument("--min-free-mb", dest="min_free_space_mb", type=int, help="Minimum free space at destination")
    parser.add_argument(
        "--timeout", dest="command_timeout_seconds", type=float,
        help="Timeout in seconds for each docker/tar command",
    )
    parser.add_argument("--settings", type=Path, help="Path to a JSON settings file")
    parser.add_argument("--log-dir", type=Path, help="Directory for log files")
    parser.add_argument("--no-log-files", action="store_true", help="Log to the console only")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _raise_interrupt(signum, frame):
    raise KeyboardInterrupt


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(
        verbose=args.verbose,
        log_dir=args.log_dir,
        file_logging=not args.no_log_files,
    )
    log = LoggerFactory.for_run(args.mode.value)
    signal.signal(signal.SIGTERM, _raise_interrupt)

    cli_overrides = {
        "backup_dir": args.destination,
        "container_prefix": args.container_prefix,
        "excluded_names": args.excluded_names,
        "retention_count": args.retention_count,
        "rollback_retention_count": args.rollback_retention_count,
        "consistent_backup": args.consistent_backup,
        "restore_mode": args.restore_mode,
        "min_free_space_mb": args.min_free_space_mb,
        "command_timeout_seconds": args.command_timeout_seconds,
    }
    try:
        if args.settings:
            settings_module.load_settings(args.settings)
        settings = settings_module.resolve_settings(cli_overrides)
        log.debug(f"Resolved settings: {settings}")
        summary = execute_run(settings, args.mode, dry_run=args.dry_run)
    except PreflightError as error:
        log.error(f"ERROR: {error}")
        return EXIT_FAILURE
    except KeyboardInterrupt:
        log.warning("Interrupted, temporary files removed.")
        return EXIT_INTERRUPTED
    return summary.exit_code


if __name__ == "__main__":
    sys.exit(main())
