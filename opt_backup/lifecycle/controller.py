"""Lifecycle controller: one run over every matching container.

Pre-flight checks run first and raise; after that each target gets exactly
one backup or restore sequence, and each sequence's result is recorded in a
RunSummary whose failure count decides the exit status.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from opt_backup.config.settings import BackupSettings
from opt_backup.domain import RunMode, RunSummary, SequenceResult, Target
from opt_backup.logging import LoggerFactory
from opt_backup.services.docker import DockerRuntime
from opt_backup.services.targets import discover_targets
from opt_backup.storage.archive import TarArchiver
from opt_backup.storage.exceptions import CommandError, RuntimeUnavailableError, TargetError
from opt_backup.storage.snapshot_repo import SnapshotRepository
from opt_backup.storage.validation import (
    validate_dependencies,
    validate_destination,
    validate_free_space,
)
from opt_backup.storage.workspace import run_workspace

from .backup import backup_target
from .context import Archiver, ContainerRuntime, RunContext
from .restore import restore_target

SEPARATOR = "-" * 56


class LifecycleController:
    """Dispatch every target to its sequence and aggregate the outcomes."""

    def __init__(self, context: RunContext, mode: RunMode):
        self.context = context
        self.mode = mode
        self.log = LoggerFactory.for_run(mode.value)

    def run_target(self, target: Target) -> SequenceResult:
        try:
            if self.mode is RunMode.RESTORE:
                return restore_target(self.context, target.name)
            return backup_target(self.context, target.name)
        except TargetError as error:
            self.log.error(f"ERROR: {error}")
            return SequenceResult(
                target=target.name,
                operation=self.mode,
                success=False,
                message=str(error),
            )

    def run(self, targets: list[Target]) -> RunSummary:
        summary = RunSummary(mode=self.mode, targets=[target.name for target in targets])
        for target in targets:
            summary.record(self.run_target(target))
            self.log.info(SEPARATOR)
        return summary


def _log_header(
    log, mode: RunMode, settings: BackupSettings, targets: list[Target], dry_run: bool
) -> None:
    title = "Restore" if mode is RunMode.RESTORE else "Backup"
    suffix = " [dry-run]" if dry_run else ""
    log.info(f"--- Container /opt/ {title} Mode{suffix} ---")
    excluded = ", ".join(settings.excluded_names) or "none"
    log.info(f"Containers to {mode.value} (excluding: {excluded}):")
    for target in targets:
        log.info(f" - {target.name}")
    log.info(SEPARATOR)


def log_summary(summary: RunSummary) -> None:
    log = LoggerFactory.for_run(summary.mode.value)
    if summary.failures:
        log.error(f"COMPLETED with {summary.failures} error(s).")
    else:
        log.success("COMPLETED SUCCESSFULLY.")


def execute_run(
    settings: BackupSettings,
    mode: RunMode,
    *,
    dry_run: bool = False,
    runtime: Optional[ContainerRuntime] = None,
    archiver: Optional[Archiver] = None,
    clock: Optional[Callable[[], datetime]] = None,
    temp_base: Optional[Path] = None,
    check_dependencies: bool = True,
) -> RunSummary:
    """Run pre-flight checks, then back up or restore every target.

    Raises:
        PreflightError: For environment problems found before (or, for free
            space, between) targets
    """
    log = LoggerFactory.for_run(mode.value)
    settings.validate()
    if check_dependencies:
        validate_dependencies()

    runtime = runtime or DockerRuntime(timeout=settings.command_timeout_seconds)
    archiver = archiver or TarArchiver(timeout=settings.command_timeout_seconds)

    try:
        targets = discover_targets(runtime, settings.container_prefix, settings.excluded_names)
    except CommandError as error:
        raise RuntimeUnavailableError(str(error)) from error

    if not targets:
        log.info(
            f"INFO: No containers starting with '{settings.container_prefix}' "
            "found or all are excluded."
        )
        return RunSummary(mode=mode)

    backup_dir = settings.backup_dir
    validate_destination(backup_dir, create=mode is RunMode.BACKUP, dry_run=dry_run)
    if mode is RunMode.BACKUP:
        validate_free_space(backup_dir, settings.min_free_space_bytes)

    _log_header(log, mode, settings, targets, dry_run)

    with run_workspace(temp_base) as workspace:
        context = RunContext(
            settings=settings,
            runtime=runtime,
            archiver=archiver,
            repository=SnapshotRepository(backup_dir),
            workspace=workspace,
            dry_run=dry_run,
            clock=clock or datetime.now,
        )
        summary = LifecycleController(context, mode).run(targets)

    log_summary(summary)
    return summary
