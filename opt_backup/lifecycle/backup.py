"""Backup sequence for one container's /opt/ directory.

Steps, in order:
    1. Free-space check at the destination (raises, ends the run)
    2. Optional consistency pause of a running container
    3. ``docker cp`` of /opt/ into a per-target temporary directory
    4. Unpause straight after the copy, whatever its outcome
    5. ``tar czf`` into ``<final>.tmp`` beside the final archive
    6. Atomic rename to the final name, then chmod 600
    7. Removal of the per-target temporary directory
    8. Retention for the kind of snapshot just written

Failures in steps 3-6 are returned as a failed SequenceResult; nothing but a
PreflightError leaves this module as an exception.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

from opt_backup.domain import (
    ContainerState,
    RunMode,
    SequenceResult,
    SnapshotKind,
    snapshot_suffix,
)
from opt_backup.logging import operation_context
from opt_backup.storage.exceptions import (
    ArchiveError,
    CommandError,
    ContainerOperationError,
    TargetError,
)
from opt_backup.storage.validation import validate_free_space

from .context import CONTAINER_DATA_PATH, RunContext, member_name
from .retention import keep_count_for, prune_snapshots

if TYPE_CHECKING:
    from loguru import Logger

SNAPSHOT_MODE = 0o600


def _pause_if_running(context: RunContext, name: str, log: Logger) -> bool:
    """Pause ``name`` when consistent backups are enabled and it is running.

    Returns True only if this call paused the container.
    """
    if not context.settings.consistent_backup:
        return False
    if context.runtime.get_state(name) is not ContainerState.RUNNING:
        return False
    try:
        context.runtime.pause(name)
    except ContainerOperationError as error:
        log.warning(f"WARNING: Could not pause {name}, continuing with a live copy: {error}")
        return False
    log.debug(f"Paused {name} for a consistent copy")
    return True


def _extract(context: RunContext, name: str, extract_dir: Path, emit, log: Logger) -> None:
    paused = _pause_if_running(context, name, log)
    try:
        emit("Copying /opt/ from container...")
        context.runtime.copy_from(name, CONTAINER_DATA_PATH, extract_dir / member_name(name))
    finally:
        if paused:
            try:
                context.runtime.unpause(name)
                log.debug(f"Unpaused {name}")
            except ContainerOperationError as error:
                log.warning(f"WARNING: Failed to unpause {name}. Manual check required: {error}")


def _compress(context: RunContext, name: str, extract_dir: Path, final_path: Path) -> Path:
    temp_path = context.repository.temp_path_for(final_path)
    try:
        context.archiver.create(extract_dir, member_name(name), temp_path)
    except CommandError as error:
        temp_path.unlink(missing_ok=True)
        raise ArchiveError(name, final_path, str(error)) from error
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise
    return temp_path


def _finalize(name: str, temp_path: Path, final_path: Path) -> None:
    """Move the finished archive into place, then restrict it to the owner.

    An archive whose mode cannot be set to 600 is removed again.
    """
    try:
        os.replace(temp_path, final_path)
    except OSError as error:
        temp_path.unlink(missing_ok=True)
        raise ArchiveError(name, final_path, f"rename failed: {error}") from error
    try:
        os.chmod(final_path, SNAPSHOT_MODE)
    except OSError as error:
        final_path.unlink(missing_ok=True)
        raise ArchiveError(name, final_path, f"chmod failed: {error}") from error


def _dry_run(
    context: RunContext,
    name: str,
    kind: SnapshotKind,
    final_path: Path,
    emit,
    log: Logger,
) -> SequenceResult:
    if context.settings.consistent_backup:
        emit(f"[dry-run] Would pause {name} during the copy if it is running")
    emit(f"[dry-run] Would copy /opt/ from {name}")
    emit(f"[dry-run] Would write {final_path}")
    keep = keep_count_for(
        kind,
        context.settings.retention_count,
        context.settings.rollback_retention_count,
    )
    prune_snapshots(context.repository, name, kind, keep, dry_run=True, log=log)
    return SequenceResult(
        target=name,
        operation=RunMode.BACKUP,
        success=True,
        message="dry-run",
        snapshot=final_path,
        dry_run=True,
    )


def backup_target(
    context: RunContext,
    name: str,
    *,
    kind: SnapshotKind = SnapshotKind.REGULAR,
    quiet: bool = False,
) -> SequenceResult:
    """Capture ``name``'s /opt/ into a new snapshot.

    Args:
        context: Collaborators and settings for this run
        name: Container name
        kind: REGULAR for a requested backup, SAFETY for restore's safety net
        quiet: Log progress at DEBUG instead of INFO (used for safety snapshots)

    Returns:
        SequenceResult with ``snapshot`` set to the archive path on success

    Raises:
        InsufficientSpaceError: If the destination is below the free-space floor
    """
    operation = "safety-backup" if kind is SnapshotKind.SAFETY else "backup"
    with operation_context(operation, target=name) as log:
        emit = log.debug if quiet else log.info
        moment = context.now()
        suffix = snapshot_suffix(kind, moment)
        final_path = context.repository.path_for(name, kind, moment)

        validate_free_space(context.backup_dir, context.settings.min_free_space_bytes)

        emit(f"--- Starting /opt/ backup for {name} ---")
        if context.dry_run:
            return _dry_run(context, name, kind, final_path, emit, log)

        extract_dir = context.workspace.path(f"{name}_{suffix}")
        try:
            extract_dir = context.workspace.subdir(f"{name}_{suffix}")
            _extract(context, name, extract_dir, emit, log)
            emit(f"Compressing into {final_path}...")
            temp_path = _compress(context, name, extract_dir, final_path)
            _finalize(name, temp_path, final_path)
        except (TargetError, OSError) as error:
            log.error(f"ERROR: {error}. Skipping.")
            return SequenceResult(
                target=name,
                operation=RunMode.BACKUP,
                success=False,
                message=str(error),
            )
        finally:
            context.workspace.discard(extract_dir)

        keep = keep_count_for(
            kind,
            context.settings.retention_count,
            context.settings.rollback_retention_count,
        )
        try:
            prune_snapshots(context.repository, name, kind, keep, log=log)
        except OSError as error:
            log.warning(f"WARNING: Retention cleanup for {name} failed: {error}")

        if quiet:
            log.debug(f"Snapshot saved to {final_path}")
        else:
            log.success(f"SUCCESS: Backup saved to {final_path}")
        return SequenceResult(
            target=name,
            operation=RunMode.BACKUP,
            success=True,
            snapshot=final_path,
        )
