"""Restore sequence for one container's /opt/ directory.

Nothing destructive happens until a fresh safety snapshot of the current
/opt/ has been written. After that the container is stopped, the latest
regular snapshot is unpacked and copied back, and the container is started
again only if it was running beforehand.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional

from opt_backup.domain import (
    ContainerState,
    RestoreMode,
    RunMode,
    SequenceResult,
    Snapshot,
    SnapshotKind,
    format_timestamp,
)
from opt_backup.logging import operation_context
from opt_backup.storage.exceptions import (
    ArchiveError,
    CommandError,
    ContainerOperationError,
    NoSnapshotError,
    SafetySnapshotError,
    TargetError,
)

from .backup import backup_target
from .context import CONTAINER_DATA_PATH, RunContext, member_name

if TYPE_CHECKING:
    from loguru import Logger


def _failed(name: str, message: str, safety: Optional[Path] = None) -> SequenceResult:
    return SequenceResult(
        target=name,
        operation=RunMode.RESTORE,
        success=False,
        message=message,
        safety_snapshot=safety,
    )


def _unpack(context: RunContext, name: str, source: Snapshot, restore_dir: Path) -> Path:
    """Unpack ``source`` and return the directory holding the /opt/ tree."""
    try:
        context.archiver.extract(source.path, restore_dir)
    except CommandError as error:
        raise ArchiveError(name, source.path, str(error)) from error
    tree = restore_dir / member_name(name)
    if not tree.is_dir():
        raise ArchiveError(name, source.path, f"archive has no {member_name(name)}/ directory")
    return tree


def _apply(context: RunContext, name: str, tree: Path, log: Logger) -> None:
    """Copy the unpacked tree into the (stopped) container's /opt/."""
    runtime = context.runtime
    if context.settings.restore_mode is RestoreMode.REPLACE:
        # Clearing needs exec, which needs a running container.
        log.info("Clearing /opt/ in container before copy...")
        runtime.start(name)
        try:
            runtime.clear_path(name, CONTAINER_DATA_PATH)
        finally:
            runtime.stop(name)
    log.info("Copying /opt/ content back into container...")
    runtime.copy_to(name, tree, CONTAINER_DATA_PATH)


def _start(context: RunContext, name: str, log: Logger) -> bool:
    log.info("Starting container...")
    try:
        context.runtime.start(name)
    except ContainerOperationError as error:
        log.warning(f"WARNING: Failed to start {name}. Manual check required: {error}")
        return False
    return True


def _settle(context: RunContext, name: str, was_running: bool, log: Logger) -> bool:
    """Put ``name`` back into its pre-restore run state.

    A running target is started again. Any other target is stopped if the
    restore left it active, e.g. after a failed re-stop in replace mode.
    """
    if was_running:
        return _start(context, name, log)
    if not context.runtime.get_state(name).is_active:
        return True
    log.info("Stopping container, it was not running before the restore...")
    try:
        context.runtime.stop(name)
    except ContainerOperationError as error:
        log.warning(f"WARNING: Failed to stop {name}. Manual check required: {error}")
        return False
    return True


def _dry_run(context: RunContext, name: str, source: Snapshot, log: Logger) -> SequenceResult:
    safety_path = context.repository.path_for(name, SnapshotKind.SAFETY, context.now())
    state = context.runtime.get_state(name)
    log.info(f"[dry-run] Would create safety snapshot {safety_path}")
    if state.is_active:
        log.info(f"[dry-run] Would stop {name} (currently {state.value})")
    log.info(f"[dry-run] Would unpack {source.filename}")
    if context.settings.restore_mode is RestoreMode.REPLACE:
        log.info("[dry-run] Would clear /opt/ in container before copy")
    log.info(f"[dry-run] Would copy /opt/ content back into {name}")
    if state is ContainerState.RUNNING:
        log.info(f"[dry-run] Would start {name}")
    return SequenceResult(
        target=name,
        operation=RunMode.RESTORE,
        success=True,
        message="dry-run",
        snapshot=source.path,
        safety_snapshot=safety_path,
        dry_run=True,
    )


def restore_target(context: RunContext, name: str) -> SequenceResult:
    """Restore ``name``'s /opt/ from its latest regular snapshot.

    Returns:
        SequenceResult with ``snapshot`` set to the source archive and
        ``safety_snapshot`` to the pre-restore archive (when one was made)

    Raises:
        InsufficientSpaceError: From the safety snapshot's free-space check
    """
    with operation_context("restore", target=name) as log:
        source = context.repository.latest(name, SnapshotKind.REGULAR)
        if source is None:
            error = NoSnapshotError(name, context.backup_dir)
            log.error(f"ERROR: {error}. Skipping restore.")
            return _failed(name, str(error))

        log.info(f"--- Starting /opt/ restore for {name} from {source.filename} ---")
        if context.dry_run:
            return _dry_run(context, name, source, log)

        # Read before the safety snapshot, which may leave the target paused.
        initial_state = context.runtime.get_state(name)
        was_running = initial_state is ContainerState.RUNNING
        log.debug(f"{name} was {initial_state.value} before restore")

        log.info("Creating safety snapshot of current /opt/...")
        safety = backup_target(context, name, kind=SnapshotKind.SAFETY, quiet=True)
        if safety.failed or safety.snapshot is None:
            error = SafetySnapshotError(name, safety.message)
            log.error(f"ERROR: {error}")
            return _failed(name, str(error))
        safety_path = safety.snapshot
        log.info(f"Safety snapshot saved to {safety_path}")

        if context.runtime.get_state(name).is_active:
            log.info("Stopping container...")
            try:
                context.runtime.stop(name)
            except ContainerOperationError as error:
                log.error(f"ERROR: {error}. Aborting restore.")
                return _failed(name, str(error), safety_path)

        restore_dir = context.workspace.path(
            f"restore_{name}_{format_timestamp(context.now())}"
        )
        apply_error: Optional[TargetError] = None
        try:
            log.info("Unpacking archive...")
            try:
                restore_dir = context.workspace.subdir(restore_dir.name)
                tree = _unpack(context, name, source, restore_dir)
            except (ArchiveError, OSError) as error:
                log.error(
                    f"ERROR: Failed to unpack backup: {error}. "
                    f"Current data is preserved in {safety_path}"
                )
                _settle(context, name, was_running, log)
                return _failed(name, str(error), safety_path)

            try:
                _apply(context, name, tree, log)
            except ContainerOperationError as error:
                apply_error = error
                log.error(
                    f"ERROR: {error}. Manual check required; "
                    f"restore from safety snapshot {safety_path} if needed"
                )
        finally:
            context.workspace.discard(restore_dir)

        settled = _settle(context, name, was_running, log)

        if apply_error is not None:
            return _failed(name, str(apply_error), safety_path)
        if not settled:
            return _failed(
                name,
                f"Failed to return {name} to its {initial_state.value} state after restore",
                safety_path,
            )

        log.success(
            f"SUCCESS: {name} restored from {source.filename}. "
            f"Safety snapshot kept at {safety_path}"
        )
        return SequenceResult(
            target=name,
            operation=RunMode.RESTORE,
            success=True,
            snapshot=source.path,
            safety_snapshot=safety_path,
        )
