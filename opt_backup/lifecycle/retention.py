"""Retention policy: keep the newest N snapshots per container and kind."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from opt_backup.domain import Snapshot, SnapshotKind
from opt_backup.logging import get_logger
from opt_backup.storage.snapshot_repo import SnapshotRepository

if TYPE_CHECKING:
    from loguru import Logger


def keep_count_for(kind: SnapshotKind, retention_count: int, rollback_count: int) -> int:
    return rollback_count if kind is SnapshotKind.SAFETY else retention_count


def prune_snapshots(
    repository: SnapshotRepository,
    owner: str,
    kind: SnapshotKind,
    keep: int,
    *,
    dry_run: bool = False,
    log: Optional[Logger] = None,
) -> list[Snapshot]:
    """Delete every ``kind`` snapshot of ``owner`` beyond the newest ``keep``.

    Only the requested kind is listed, so regular and safety snapshots never
    count against each other.

    Returns:
        The snapshots that were (or in dry-run would have been) deleted
    """
    if keep < 1:
        raise ValueError(f"keep must be at least 1, got {keep}")
    log = log or get_logger(source="retention", target=owner)
    expired = repository.list_snapshots(owner, kind)[keep:]
    if not expired:
        return []
    label = "safety snapshots" if kind is SnapshotKind.SAFETY else "backups"
    if dry_run:
        for snapshot in expired:
            log.info(f"[dry-run] Would delete old {label[:-1]} {snapshot.filename}")
        return expired
    log.info(f"Cleaning up old {label} (keeping last {keep})...")
    for snapshot in expired:
        repository.delete(snapshot)
        log.debug(f"Removed {snapshot.filename}")
    return expired
