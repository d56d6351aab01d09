"""Snapshot discovery in the flat backup directory.

The directory listing is the only index: every snapshot is a file named
``{owner}-opt-{timestamp}.tar.gz`` (regular) or
``{owner}-opt-pre-restore-{timestamp}.tar.gz`` (safety). Temporary
``*.tar.gz.tmp`` files never match.
"""

from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path
from typing import Iterable

from opt_backup.domain import Snapshot, SnapshotKind, snapshot_filename
from opt_backup.domain.models import ARCHIVE_SUFFIX, SAFETY_MARKER, TIMESTAMP_FORMAT
from opt_backup.logging import LoggerFactory

log = LoggerFactory.for_storage()

TEMP_SUFFIX = ".tmp"


def _snapshot_pattern(owner: str) -> re.Pattern[str]:
    return re.compile(
        rf"^{re.escape(owner)}-opt-(?:(?P<marker>{SAFETY_MARKER})-)?"
        rf"(?P<stamp>\d{{8}}_\d{{6}}){re.escape(ARCHIVE_SUFFIX)}$"
    )


def parse_snapshot(owner: str, path: Path) -> Snapshot | None:
    """Return a Snapshot if ``path`` is one of ``owner``'s archives."""
    match = _snapshot_pattern(owner).match(path.name)
    if not match:
        return None
    try:
        timestamp = datetime.strptime(match.group("stamp"), TIMESTAMP_FORMAT)
    except ValueError:
        return None
    kind = SnapshotKind.SAFETY if match.group("marker") else SnapshotKind.REGULAR
    return Snapshot(owner=owner, kind=kind, timestamp=timestamp, path=path)


def _mtime(path: Path) -> float:
    try:
        return path.stat().st_mtime
    except OSError:
        return 0.0


class SnapshotRepository:
    """Query and maintain snapshots stored in one directory."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, owner: str, kind: SnapshotKind, moment: datetime) -> Path:
        return self.root / snapshot_filename(owner, kind, moment)

    @staticmethod
    def temp_path_for(final_path: Path) -> Path:
        """Temporary archive path beside the final one, so rename stays atomic."""
        return final_path.with_name(final_path.name + TEMP_SUFFIX)

    def _iter_candidates(self, owner: str) -> Iterable[Path]:
        if not self.root.is_dir():
            return []
        return self.root.glob(f"{owner}-opt-*{ARCHIVE_SUFFIX}")

    def list_snapshots(self, owner: str, kind: SnapshotKind) -> list[Snapshot]:
        """List ``owner``'s snapshots of one kind, newest first.

        Timestamps have second resolution; modification time breaks ties.
        """
        snapshots = []
        for path in self._iter_candidates(owner):
            if not path.is_file():
                continue
            snapshot = parse_snapshot(owner, path)
            if snapshot is None or snapshot.kind is not kind:
                continue
            snapshots.append(snapshot)
        return sorted(
            snapshots,
            key=lambda item: (item.timestamp, _mtime(item.path)),
            reverse=True,
        )

    def latest(self, owner: str, kind: SnapshotKind = SnapshotKind.REGULAR) -> Snapshot | None:
        snapshots = self.list_snapshots(owner, kind)
        return snapshots[0] if snapshots else None

    def delete(self, snapshot: Snapshot) -> None:
        log.debug(f"Deleting snapshot {snapshot.path}")
        snapshot.path.unlink(missing_ok=True)
