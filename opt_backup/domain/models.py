"""Domain model for container /opt/ snapshots.

Targets, snapshots and per-target results are plain frozen dataclasses so the
lifecycle code never passes raw ``docker ps`` lines or filenames around.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
SAFETY_MARKER = "pre-restore"
ARCHIVE_SUFFIX = ".tar.gz"


# ==============================================================================
# Target Domain
# ==============================================================================


class ContainerState(Enum):
    """Runtime state of a container as reported by the runtime."""

    RUNNING = "running"
    PAUSED = "paused"
    EXITED = "exited"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> ContainerState:
        """Map a runtime status string to a state, UNKNOWN for anything else.

        ``created`` and ``dead`` containers are not running and are treated
        as exited.
        """
        if not value:
            return cls.UNKNOWN
        normalized = value.strip().lower()
        if normalized in {"created", "dead"}:
            return cls.EXITED
        try:
            return cls(normalized)
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_active(self) -> bool:
        """Running or paused, i.e. the container must be stopped before restore."""
        return self in (ContainerState.RUNNING, ContainerState.PAUSED)


@dataclass(frozen=True)
class Target:
    """A container selected for backup or restore.

    ``state`` is only what the runtime reported at enumeration time; the
    lifecycle code always asks the runtime again before acting on it.
    """

    name: str
    state: ContainerState = ContainerState.UNKNOWN


# ==============================================================================
# Snapshot Domain
# ==============================================================================


class SnapshotKind(Enum):
    """Regular backups and pre-restore safety snapshots are pruned separately."""

    REGULAR = "regular"
    SAFETY = "safety"


@dataclass(frozen=True)
class Snapshot:
    """One immutable ``{owner}-opt-{suffix}.tar.gz`` archive."""

    owner: str
    kind: SnapshotKind
    timestamp: datetime
    path: Path

    @property
    def suffix(self) -> str:
        return snapshot_suffix(self.kind, self.timestamp)

    @property
    def filename(self) -> str:
        return self.path.name


def format_timestamp(moment: datetime) -> str:
    return moment.strftime(TIMESTAMP_FORMAT)


def snapshot_suffix(kind: SnapshotKind, moment: datetime) -> str:
    """Return the filename suffix, e.g. ``20240101_120000`` or
    ``pre-restore-20240101_120000``."""
    stamp = format_timestamp(moment)
    if kind is SnapshotKind.SAFETY:
        return f"{SAFETY_MARKER}-{stamp}"
    return stamp


def snapshot_filename(owner: str, kind: SnapshotKind, moment: datetime) -> str:
    return f"{owner}-opt-{snapshot_suffix(kind, moment)}{ARCHIVE_SUFFIX}"


# ==============================================================================
# Run Domain
# ==============================================================================


class RunMode(Enum):
    BACKUP = "backup"
    RESTORE = "restore"


class RestoreMode(Enum):
    """How restored files are applied to the container's /opt/."""

    OVERLAY = "overlay"  # Merge archived files over the current tree
    REPLACE = "replace"  # Clear /opt/ first, then copy


@dataclass(frozen=True)
class SequenceResult:
    """Outcome of one backup or restore sequence for one target.

    Failures are values, not exceptions, so the controller can sum them.
    """

    target: str
    operation: RunMode
    success: bool
    message: str = ""
    snapshot: Path | None = None
    safety_snapshot: Path | None = None
    dry_run: bool = False

    @property
    def failed(self) -> bool:
        return not self.success


@dataclass
class RunSummary:
    """Aggregate of every sequence result in one invocation."""

    mode: RunMode
    targets: list[str] = field(default_factory=list)
    results: list[SequenceResult] = field(default_factory=list)

    def record(self, result: SequenceResult) -> None:
        self.results.append(result)

    @property
    def failures(self) -> int:
        return sum(1 for result in self.results if result.failed)

    @property
    def exit_code(self) -> int:
        return 1 if self.failures else 0
