"""Domain models for container /opt/ backup and restore.

This package contains the typed objects shared by the storage, services and
lifecycle layers.
"""

from __future__ import annotations

from .models import (
    ContainerState,
    RestoreMode,
    RunMode,
    RunSummary,
    SequenceResult,
    Snapshot,
    SnapshotKind,
    Target,
    format_timestamp,
    snapshot_filename,
    snapshot_suffix,
)


__all__ = [
    "ContainerState",
    "RestoreMode",
    "RunMode",
    "RunSummary",
    "SequenceResult",
    "Snapshot",
    "SnapshotKind",
    "Target",
    "format_timestamp",
    "snapshot_filename",
    "snapshot_suffix",
]
