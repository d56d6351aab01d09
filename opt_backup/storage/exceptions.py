"""Custom exceptions for backup and restore operations.

Exception Hierarchy:
    OptBackupError (base)
        ├── CommandError
        ├── PreflightError            (fatal to the whole run)
        │   ├── MissingDependencyError
        │   ├── DestinationError
        │   ├── InsufficientSpaceError
        │   ├── RuntimeUnavailableError
        │   └── ConfigurationError
        └── TargetError               (isolated to one container)
            ├── ContainerOperationError
            ├── ArchiveError
            ├── NoSnapshotError
            └── SafetySnapshotError

Pre-flight errors stop the run before (or instead of) touching further
containers. Target errors are caught at the boundary of each backup/restore
sequence and turned into a failed result, so the run moves on to the next
container.

Usage:
    from opt_backup.storage.exceptions import NoSnapshotError

    if latest is None:
        raise NoSnapshotError(target_name, backup_dir)
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence


class OptBackupError(Exception):
    """Base exception for all opt-backup errors."""


class CommandError(OptBackupError):
    """An external command exited non-zero or timed out."""

    def __init__(
        self,
        command: Sequence[str],
        message: str,
        returncode: int | None = None,
        timed_out: bool = False,
    ):
        self.command = list(command)
        self.returncode = returncode
        self.timed_out = timed_out
        super().__init__(f"Command failed ({' '.join(self.command)}): {message}")


class PreflightError(OptBackupError):
    """Base exception for environment problems that end the run."""


class MissingDependencyError(PreflightError):
    """A required command-line tool is not installed."""

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(f"Required command '{tool}' not found. Please install it.")


class DestinationError(PreflightError):
    """The backup directory cannot be created, read or written."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Backup directory {path} is not usable: {reason}")


class InsufficientSpaceError(PreflightError):
    """Not enough free space at the backup destination."""

    def __init__(self, path: Path, free_bytes: int, required_bytes: int):
        self.path = path
        self.free_bytes = free_bytes
        self.required_bytes = required_bytes
        super().__init__(
            f"Insufficient free space in {path}: "
            f"{free_bytes // (1024 * 1024)} MB available, "
            f"{required_bytes // (1024 * 1024)} MB required"
        )


class RuntimeUnavailableError(PreflightError):
    """The container runtime could not be queried at all."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Unable to list containers: {reason}")


class ConfigurationError(PreflightError):
    """A configuration value is missing or out of range."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid setting '{key}': {reason}")


class TargetError(OptBackupError):
    """Base exception for failures isolated to a single container."""

    def __init__(self, target: str, message: str):
        self.target = target
        super().__init__(message)


class ContainerOperationError(TargetError):
    """A runtime call (pause, stop, copy, ...) failed for a container."""

    def __init__(self, target: str, operation: str, reason: str = ""):
        self.operation = operation
        self.reason = reason
        msg = f"Failed to {operation} {target}"
        if reason:
            msg += f": {reason}"
        super().__init__(target, msg)


class ArchiveError(TargetError):
    """Creating or unpacking a snapshot archive failed."""

    def __init__(self, target: str, archive_path: Path, reason: str):
        self.archive_path = archive_path
        self.reason = reason
        super().__init__(target, f"Archive operation on {archive_path} failed: {reason}")


class NoSnapshotError(TargetError):
    """No regular snapshot exists to restore from."""

    def __init__(self, target: str, backup_dir: Path):
        self.backup_dir = backup_dir
        super().__init__(
            target, f"No /opt/ backup found for {target} in {backup_dir}"
        )


class SafetySnapshotError(TargetError):
    """The pre-restore safety snapshot could not be produced."""

    def __init__(self, target: str, reason: str):
        self.reason = reason
        super().__init__(
            target,
            f"Safety snapshot for {target} failed, restore aborted: {reason}",
        )
