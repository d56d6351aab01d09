"""Pre-flight validation for a backup or restore run.

These checks run before any container is touched (and the free-space check
again before every individual backup). Each raises a PreflightError subclass
rather than returning a boolean, so a failed check ends the run.

Example:
    from opt_backup.storage.validation import validate_free_space

    validate_free_space(backup_dir, settings.min_free_space_bytes)
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Iterable

from .exceptions import (
    DestinationError,
    InsufficientSpaceError,
    MissingDependencyError,
)

REQUIRED_TOOLS = ("docker", "tar")


def check_tool_available(tool: str) -> bool:
    """Check if a command-line tool is available."""
    return shutil.which(tool) is not None


def validate_dependencies(tools: Iterable[str] = REQUIRED_TOOLS) -> None:
    """Raise MissingDependencyError for the first tool not on PATH."""
    for tool in tools:
        if not check_tool_available(tool):
            raise MissingDependencyError(tool)


def get_free_bytes(path: Path) -> int:
    """Free bytes available to unprivileged users on ``path``'s filesystem."""
    stats = os.statvfs(path)
    return stats.f_frsize * stats.f_bavail


def _nearest_existing(path: Path) -> Path:
    candidate = path.absolute()
    while not candidate.exists() and candidate != candidate.parent:
        candidate = candidate.parent
    return candidate


def validate_free_space(path: Path, required_bytes: int) -> int:
    """Ensure at least ``required_bytes`` are free where ``path`` lives.

    A destination that does not exist yet (dry-run) is measured on its
    nearest existing parent.

    Returns:
        The free byte count that was measured

    Raises:
        DestinationError: If free space cannot be queried
        InsufficientSpaceError: If less than ``required_bytes`` is available
    """
    probe = _nearest_existing(path)
    try:
        free_bytes = get_free_bytes(probe)
    except OSError as error:
        raise DestinationError(path, f"cannot query free space: {error}") from error
    if free_bytes < required_bytes:
        raise InsufficientSpaceError(path, free_bytes, required_bytes)
    return free_bytes


def validate_destination(path: Path, *, create: bool, dry_run: bool = False) -> None:
    """Make sure the backup directory exists (or can exist) and is writable.

    Args:
        path: Backup directory
        create: Create the directory if it is missing (backup mode)
        dry_run: Never create anything, only check the nearest existing parent

    Raises:
        DestinationError: If the directory is missing, not a directory or
            not accessible
    """
    if path.exists() and not path.is_dir():
        raise DestinationError(path, "not a directory")
    if not path.exists():
        if not create:
            raise DestinationError(path, "directory does not exist")
        if dry_run:
            parent = _nearest_existing(path)
            if not os.access(parent, os.W_OK | os.X_OK):
                raise DestinationError(path, f"cannot create under {parent}")
            return
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise DestinationError(path, str(error)) from error
    mode = os.R_OK | os.X_OK
    if create and not dry_run:
        mode |= os.W_OK
    if not os.access(path, mode):
        raise DestinationError(path, "permission denied")
