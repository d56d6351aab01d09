"""Compressed tar archives of an extracted /opt/ tree.

Snapshots are plain ``tar czf`` archives containing a single top-level
``{container}_opt`` directory, so they can be inspected or unpacked by hand.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Optional

from .command_runners import run_checked_command


TAR_TOOL = "tar"


class TarArchiver:
    """Create and unpack gzip tarballs through the system ``tar``."""

    def __init__(self, timeout: Optional[float] = None, tool: str = TAR_TOOL):
        self.timeout = timeout
        self.tool = tool

    def is_available(self) -> bool:
        return shutil.which(self.tool) is not None

    def create(self, source_dir: Path, member: str, archive_path: Path) -> None:
        """Write ``source_dir/member`` into ``archive_path``.

        Raises:
            CommandError: If tar exits non-zero or times out
        """
        run_checked_command(
            [self.tool, "czf", str(archive_path), "-C", str(source_dir), member],
            timeout=self.timeout,
        )

    def extract(self, archive_path: Path, dest_dir: Path) -> None:
        """Unpack ``archive_path`` into the existing directory ``dest_dir``.

        Raises:
            CommandError: If tar exits non-zero or times out
        """
        run_checked_command(
            [self.tool, "xzf", str(archive_path), "-C", str(dest_dir)],
            timeout=self.timeout,
        )


__all__ = ["TarArchiver"]
