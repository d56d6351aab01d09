"""Run-scoped temporary directory.

One temporary root is created per invocation and removed on every exit
path, including KeyboardInterrupt. Each backup or restore works in its own
subdirectory named after the container and snapshot suffix, so targets never
share paths.

Usage:
    with run_workspace() as workspace:
        extract_dir = workspace.subdir("demo-app_20240101_120000")
        ...
        workspace.discard(extract_dir)
"""

from __future__ import annotations

import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from opt_backup.logging import LoggerFactory

log = LoggerFactory.for_storage()


class Workspace:
    def __init__(self, root: Path):
        self.root = root

    def path(self, name: str) -> Path:
        return self.root / name

    def subdir(self, name: str) -> Path:
        """Create (fresh) and return ``root/name``."""
        path = self.path(name)
        if path.exists():
            shutil.rmtree(path, ignore_errors=True)
        path.mkdir(parents=True)
        return path

    def discard(self, path: Path) -> None:
        """Remove a per-target subdirectory, ignoring anything already gone."""
        shutil.rmtree(path, ignore_errors=True)

    def is_empty(self) -> bool:
        return not any(self.root.iterdir())


@contextmanager
def run_workspace(base_dir: Optional[Path] = None) -> Generator[Workspace, None, None]:
    """Create the run's temporary root and always remove it afterwards."""
    root = Path(tempfile.mkdtemp(prefix="opt-backup-", dir=base_dir))
    log.debug(f"Created temporary workspace {root}")
    try:
        yield Workspace(root)
    finally:
        shutil.rmtree(root, ignore_errors=True)
        log.debug(f"Removed temporary workspace {root}")
