"""Everything a backup or restore sequence needs, passed explicitly."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Protocol

from opt_backup.config.settings import BackupSettings
from opt_backup.domain import ContainerState
from opt_backup.storage.snapshot_repo import SnapshotRepository
from opt_backup.storage.workspace import Workspace

CONTAINER_DATA_PATH = "/opt/"


class ContainerRuntime(Protocol):
    def list_containers(self) -> list[tuple[str, ContainerState]]: ...

    def get_state(self, name: str) -> ContainerState: ...

    def pause(self, name: str) -> None: ...

    def unpause(self, name: str) -> None: ...

    def stop(self, name: str) -> None: ...

    def start(self, name: str) -> None: ...

    def copy_from(self, name: str, container_path: str, host_path: Path) -> None: ...

    def copy_to(self, name: str, host_dir: Path, container_path: str) -> None: ...

    def clear_path(self, name: str, container_path: str) -> None: ...


class Archiver(Protocol):
    def create(self, source_dir: Path, member: str, archive_path: Path) -> None: ...

    def extract(self, archive_path: Path, dest_dir: Path) -> None: ...


@dataclass
class RunContext:
    settings: BackupSettings
    runtime: ContainerRuntime
    archiver: Archiver
    repository: SnapshotRepository
    workspace: Workspace
    dry_run: bool = False
    clock: Callable[[], datetime] = field(default=datetime.now)

    @property
    def backup_dir(self) -> Path:
        return self.repository.root

    def now(self) -> datetime:
        return self.clock().replace(microsecond=0)


def member_name(target: str) -> str:
    """Top-level directory inside every archive of ``target``."""
    return f"{target}_opt"
