"""
Pytest configuration and shared fixtures for opt-backup tests.

The fake runtime keeps each container's /opt/ as a real directory under
tmp_path, so backup and restore tests can assert on file contents, and
records every call so tests can assert on what was (not) done.
"""

import shutil
import tarfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Set, Tuple

import pytest
from loguru import logger

from opt_backup.config.settings import BackupSettings
from opt_backup.domain import ContainerState
from opt_backup.lifecycle.context import RunContext
from opt_backup.storage.exceptions import CommandError, ContainerOperationError
from opt_backup.storage.snapshot_repo import SnapshotRepository
from opt_backup.storage.workspace import Workspace


# ==============================================================================
# Fake Collaborators
# ==============================================================================


class FakeRuntime:
    """In-memory container runtime with host directories standing in for /opt/."""

    def __init__(self, root: Path):
        self.root = root
        self.states: Dict[str, ContainerState] = {}
        self.calls: List[Tuple[str, str]] = []
        self.failures: Dict[str, Set[str]] = {}
        self.one_shot: Set[Tuple[str, str]] = set()

    def add(self, name: str, state: ContainerState = ContainerState.RUNNING, files=None) -> Path:
        self.states[name] = state
        opt_dir = self.opt_dir(name)
        opt_dir.mkdir(parents=True, exist_ok=True)
        for relative, content in (files or {}).items():
            path = opt_dir / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        return opt_dir

    def opt_dir(self, name: str) -> Path:
        return self.root / name / "opt"

    def fail(self, operation: str, name: str) -> None:
        self.failures.setdefault(operation, set()).add(name)

    def fail_once(self, operation: str, name: str) -> None:
        self.one_shot.add((operation, name))

    def _call(self, operation: str, name: str) -> None:
        self.calls.append((operation, name))
        if (operation, name) in self.one_shot:
            self.one_shot.discard((operation, name))
            raise ContainerOperationError(name, operation, "simulated failure")
        if name in self.failures.get(operation, set()):
            raise ContainerOperationError(name, operation, "simulated failure")

    def operations(self, name: str) -> List[str]:
        return [operation for operation, called in self.calls if called == name]

    def list_containers(self):
        return list(self.states.items())

    def get_state(self, name):
        self.calls.append(("get_state", name))
        return self.states.get(name, ContainerState.UNKNOWN)

    def pause(self, name):
        self._call("pause", name)
        self.states[name] = ContainerState.PAUSED

    def unpause(self, name):
        self._call("unpause", name)
        self.states[name] = ContainerState.RUNNING

    def stop(self, name):
        self._call("stop", name)
        self.states[name] = ContainerState.EXITED

    def start(self, name):
        self._call("start", name)
        self.states[name] = ContainerState.RUNNING

    def copy_from(self, name, container_path, host_path):
        self._call("copy_from", name)
        shutil.copytree(self.opt_dir(name), host_path)

    def copy_to(self, name, host_dir, container_path):
        self._call("copy_to", name)
        shutil.copytree(host_dir, self.opt_dir(name), dirs_exist_ok=True)

    def clear_path(self, name, container_path):
        self._call("clear_path", name)
        for child in self.opt_dir(name).iterdir():
            if child.is_dir():
                shutil.rmtree(child)
            else:
                child.unlink()


class FakeArchiver:
    """Archiver built on tarfile that can be told to fail."""

    def __init__(self):
        self.fail_create = False
        self.fail_extract = False
        self.created: List[Path] = []
        self.extracted: List[Path] = []

    def create(self, source_dir, member, archive_path):
        if self.fail_create:
            Path(archive_path).write_bytes(b"partial")
            raise CommandError(["tar", "czf", str(archive_path)], "simulated failure", returncode=2)
        with tarfile.open(archive_path, "w:gz") as tar:
            tar.add(Path(source_dir) / member, arcname=member)
        self.created.append(Path(archive_path))

    def extract(self, archive_path, dest_dir):
        if self.fail_extract:
            raise CommandError(["tar", "xzf", str(archive_path)], "simulated failure", returncode=2)
        with tarfile.open(archive_path, "r:gz") as tar:
            if hasattr(tarfile, "data_filter"):
                tar.extractall(dest_dir, filter="data")
            else:
                tar.extractall(dest_dir)
        self.extracted.append(Path(archive_path))


class StepClock:
    """Clock that advances one minute per reading."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        moment = self.current
        self.current = self.current + timedelta(minutes=1)
        return moment


def make_snapshot_file(directory: Path, name: str, stamp: str, safety: bool = False) -> Path:
    """Create an (empty-content) archive file with a snapshot name."""
    marker = "pre-restore-" if safety else ""
    path = directory / f"{name}-opt-{marker}{stamp}.tar.gz"
    directory.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")
    return path


def make_real_snapshot(directory: Path, name: str, stamp: str, files: Dict[str, str]) -> Path:
    """Create a snapshot archive holding ``{name}_opt/`` with ``files``."""
    directory.mkdir(parents=True, exist_ok=True)
    staging = directory.parent / f"staging-{name}-{stamp}"
    tree = staging / f"{name}_opt"
    for relative, content in files.items():
        path = tree / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    tree.mkdir(parents=True, exist_ok=True)
    path = directory / f"{name}-opt-{stamp}.tar.gz"
    with tarfile.open(path, "w:gz") as tar:
        tar.add(tree, arcname=tree.name)
    shutil.rmtree(staging)
    return path


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def runtime(tmp_path) -> FakeRuntime:
    return FakeRuntime(tmp_path / "containers")


@pytest.fixture
def archiver() -> FakeArchiver:
    return FakeArchiver()


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def backup_dir(tmp_path) -> Path:
    path = tmp_path / "backups"
    path.mkdir()
    return path


@pytest.fixture
def workspace(tmp_path) -> Workspace:
    root = tmp_path / "work"
    root.mkdir()
    return Workspace(root)


@pytest.fixture
def make_settings(backup_dir):
    """Factory for BackupSettings pointing at the test backup directory."""

    def factory(**overrides) -> BackupSettings:
        values = {"backup_dir": backup_dir, "min_free_space_mb": 0}
        values.update(overrides)
        return BackupSettings(**values)

    return factory


@pytest.fixture
def make_context(make_settings, runtime, archiver, workspace, clock, backup_dir):
    """Factory for a RunContext wired to the fakes."""

    def factory(dry_run: bool = False, **settings_overrides) -> RunContext:
        return RunContext(
            settings=make_settings(**settings_overrides),
            runtime=runtime,
            archiver=archiver,
            repository=SnapshotRepository(backup_dir),
            workspace=workspace,
            dry_run=dry_run,
            clock=clock,
        )

    return factory


@pytest.fixture
def log_records():
    """Capture loguru records emitted during the test."""
    records = []
    handler_id = logger.add(lambda message: records.append(message.record), level="TRACE")
    yield records
    logger.remove(handler_id)


@pytest.fixture
def mock_subprocess_run(mocker):
    """
    Fixture providing a mock for subprocess.run.

    Returns:
        Mock object for subprocess.run
    """
    return mocker.patch("subprocess.run")
