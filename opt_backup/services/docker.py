"""Container runtime access through the ``docker`` CLI.

Every call blocks until docker returns. Failures are raised as
ContainerOperationError carrying the container name and the docker error
text; ``get_state`` is the exception and reports UNKNOWN instead of raising.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from opt_backup.domain import ContainerState
from opt_backup.logging import LoggerFactory
from opt_backup.storage.command_runners import run_checked_command
from opt_backup.storage.exceptions import CommandError, ContainerOperationError

DOCKER_TOOL = "docker"
LIST_FORMAT = "{{.Names}}\t{{.State}}"

# Removes regular and dot entries inside a directory without removing it.
_CLEAR_SCRIPT = 'rm -rf -- "$1"/* "$1"/.[!.]* "$1"/..?*'


class DockerRuntime:
    """Thin wrapper over the docker commands the lifecycle needs."""

    def __init__(self, timeout: Optional[float] = None, tool: str = DOCKER_TOOL):
        self.timeout = timeout
        self.tool = tool

    def _run(self, target: str, operation: str, *args: str) -> str:
        log = LoggerFactory.for_docker(target)
        try:
            return run_checked_command([self.tool, *args], timeout=self.timeout)
        except CommandError as error:
            log.debug(f"docker {operation} failed: {error}")
            raise ContainerOperationError(target, operation, str(error)) from error

    def list_containers(self) -> list[tuple[str, ContainerState]]:
        """Return ``(name, state)`` for every container, running or not.

        Raises:
            CommandError: If docker itself cannot be queried
        """
        output = run_checked_command(
            [self.tool, "ps", "-a", "--format", LIST_FORMAT],
            timeout=self.timeout,
        )
        containers = []
        for line in output.splitlines():
            if not line.strip():
                continue
            name, _, state = line.partition("\t")
            containers.append((name.strip(), ContainerState.parse(state)))
        return containers

    def get_state(self, name: str) -> ContainerState:
        try:
            output = run_checked_command(
                [self.tool, "inspect", "-f", "{{.State.Status}}", name],
                timeout=self.timeout,
            )
        except CommandError as error:
            LoggerFactory.for_docker(name).debug(f"State query failed: {error}")
            return ContainerState.UNKNOWN
        return ContainerState.parse(output)

    def pause(self, name: str) -> None:
        self._run(name, "pause", "pause", name)

    def unpause(self, name: str) -> None:
        self._run(name, "unpause", "unpause", name)

    def stop(self, name: str) -> None:
        self._run(name, "stop", "stop", name)

    def start(self, name: str) -> None:
        self._run(name, "start", "start", name)

    def copy_from(self, name: str, container_path: str, host_path: Path) -> None:
        """Copy ``container_path`` out of the container to ``host_path``."""
        self._run(name, "copy from", "cp", f"{name}:{container_path}", str(host_path))

    def copy_to(self, name: str, host_dir: Path, container_path: str) -> None:
        """Copy the contents of ``host_dir`` into ``container_path``.

        The trailing ``/.`` makes docker merge the directory's entries into
        the destination instead of nesting ``host_dir`` inside it.
        """
        self._run(name, "copy into", "cp", f"{host_dir}/.", f"{name}:{container_path}")

    def clear_path(self, name: str, container_path: str) -> None:
        """Delete everything inside ``container_path`` (container must be running)."""
        self._run(
            name,
            "clear",
            "exec",
            name,
            "sh",
            "-c",
            _CLEAR_SCRIPT,
            "sh",
            container_path.rstrip("/") or "/",
        )
