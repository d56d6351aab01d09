"""Blocking command execution for the docker and tar collaborators."""

from __future__ import annotations

import subprocess
from typing import Optional, Sequence

from opt_backup.logging import LoggerFactory

from .exceptions import CommandError

log = LoggerFactory.for_command()


def run_checked_command(
    command: Sequence[str],
    input_text: Optional[str] = None,
    timeout: Optional[float] = None,
) -> str:
    """Run a command and raise CommandError if it fails or times out."""
    log.debug(f"Running command: {' '.join(command)}")
    try:
        result = subprocess.run(
            list(command),
            input=input_text,
            text=True,
            capture_output=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        log.warning(f"Command timed out after {timeout}s: {' '.join(command)}")
        raise CommandError(command, f"timed out after {timeout}s", timed_out=True)
    except FileNotFoundError as error:
        raise CommandError(command, str(error))
    if result.returncode != 0:
        stderr = (result.stderr or "").strip()
        stdout = (result.stdout or "").strip()
        message = stderr or stdout or "Command failed"
        log.debug(f"Command exited with code {result.returncode}: {message}")
        raise CommandError(command, message, returncode=result.returncode)
    if result.stdout:
        log.trace(f"stdout: {result.stdout.strip()}")
    return result.stdout or ""


__all__ = ["run_checked_command"]
