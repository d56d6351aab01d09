from __future__ import annotations

import os
import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

DEFAULT_LOG_DIR = Path(
    os.environ.get(
        "OPT_BACKUP_LOG_DIR",
        Path.home() / ".local" / "state" / "opt-backup" / "logs",
    )
)

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[target]: <20}</cyan> | "
    "{message}"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
    "{level: <8} | "
    "{extra[source]: <10} | "
    "{extra[target]: <20} | "
    "{extra[job_id]: <18} | "
    "{message}"
)


def _hide_command_output(record) -> bool:
    """Keep raw subprocess chatter off the console unless it is a problem."""
    tags = record["extra"].get("tags", [])
    if "command" in tags:
        return record["level"].no >= logger.level("WARNING").no
    return True


def setup_logging(
    *,
    verbose: bool = False,
    log_dir: Path | None = None,
    file_logging: bool = True,
) -> Logger:
    """
    Configure console and file sinks for a run.

    Log Files:
    - operations.log: INFO+ events (14 day retention)
    - debug.log: DEBUG+ events when --verbose is enabled (3 day retention)
    - structured.jsonl: Structured JSON logs for analysis (14 day retention)

    Args:
        verbose: Enable DEBUG level output on the console and debug.log
        log_dir: Custom log directory (defaults to ~/.local/state/opt-backup/logs)
        file_logging: Disable to log to the console only
    """
    logger.remove()
    logger.configure(
        extra={"job_id": "-", "tags": [], "source": "run", "target": "-"}
    )

    console_level = "DEBUG" if verbose else "INFO"

    # Console (stderr) - the operator-facing progress stream
    logger.add(
        sys.stderr,
        level=console_level,
        backtrace=False,
        diagnose=False,
        filter=None if verbose else _hide_command_output,
        colorize=None,
        format=CONSOLE_FORMAT,
    )

    if not file_logging:
        return logger

    log_dir = log_dir or DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    logger.add(
        log_dir / "operations.log",
        level="INFO",
        rotation="5 MB",
        retention="14 days",
        compression="zip",
        enqueue=True,
        backtrace=False,
        diagnose=False,
        format=FILE_FORMAT,
    )

    if verbose:
        logger.add(
            log_dir / "debug.log",
            level="DEBUG",
            rotation="10 MB",
            retention="3 days",
            compression="zip",
            enqueue=True,
            backtrace=True,
            diagnose=False,
            format=FILE_FORMAT + " | {extra[tags]}",
        )

    logger.add(
        log_dir / "structured.jsonl",
        level="INFO",
        rotation="10 MB",
        retention="14 days",
        compression="zip",
        enqueue=True,
        serialize=True,
        format="{message}",
    )

    return logger


def get_logger(
    *,
    job_id: str | None = None,
    tags: Iterable[str] | None = None,
    source: str | None = None,
    target: str | None = None,
) -> Logger:
    """
    Get a logger with bound context.

    Args:
        job_id: Job identifier for tracking one sequence
        tags: Tags for filtering (e.g., ["docker", "command"])
        source: Source component (e.g., "backup", "restore", "docker")
        target: Container the messages are about

    Returns:
        Logger with bound context
    """
    extras: dict[str, object] = {}
    if job_id is not None:
        extras["job_id"] = job_id
    if tags is not None:
        extras["tags"] = list(tags)
    if source is not None:
        extras["source"] = source
    if target is not None:
        extras["target"] = target
    return logger.bind(**extras)


@contextmanager
def operation_context(operation: str, target: str, **details):
    """
    Bind a job id and target for one backup/restore sequence and time it.

    Unlike a plain ``logger.contextualize`` block this logs start and a
    debug-level duration line; success or failure is reported by the
    sequence itself because failures are returned, not raised.

    Example:
        with operation_context("backup", target="demo-app") as log:
            log.info("Copying /opt/ from container...")
    """
    job_id = f"{operation}-{uuid.uuid4().hex[:8]}"
    with logger.contextualize(job_id=job_id, target=target):
        start_time = time.time()
        log = logger.bind(
            source=operation, job_id=job_id, target=target, tags=[operation]
        )
        log.debug(f"{operation.capitalize()} started", **details)
        try:
            yield log
        finally:
            duration = time.time() - start_time
            log.debug(
                f"{operation.capitalize()} finished",
                duration_seconds=round(duration, 2),
            )


class LoggerFactory:
    """Domain-specific loggers with the right source and tags pre-bound."""

    @staticmethod
    def for_docker(target: str | None = None) -> Logger:
        """Logger for container runtime calls."""
        return logger.bind(
            source="docker", tags=["docker", "runtime"], target=target or "-"
        )

    @staticmethod
    def for_command() -> Logger:
        """Logger for raw subprocess execution."""
        return logger.bind(source="command", tags=["command"])

    @staticmethod
    def for_storage() -> Logger:
        """Logger for snapshot repository and filesystem work."""
        return logger.bind(source="storage", tags=["storage"])

    @staticmethod
    def for_run(mode: str) -> Logger:
        """Logger for the controller summary lines."""
        return logger.bind(source="run", tags=["run", mode])
