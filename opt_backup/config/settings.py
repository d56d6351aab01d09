"""Settings storage and resolution for a backup/restore run.

Values are layered: built-in defaults, then the JSON settings file, then
``OPT_BACKUP_*`` environment variables, then command-line overrides.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from opt_backup.domain import RestoreMode
from opt_backup.storage.exceptions import ConfigurationError


SETTINGS_PATH = Path(
    os.environ.get(
        "OPT_BACKUP_SETTINGS_PATH",
        Path.home() / ".config" / "opt-backup" / "settings.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_BACKUP_DIR = "./amnezia_opt_backups"
DEFAULT_CONTAINER_PREFIX = "amnezia"
DEFAULT_EXCLUDED_NAMES = ("amnezia-dns",)
DEFAULT_RETENTION_COUNT = 5
DEFAULT_ROLLBACK_RETENTION_COUNT = 3
DEFAULT_MIN_FREE_SPACE_MB = 100

DEFAULT_SETTINGS: dict[str, Any] = {
    "backup_dir": DEFAULT_BACKUP_DIR,
    "container_prefix": DEFAULT_CONTAINER_PREFIX,
    "excluded_names": list(DEFAULT_EXCLUDED_NAMES),
    "retention_count": DEFAULT_RETENTION_COUNT,
    "rollback_retention_count": DEFAULT_ROLLBACK_RETENTION_COUNT,
    "consistent_backup": False,
    "min_free_space_mb": DEFAULT_MIN_FREE_SPACE_MB,
    "restore_mode": RestoreMode.OVERLAY.value,
    "command_timeout_seconds": None,
}

# Environment variable -> (setting key, parser)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "OPT_BACKUP_DIR": ("backup_dir", "str"),
    "OPT_BACKUP_CONTAINER_PREFIX": ("container_prefix", "str"),
    "OPT_BACKUP_EXCLUDE": ("excluded_names", "list"),
    "OPT_BACKUP_RETENTION_COUNT": ("retention_count", "int"),
    "OPT_BACKUP_ROLLBACK_RETENTION_COUNT": ("rollback_retention_count", "int"),
    "OPT_BACKUP_CONSISTENT": ("consistent_backup", "bool"),
    "OPT_BACKUP_MIN_FREE_SPACE_MB": ("min_free_space_mb", "int"),
    "OPT_BACKUP_RESTORE_MODE": ("restore_mode", "str"),
    "OPT_BACKUP_COMMAND_TIMEOUT": ("command_timeout_seconds", "float"),
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass
class SettingsStore:
    values: dict[str, Any] = field(default_factory=dict)


settings_store = SettingsStore()


def load_settings(path: Optional[Path] = None) -> None:
    settings_store.values = dict(DEFAULT_SETTINGS)
    path = path or SETTINGS_PATH
    if not path.exists():
        return
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return
    if isinstance(data, dict):
        settings_store.values.update(data)


def get_setting(key: str, default: Any | None = None) -> Any:
    return settings_store.values.get(key, default)


def _parse_env_value(key: str, raw: str, kind: str) -> Any:
    if kind == "str":
        return raw
    if kind == "list":
        return [item.strip() for item in raw.split(",") if item.strip()]
    if kind == "bool":
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ConfigurationError(key, f"expected a boolean, got {raw!r}")
    try:
        return int(raw) if kind == "int" else float(raw)
    except ValueError:
        raise ConfigurationError(key, f"expected a number, got {raw!r}") from None


def env_overrides(environ: Optional[Mapping[str, str]] = None) -> dict[str, Any]:
    """Collect settings supplied through ``OPT_BACKUP_*`` variables."""
    environ = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    for variable, (key, kind) in ENV_OVERRIDES.items():
        raw = environ.get(variable)
        if raw is None:
            continue
        overrides[key] = _parse_env_value(key, raw, kind)
    return overrides


@dataclass(frozen=True)
class BackupSettings:
    """Resolved, validated configuration for one run."""

    backup_dir: Path = Path(DEFAULT_BACKUP_DIR)
    container_prefix: str = DEFAULT_CONTAINER_PREFIX
    excluded_names: tuple[str, ...] = DEFAULT_EXCLUDED_NAMES
    retention_count: int = DEFAULT_RETENTION_COUNT
    rollback_retention_count: int = DEFAULT_ROLLBACK_RETENTION_COUNT
    consistent_backup: bool = False
    min_free_space_mb: int = DEFAULT_MIN_FREE_SPACE_MB
    restore_mode: RestoreMode = RestoreMode.OVERLAY
    command_timeout_seconds: Optional[float] = None

    @property
    def min_free_space_bytes(self) -> int:
        return self.min_free_space_mb * 1024 * 1024

    def validate(self) -> None:
        """Raise ConfigurationError for values the lifecycle cannot work with."""
        if not self.container_prefix:
            raise ConfigurationError("container_prefix", "must not be empty")
        if self.retention_count < 1:
            raise ConfigurationError("retention_count", "must be at least 1")
        if self.rollback_retention_count < 1:
            raise ConfigurationError("rollback_retention_count", "must be at least 1")
        if self.min_free_space_mb < 0:
            raise ConfigurationError("min_free_space_mb", "must not be negative")
        if self.command_timeout_seconds is not None and self.command_timeout_seconds <= 0:
            raise ConfigurationError("command_timeout_seconds", "must be positive")

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> BackupSettings:
        """Build settings from a merged dict, coercing types."""
        merged = dict(DEFAULT_SETTINGS)
        merged.update({key: value for key, value in values.items() if value is not None})
        try:
            restore_mode = RestoreMode(str(merged["restore_mode"]).lower())
        except ValueError:
            raise ConfigurationError(
                "restore_mode",
                f"expected one of {[mode.value for mode in RestoreMode]}, "
                f"got {merged['restore_mode']!r}",
            ) from None
        excluded = merged["excluded_names"]
        if isinstance(excluded, str):
            excluded = [excluded]
        consistent = merged["consistent_backup"]
        if isinstance(consistent, str):
            consistent = _parse_env_value("consistent_backup", consistent, "bool")
        timeout = merged["command_timeout_seconds"]
        try:
            settings = cls(
                backup_dir=Path(merged["backup_dir"]),
                container_prefix=str(merged["container_prefix"]),
                excluded_names=tuple(excluded),
                retention_count=int(merged["retention_count"]),
                rollback_retention_count=int(merged["rollback_retention_count"]),
                consistent_backup=bool(consistent),
                min_free_space_mb=int(merged["min_free_space_mb"]),
                restore_mode=restore_mode,
                command_timeout_seconds=float(timeout) if timeout is not None else None,
            )
        except (TypeError, ValueError) as error:
            raise ConfigurationError("settings", str(error)) from None
        settings.validate()
        return settings


def resolve_settings(
    cli_overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> BackupSettings:
    """Merge the loaded settings file, environment and CLI into BackupSettings."""
    values: dict[str, Any] = dict(settings_store.values or DEFAULT_SETTINGS)
    values.update(env_overrides(environ))
    if cli_overrides:
        values.update({key: value for key, value in cli_overrides.items() if value is not None})
    return BackupSettings.from_mapping(values)


load_settings()
