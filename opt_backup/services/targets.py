from __future__ import annotations

from fnmatch import fnmatchcase
from typing import Iterable, Protocol

from opt_backup.domain import ContainerState, Target


class ContainerLister(Protocol):
    def list_containers(self) -> list[tuple[str, ContainerState]]: ...


def is_excluded(name: str, patterns: Iterable[str]) -> bool:
    return any(fnmatchcase(name, pattern) for pattern in patterns)


def select_targets(
    containers: Iterable[tuple[str, ContainerState]],
    prefix: str,
    excluded: Iterable[str] = (),
) -> list[Target]:
    """Keep containers whose name starts with ``prefix`` and is not excluded.

    Runtime order is preserved and duplicate names are dropped.
    """
    patterns = tuple(excluded)
    targets: list[Target] = []
    seen: set[str] = set()
    for name, state in containers:
        if not name or name in seen:
            continue
        if not name.startswith(prefix) or is_excluded(name, patterns):
            continue
        targets.append(Target(name=name, state=state))
        seen.add(name)
    return targets


def discover_targets(
    runtime: ContainerLister, prefix: str, excluded: Iterable[str] = ()
) -> list[Target]:
    return select_targets(runtime.list_containers(), prefix, excluded)
