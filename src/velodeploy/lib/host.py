"""Host facts used by the deployment steps."""

from __future__ import annotations

import platform
import shutil
from pathlib import Path

ARCH_ALIASES: dict[str, str] = {
    "arm64": "arm64",
    "aarch64": "arm64",
    "x86_64": "amd64",
    "amd64": "amd64",
}


def host_architecture() -> str:
    """Return the normalised CPU architecture of this host.

    Returns:
        ``"arm64"`` or ``"amd64"`` for known machines, otherwise the lowercased
        value reported by :func:`platform.machine`.
    """
    machine = platform.machine().lower()
    return ARCH_ALIASES.get(machine, machine)


def available_disk_space(path: Path) -> int:
    """Return free bytes on the volume holding ``path``.

    The path does not need to exist yet: the nearest existing ancestor is
    measured instead. Returns 0 when nothing along the path can be queried.
    """
    candidate = path
    while not candidate.exists():
        if candidate.parent == candidate:
            return 0
        candidate = candidate.parent
    try:
        return shutil.disk_usage(candidate).free
    except OSError:
        return 0
