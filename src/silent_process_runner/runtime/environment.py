"""Child process environment construction.

The child always starts from the current process environment and the
caller's overrides are applied on top. Optionally, machine-level variables
(``/etc/environment`` on Linux) are layered underneath; those are read
through a process-wide cache because the file rarely changes.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType

from ..config import DEFAULT_MACHINE_ENV_FILE

__all__ = [
    "EnvironmentCache",
    "build_environment",
    "machine_environment_cache",
    "parse_environment_file",
]

logger = logging.getLogger(__name__)


def parse_environment_file(text: str) -> dict[str, str]:
    """Parse ``KEY=VALUE`` lines.

    Blank lines and ``#`` comments are skipped, an optional ``export``
    prefix is accepted, and matching surrounding quotes are removed.
    Lines without ``=`` are ignored.
    """
    variables: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        variables[key] = value
    return variables


class EnvironmentCache:
    """Lock-guarded cache of machine-level environment variables.

    ``get()`` returns a read-only snapshot and loads it on first use;
    ``invalidate()`` drops it so the next ``get()`` reloads. Loading and
    swapping the snapshot happen under one lock, so readers never see a
    partially built mapping.

    Example:
        cache = EnvironmentCache("/etc/environment")
        machine = cache.get()
        cache.invalidate()  # after the file changed
    """

    def __init__(self, path: str | Path = DEFAULT_MACHINE_ENV_FILE) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._snapshot: Mapping[str, str] | None = None

    def get(self) -> Mapping[str, str]:
        """Return the cached snapshot, loading it if needed."""
        snapshot = self._snapshot
        if snapshot is not None:
            return snapshot

        with self._lock:
            if self._snapshot is None:
                self._snapshot = MappingProxyType(self._load())
            return self._snapshot

    def invalidate(self) -> None:
        """Forget the snapshot; the next get() reloads it."""
        with self._lock:
            self._snapshot = None

    def _load(self) -> dict[str, str]:
        try:
            text = self.path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            logger.debug(f"Machine environment file not found: {self.path}")
            return {}
        except OSError as e:
            logger.warning(f"Could not read machine environment file {self.path}: {e}")
            return {}

        variables = parse_environment_file(text)
        logger.debug(f"Loaded {len(variables)} machine environment variable(s) from {self.path}")
        return variables


# Shared by every runner in the process
machine_environment_cache = EnvironmentCache()


def build_environment(
    overrides: Mapping[str, str] | None = None,
    machine: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Build the environment for a child process.

    Args:
        overrides: Variables to add or overwrite
        machine: Machine-level variables placed under the process environment

    Returns:
        A fresh dict; inherited variables are never removed
    """
    env: dict[str, str] = dict(machine) if machine else {}
    env.update(os.environ)
    if overrides:
        for key, value in overrides.items():
            env[key] = value
    return env
