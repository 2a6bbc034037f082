"""Runtime module for child process execution and output streaming.

This module provides process execution with line-by-line output delivery,
a bounded drain after exit and the environment handed to children.
"""

from __future__ import annotations

from .environment import EnvironmentCache, build_environment, machine_environment_cache
from .process_runner import (
    SilentProcessRunner,
    create_runner,
    execute_command,
    run_command,
    safely_get_exit_code,
)
from .stream_reader import DrainOutcome, ReaderState, StreamReader

__all__ = [
    "DrainOutcome",
    "EnvironmentCache",
    "ReaderState",
    "SilentProcessRunner",
    "StreamReader",
    "build_environment",
    "create_runner",
    "execute_command",
    "machine_environment_cache",
    "run_command",
    "safely_get_exit_code",
]
