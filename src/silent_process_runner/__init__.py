"""Silent Process Runner - run a command, stream its output, get its exit code.

Environment variables:
    SPR_DRAIN_TIMEOUT: Seconds to wait for trailing output (default 5.0)
    SPR_ENCODING: Output encoding (default utf-8)
    SPR_LOG_DEBUG: Debug log to a temp file (default false)

Usage:
    silent-process-runner /usr/bin/kubectl "version --client"
"""

__version__ = "0.1.0"

from .errors import (
    CommandFailedError,
    InvalidArgumentError,
    ProcessRunnerError,
    SpawnError,
    UnsupportedOperationError,
)
from .invocation import CommandLineInvocation, ExecutionResult
from .runtime import SilentProcessRunner, execute_command, run_command

__all__ = [
    "__version__",
    "CommandFailedError",
    "CommandLineInvocation",
    "ExecutionResult",
    "InvalidArgumentError",
    "ProcessRunnerError",
    "SilentProcessRunner",
    "SpawnError",
    "UnsupportedOperationError",
    "execute_command",
    "run_command",
]
