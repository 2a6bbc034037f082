"""Exception hierarchy for the process runner.

silent-process-runner v0.1.0
"""

from __future__ import annotations

from collections.abc import Iterable

__all__ = [
    "ProcessRunnerError",
    "InvalidArgumentError",
    "SpawnError",
    "CommandFailedError",
    "UnsupportedOperationError",
]


class ProcessRunnerError(Exception):
    """Base exception for the process runner."""
    pass


class InvalidArgumentError(ProcessRunnerError, ValueError):
    """A required parameter was None.

    Attributes:
        name: Name of the missing parameter
    """

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"{name} must not be None")


class SpawnError(ProcessRunnerError):
    """The child process could not be created or configured.

    The original exception is available as ``cause`` and ``__cause__``.

    Attributes:
        executable: Executable that was attempted
        cause: Underlying exception
    """

    def __init__(self, executable: str, cause: BaseException) -> None:
        self.executable = executable
        self.cause = cause
        super().__init__(f"Error when attempting to execute {executable}: {cause}")


class CommandFailedError(ProcessRunnerError):
    """A command exited with a non-zero exit code.

    Attributes:
        exit_code: Exit code of the command
        errors: Captured stderr lines, in arrival order
    """

    base_message = "Command failed."

    def __init__(self, exit_code: int, errors: Iterable[str] = ()) -> None:
        self.exit_code = exit_code
        self.errors = list(errors)
        super().__init__(self._render())

    def _render(self) -> str:
        message = f"{self.base_message} Exit code: {self.exit_code}"
        if self.errors:
            message += "\n" + "\n".join(self.errors)
        return message


class UnsupportedOperationError(ProcessRunnerError, NotImplementedError):
    """The requested execution mode is not available on this platform."""
    pass
