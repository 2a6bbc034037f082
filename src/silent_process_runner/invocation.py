"""Invocation and result types.

Describes what to run (CommandLineInvocation) and what came back
(ExecutionResult). Nothing here touches processes or threads.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .errors import CommandFailedError, InvalidArgumentError

__all__ = [
    "CommandLineInvocation",
    "ExecutionResult",
]


@dataclass(frozen=True)
class CommandLineInvocation:
    """A command to execute.

    Attributes:
        executable: Path or name of the executable
        arguments: Pre-formed argument string (may be empty)
        system_arguments: Extra arguments only used for direct execution,
            never when the invocation is exported for use elsewhere
        ignore_failed_exit_code: Skip exit code validation for this command
    """

    executable: str
    arguments: str
    system_arguments: str | None = None
    ignore_failed_exit_code: bool = False

    def __post_init__(self) -> None:
        if self.executable is None:
            raise InvalidArgumentError("executable")
        if self.arguments is None:
            raise InvalidArgumentError("arguments")

    @property
    def command_arguments(self) -> str:
        """Arguments passed to the process when executed directly."""
        if not self.system_arguments:
            return self.arguments
        if not self.arguments:
            return self.system_arguments
        return f"{self.arguments} {self.system_arguments}".rstrip()

    @property
    def exported_arguments(self) -> str:
        """Arguments written out when the invocation is exported."""
        return self.arguments

    def to_display_string(self) -> str:
        return f'"{self.executable}" {self.arguments}'

    def __str__(self) -> str:
        return self.to_display_string()


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one invocation.

    Built once, after the process has exited and its output has been
    drained (or the drain timed out).

    Attributes:
        exit_code: Exit code of the process (-1 if it could not be read)
        infos: Stdout lines in arrival order
        errors: Stderr lines in arrival order
    """

    exit_code: int
    infos: tuple[str, ...] = field(default_factory=tuple)
    errors: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        # Accept any iterable but store tuples
        object.__setattr__(self, "infos", tuple(self.infos))
        object.__setattr__(self, "errors", tuple(self.errors))

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    @property
    def stdout(self) -> str:
        return "\n".join(self.infos)

    @property
    def stderr(self) -> str:
        return "\n".join(self.errors)

    def validate(self) -> None:
        """Raise CommandFailedError if the exit code is non-zero.

        Raises:
            CommandFailedError: Carrying the exit code and the error lines
        """
        if self.exit_code != 0:
            raise CommandFailedError(self.exit_code, self.errors)
