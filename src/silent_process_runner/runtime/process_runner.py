"""Process runner with line streaming and a bounded output drain.

silent-process-runner runtime module v0.1.0

This module provides:
- Child process creation without a shell and without a visible window
- Stdout/stderr streamed line by line to caller-supplied sinks
- A bounded wait for trailing output after the process exits
- Defensive exit code reading (-1 when unavailable)
- A fire-and-forget variant that neither waits nor captures output

Key design points:
- The wait for process exit is unbounded; only the trailing-output drain
  is bounded (drain_timeout, 5 seconds by default)
- A cancel signal only shortens the drain, it never kills the child
- Sinks are called from reader threads, one thread per stream
"""

from __future__ import annotations

import functools
import logging
import ntpath
import os
import posixpath
import shlex
import subprocess
import sys
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import anyio.to_thread

from ..config import (
    DEFAULT_DRAIN_TIMEOUT,
    DEFAULT_ENCODING,
    DEFAULT_MACHINE_ENV_FILE,
    Config,
    get_config,
)
from ..errors import InvalidArgumentError, SpawnError, UnsupportedOperationError
from ..invocation import CommandLineInvocation, ExecutionResult
from .environment import (
    EnvironmentCache,
    build_environment,
    machine_environment_cache,
)
from .stream_reader import (
    CancelSignal,
    DrainOutcome,
    LineSink,
    ReaderState,
    StreamReader,
)

__all__ = [
    "SilentProcessRunner",
    "create_runner",
    "execute_command",
    "run_command",
    "safely_get_exit_code",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Returned when the exit code cannot be read
UNKNOWN_EXIT_CODE = -1


def _discard(_: str) -> None:
    pass


def _notify(sink: LineSink, message: str) -> None:
    """Deliver a diagnostic after the process has exited, never raising."""
    try:
        sink(message)
    except Exception as e:
        logger.debug(f"Debug sink raised while handling {message!r}: {e!r}")


def _normalize_dir(path: str) -> str:
    return path.rstrip("\\/").lower()


def _executable_display_name(executable: str, working_directory: str) -> tuple[str, str]:
    """Pick the bare file name or the full path for diagnostics.

    The bare name is only used when the executable lives in the working
    directory, so messages never suggest a different location.

    Returns:
        Tuple of (executable directory, name or full path)
    """
    pathmod = ntpath if IS_WINDOWS else posixpath
    directory = pathmod.dirname(executable)
    same_dir = _normalize_dir(directory) == _normalize_dir(working_directory)
    return directory, pathmod.basename(executable) if same_dir else executable


def _build_argv(executable: str, arguments: str) -> list[str] | str:
    """Turn the pre-formed argument string into something Popen accepts.

    Windows takes the command line as-is. Elsewhere the string is split
    into words with shlex; nothing is expanded.
    """
    if IS_WINDOWS:
        return f'"{executable}" {arguments}'.rstrip()
    return [executable, *shlex.split(arguments)]


def safely_get_exit_code(process: subprocess.Popen[Any] | None) -> int:
    """Read the exit code without raising.

    Args:
        process: The child process, or None if it is no longer available

    Returns:
        The exit code; -1 when there is no process or it has not reported
        an exit status; 128 + N when a POSIX child was killed by signal N
    """
    if process is None:
        return UNKNOWN_EXIT_CODE
    code = process.returncode
    if code is None:
        return UNKNOWN_EXIT_CODE
    if code < 0 and not IS_WINDOWS:
        return 128 - code
    return code


@dataclass
class SilentProcessRunner:
    """Run a child process and stream its output to sinks.

    Example:
        runner = SilentProcessRunner()
        exit_code = runner.execute(
            "/usr/bin/kubectl",
            "version --output=yaml --client",
            "/workspace",
            debug=log.debug,
            info=print,
            error=errors.append,
        )

        result = runner.execute_invocation(
            CommandLineInvocation("git", "status --short"), "/repo"
        )
        result.validate()

    Attributes:
        drain_timeout: Seconds to wait for each stream after exit
        encoding: Encoding used to decode output (errors are replaced)
        inherit_machine_environment: Put machine-level variables under the
            process environment of the child
        environment_cache: Source of machine-level variables
    """

    drain_timeout: float = DEFAULT_DRAIN_TIMEOUT
    encoding: str = DEFAULT_ENCODING
    inherit_machine_environment: bool = False
    environment_cache: EnvironmentCache = field(
        default_factory=lambda: machine_environment_cache
    )

    def execute(
        self,
        executable: str,
        arguments: str,
        working_directory: str | os.PathLike[str],
        debug: LineSink,
        info: LineSink,
        error: LineSink,
        environment: Mapping[str, str] | None = None,
        cancel: CancelSignal | None = None,
    ) -> int:
        """Run a process to completion.

        This method:
        1. Spawns the process with stdout/stderr redirected
        2. Starts one reader thread per stream
        3. Blocks until the process exits (no timeout)
        4. Cancels the readers and drains trailing output, bounded by
           drain_timeout per stream and shortened by ``cancel``
        5. Returns the exit code

        Args:
            executable: Executable path or name
            arguments: Pre-formed argument string, never shell-interpreted
            working_directory: Directory to start the process in
            debug: Receives runner diagnostics
            info: Receives stdout lines
            error: Receives stderr lines and sink failure reports
            environment: Variables added to or overwriting the inherited ones
            cancel: Signal that ends the trailing-output wait early

        Returns:
            The exit code (-1 if it could not be determined)

        Raises:
            InvalidArgumentError: If a required argument is None
            SpawnError: If the process could not be created
        """
        for name, value in (
            ("executable", executable),
            ("arguments", arguments),
            ("working_directory", working_directory),
            ("debug", debug),
            ("info", info),
            ("error", error),
        ):
            if value is None:
                raise InvalidArgumentError(name)

        working_directory = os.fspath(working_directory)

        try:
            executable_dir, display_name = _executable_display_name(
                executable, working_directory
            )
            debug(f"Executable directory is {executable_dir}")
            debug(f"Executable name or full path: {display_name}")

            env = self._build_environment(environment)
            process = subprocess.Popen(
                _build_argv(executable, arguments),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=working_directory,
                env=env,
                encoding=self.encoding,
                errors="replace",
                **self._platform_kwargs(),
            )
            logger.debug(
                f"Started subprocess pid={process.pid} "
                f"executable={display_name} cwd={working_directory}"
            )

            stdout_reader = StreamReader("stdout", process.stdout, info, error)
            stderr_reader = StreamReader("stderr", process.stderr, error, error)
            stdout_reader.start()
            stderr_reader.start()
        except Exception as e:
            raise SpawnError(executable, e) from e

        process.wait()

        self._cancel_reader(stderr_reader, debug)
        self._cancel_reader(stdout_reader, debug)

        self._drain(stdout_reader, cancel, debug)
        self._drain(stderr_reader, cancel, debug)

        exit_code = safely_get_exit_code(process)
        _notify(
            debug,
            f"Process {display_name} in {working_directory} exited with code {exit_code}",
        )
        logger.debug(f"Subprocess completed pid={process.pid} exit_code={exit_code}")

        return exit_code

    def execute_without_debug(
        self,
        executable: str,
        arguments: str,
        working_directory: str | os.PathLike[str],
        info: LineSink,
        error: LineSink,
        environment: Mapping[str, str] | None = None,
        cancel: CancelSignal | None = None,
    ) -> int:
        """Same as execute(), with diagnostics discarded."""
        return self.execute(
            executable,
            arguments,
            working_directory,
            _discard,
            info,
            error,
            environment=environment,
            cancel=cancel,
        )

    def execute_invocation(
        self,
        invocation: CommandLineInvocation,
        working_directory: str | os.PathLike[str] | None = None,
        *,
        environment: Mapping[str, str] | None = None,
        cancel: CancelSignal | None = None,
    ) -> ExecutionResult:
        """Run an invocation and collect its output.

        System arguments are appended to the invocation's arguments. The
        exit code is not validated; call ``result.validate()`` or use
        run_invocation().

        Args:
            invocation: What to run
            working_directory: Defaults to the current directory
            environment: Extra environment variables
            cancel: Signal that ends the trailing-output wait early

        Returns:
            ExecutionResult with the exit code and captured lines
        """
        if invocation is None:
            raise InvalidArgumentError("invocation")
        if working_directory is None:
            working_directory = os.getcwd()

        infos: list[str] = []
        errors: list[str] = []

        exit_code = self.execute_without_debug(
            invocation.executable,
            invocation.command_arguments,
            working_directory,
            infos.append,
            errors.append,
            environment=environment,
            cancel=cancel,
        )

        return ExecutionResult(exit_code=exit_code, infos=infos, errors=errors)

    def run_invocation(
        self,
        invocation: CommandLineInvocation,
        working_directory: str | os.PathLike[str] | None = None,
        *,
        environment: Mapping[str, str] | None = None,
        cancel: CancelSignal | None = None,
    ) -> ExecutionResult:
        """Run an invocation and validate its exit code.

        Validation is skipped when ``invocation.ignore_failed_exit_code``
        is set.

        Raises:
            CommandFailedError: If the command failed and failures are not
                ignored
        """
        result = self.execute_invocation(
            invocation,
            working_directory,
            environment=environment,
            cancel=cancel,
        )
        if not invocation.ignore_failed_exit_code:
            result.validate()
        return result

    async def execute_async(
        self,
        invocation: CommandLineInvocation,
        working_directory: str | os.PathLike[str] | None = None,
        *,
        environment: Mapping[str, str] | None = None,
        cancel: CancelSignal | None = None,
    ) -> ExecutionResult:
        """Awaitable execute_invocation() running on a worker thread.

        The blocking call runs to completion even if the awaiting task is
        cancelled; pass ``cancel`` to shorten the drain instead.
        """
        return await anyio.to_thread.run_sync(
            functools.partial(
                self.execute_invocation,
                invocation,
                working_directory,
                environment=environment,
                cancel=cancel,
            )
        )

    def execute_without_waiting(
        self,
        executable: str,
        arguments: str,
        working_directory: str | os.PathLike[str],
        run_as: Any = None,
        environment: Mapping[str, str] | None = None,
    ) -> int:
        """Start a process and return immediately.

        Output is not redirected or captured and the exit code is never
        read. The child is reaped by a background thread.

        Args:
            executable: Executable path or name
            arguments: Pre-formed argument string
            working_directory: Directory to start the process in
            run_as: Credentials of another user; not supported
            environment: Extra environment variables

        Returns:
            The child's pid

        Raises:
            UnsupportedOperationError: If run_as is given
            SpawnError: If the process could not be created
        """
        if run_as is not None:
            raise UnsupportedOperationError(
                "Running a process as a different user is not supported on this platform."
            )

        try:
            kwargs = self._platform_kwargs()
            if not IS_WINDOWS:
                kwargs["start_new_session"] = True
            process = subprocess.Popen(
                _build_argv(executable, arguments),
                stdin=subprocess.DEVNULL,
                cwd=os.fspath(working_directory),
                env=self._build_environment(environment),
                **kwargs,
            )
        except Exception as e:
            raise SpawnError(executable, e) from e

        threading.Thread(
            target=process.wait,
            name=f"spr-reap-{process.pid}",
            daemon=True,
        ).start()
        logger.debug(f"Started detached subprocess pid={process.pid} executable={executable}")
        return process.pid

    def _build_environment(self, overrides: Mapping[str, str] | None) -> dict[str, str]:
        machine = self.environment_cache.get() if self.inherit_machine_environment else None
        return build_environment(overrides, machine=machine)

    def _platform_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}
        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW
        return kwargs

    def _cancel_reader(self, reader: StreamReader, debug: LineSink) -> None:
        previous = reader.cancel()
        if previous is not ReaderState.READING:
            _notify(debug, f"Skipping cancel of {reader.name} reader: {previous.value}.")

    def _drain(
        self,
        reader: StreamReader,
        cancel: CancelSignal | None,
        debug: LineSink,
    ) -> None:
        outcome = reader.wait(self.drain_timeout, cancel)
        if outcome is DrainOutcome.CANCELLED:
            _notify(
                debug,
                f"Swallowing cancellation while waiting for last of the {reader.name} output.",
            )
        elif outcome is DrainOutcome.TIMED_OUT:
            _notify(
                debug,
                f"Gave up waiting for last of the {reader.name} output "
                f"after {self.drain_timeout}s.",
            )
            logger.warning(
                f"{reader.name} still open {self.drain_timeout}s after process exit; "
                f"continuing without it"
            )


def create_runner(config: Config | None = None) -> SilentProcessRunner:
    """Build a runner from configuration (the global config by default)."""
    config = config or get_config()
    if config.machine_env_file == DEFAULT_MACHINE_ENV_FILE:
        cache = machine_environment_cache
    else:
        cache = EnvironmentCache(config.machine_env_file)
    return SilentProcessRunner(
        drain_timeout=config.drain_timeout,
        encoding=config.encoding,
        inherit_machine_environment=config.inherit_machine_env,
        environment_cache=cache,
    )


# Convenience functions for simple use cases
def execute_command(
    executable: str,
    arguments: str,
    working_directory: str | os.PathLike[str],
    info: LineSink,
    error: LineSink,
    *,
    debug: LineSink = _discard,
    environment: Mapping[str, str] | None = None,
    cancel: CancelSignal | None = None,
) -> int:
    """Run a command with a configured runner and return its exit code."""
    return create_runner().execute(
        executable,
        arguments,
        working_directory,
        debug,
        info,
        error,
        environment=environment,
        cancel=cancel,
    )


def run_command(
    executable: str,
    arguments: str = "",
    working_directory: str | os.PathLike[str] | None = None,
    *,
    system_arguments: str | None = None,
    ignore_failed_exit_code: bool = False,
    environment: Mapping[str, str] | None = None,
) -> ExecutionResult:
    """Run a command, collect its output and validate the exit code.

    Raises:
        CommandFailedError: On a non-zero exit code unless
            ignore_failed_exit_code is set
    """
    invocation = CommandLineInvocation(
        executable,
        arguments,
        system_arguments=system_arguments,
        ignore_failed_exit_code=ignore_failed_exit_code,
    )
    return create_runner().run_invocation(
        invocation, working_directory, environment=environment
    )
