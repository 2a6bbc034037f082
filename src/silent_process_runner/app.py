"""Silent Process Runner command line entry point.

Runs one command, echoes its stdout/stderr as the lines arrive and exits
with the command's exit code. Unlike a caller that only collects output, a
failing command is always reported unless --ignore-failed-exit-code is set.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Sequence

from .config import Config, get_config
from .errors import CommandFailedError, SpawnError
from .invocation import CommandLineInvocation, ExecutionResult
from .runtime import create_runner

__all__ = ["configure_logging", "main"]

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Conventional shell exit code for a command that could not be started
SPAWN_FAILED_EXIT_CODE = 127


def configure_logging(config: Config, verbose: bool = False) -> None:
    """Configure log output.

    With SPR_LOG_DEBUG the log goes to a temp file at DEBUG level, otherwise
    to stderr at INFO (DEBUG with ``verbose``). Third-party loggers stay at
    WARNING.
    """
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
        force=True,
    )
    logging.getLogger("silent_process_runner").setLevel(log_level)


def _parse_env_pairs(parser: argparse.ArgumentParser, pairs: Sequence[str]) -> dict[str, str]:
    env: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            parser.error(f"--env expects KEY=VALUE, got {pair!r}")
        env[key] = value
    return env


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="silent-process-runner",
        description="Run a command without a shell and stream its output.",
    )
    parser.add_argument("executable", help="Executable path or name")
    parser.add_argument(
        "arguments",
        nargs="?",
        default="",
        help="Argument string, passed as one pre-formed string",
    )
    parser.add_argument("--cwd", default=None, help="Working directory (default: current)")
    parser.add_argument(
        "--env",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Environment variable for the command (repeatable)",
    )
    parser.add_argument(
        "--system-arguments",
        default=None,
        help="Extra arguments appended for direct execution",
    )
    parser.add_argument(
        "--ignore-failed-exit-code",
        action="store_true",
        help="Do not report a failing command; still exit with its exit code",
    )
    parser.add_argument(
        "--no-wait",
        action="store_true",
        help="Start the command and return immediately",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser


def _echo(stream):
    def write(line: str) -> None:
        print(line, file=stream, flush=True)
    return write


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point.

    Returns:
        Process exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    environment = _parse_env_pairs(parser, args.env)

    config = get_config()
    configure_logging(config, verbose=args.verbose)
    runner = create_runner(config)

    working_directory = args.cwd or os.getcwd()
    invocation = CommandLineInvocation(
        args.executable,
        args.arguments,
        system_arguments=args.system_arguments,
        ignore_failed_exit_code=args.ignore_failed_exit_code,
    )
    logger.debug(f"Running {invocation} in {working_directory} ({config})")

    try:
        if args.no_wait:
            pid = runner.execute_without_waiting(
                invocation.executable,
                invocation.command_arguments,
                working_directory,
                environment=environment,
            )
            logger.info(f"Started {invocation} as pid {pid}")
            return 0

        infos: list[str] = []
        errors: list[str] = []
        echo_out = _echo(sys.stdout)
        echo_err = _echo(sys.stderr)

        def on_info(line: str) -> None:
            infos.append(line)
            echo_out(line)

        def on_error(line: str) -> None:
            errors.append(line)
            echo_err(line)

        exit_code = runner.execute(
            invocation.executable,
            invocation.command_arguments,
            working_directory,
            logger.debug,
            on_info,
            on_error,
            environment=environment,
        )
    except SpawnError as e:
        print(f"silent-process-runner: {e}", file=sys.stderr)
        return SPAWN_FAILED_EXIT_CODE

    result = ExecutionResult(exit_code=exit_code, infos=infos, errors=errors)
    if invocation.ignore_failed_exit_code:
        if not result.succeeded:
            logger.info(f"Not reporting exit code {result.exit_code} of {invocation} as a failure")
        return result.exit_code

    try:
        result.validate()
    except CommandFailedError as e:
        # Error lines were already echoed
        print(f"silent-process-runner: {invocation}: {e.base_message} Exit code: {e.exit_code}",
              file=sys.stderr)
        return e.exit_code if e.exit_code > 0 else 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
