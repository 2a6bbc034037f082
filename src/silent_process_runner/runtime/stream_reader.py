"""Threaded line readers for redirected process streams.

Each StreamReader owns one pipe and one daemon thread. Lines are handed to
a sink in the order they were read. End of stream sets a completion event
that the runner waits on, with a bound, after the process has exited.

Cancellation and the drain wait report explicit states instead of raising,
because a reader that already finished (or never started) is the normal
case once the process is gone.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from enum import Enum
from typing import IO, Protocol

__all__ = [
    "CancelSignal",
    "DrainOutcome",
    "LineSink",
    "ReaderState",
    "StreamReader",
]

logger = logging.getLogger(__name__)

LineSink = Callable[[str], None]

# Granularity for noticing a cancel signal during the drain wait
POLL_INTERVAL = 0.05


class CancelSignal(Protocol):
    """Anything with ``is_set()``, e.g. ``threading.Event``."""

    def is_set(self) -> bool: ...


class ReaderState(str, Enum):
    """Lifecycle of a StreamReader."""

    NOT_STARTED = "not_started"
    READING = "reading"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DrainOutcome(str, Enum):
    """How a bounded drain wait ended."""

    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class StreamReader:
    """Read lines from a text stream on a background thread.

    Example:
        reader = StreamReader("stdout", process.stdout, on_line, on_failure)
        reader.start()
        process.wait()
        reader.cancel()
        outcome = reader.wait(5.0)

    Attributes:
        name: Stream name used in diagnostics ("stdout"/"stderr")
    """

    def __init__(
        self,
        name: str,
        stream: IO[str],
        sink: LineSink,
        on_sink_failure: LineSink,
    ) -> None:
        """Create a reader.

        Args:
            name: Stream name used in diagnostics
            stream: Text stream to read (a process pipe)
            sink: Receives each line without its terminator
            on_sink_failure: Receives a message when ``sink`` raises
        """
        self.name = name
        self._stream = stream
        self._sink = sink
        self._on_sink_failure = on_sink_failure

        self._state = ReaderState.NOT_STARTED
        self._state_lock = threading.Lock()
        self._detached = False
        self._done = threading.Event()
        self._thread: threading.Thread | None = None
        self.dropped_lines = 0

    @property
    def state(self) -> ReaderState:
        return self._state

    def start(self) -> None:
        """Start reading on a daemon thread."""
        with self._state_lock:
            if self._state is not ReaderState.NOT_STARTED:
                raise RuntimeError(f"{self.name} reader already started")
            self._state = ReaderState.READING

        self._thread = threading.Thread(
            target=self._read_loop,
            name=f"spr-{self.name}-reader",
            daemon=True,
        )
        self._thread.start()

    def cancel(self) -> ReaderState:
        """Request cancellation.

        Only a reader that is still reading moves to CANCELLED; lines keep
        flowing until the next wait() returns, after which they are dropped.

        Returns:
            The state observed when the request was made. Anything other
            than READING means there was nothing to cancel.
        """
        with self._state_lock:
            previous = self._state
            if previous is ReaderState.READING:
                self._state = ReaderState.CANCELLED
            return previous

    def wait(self, timeout: float, cancel: CancelSignal | None = None) -> DrainOutcome:
        """Wait for end of stream, at most ``timeout`` seconds.

        Args:
            timeout: Upper bound in seconds
            cancel: Optional signal that ends the wait early

        Returns:
            Why the wait ended. Never raises.
        """
        if self._state is ReaderState.NOT_STARTED:
            return DrainOutcome.COMPLETED

        deadline = time.monotonic() + timeout
        outcome = DrainOutcome.TIMED_OUT
        while True:
            if self._done.is_set():
                outcome = DrainOutcome.COMPLETED
                break
            if cancel is not None and cancel.is_set():
                outcome = DrainOutcome.CANCELLED
                break
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            self._done.wait(min(remaining, POLL_INTERVAL))

        if self._state is ReaderState.CANCELLED:
            self._detach()
        return outcome

    def _detach(self) -> None:
        # Does not wait for a sink call in progress; the next line is dropped
        with self._state_lock:
            self._detached = True

    def _read_loop(self) -> None:
        try:
            for line in iter(self._stream.readline, ""):
                self._deliver(line.rstrip("\r\n"))
        except (OSError, ValueError) as e:
            # Pipe closed underneath us
            logger.debug(f"{self.name} reader stopped: {e}")
        finally:
            self._close_stream()
            with self._state_lock:
                if self._state is ReaderState.READING:
                    self._state = ReaderState.COMPLETED
            self._done.set()
            if self.dropped_lines:
                logger.debug(
                    f"{self.name} reader dropped {self.dropped_lines} line(s) "
                    f"that arrived after the drain period"
                )

    def _close_stream(self) -> None:
        try:
            self._stream.close()
        except OSError as e:
            logger.debug(f"{self.name} stream close failed: {e}")

    def _deliver(self, line: str) -> None:
        with self._state_lock:
            detached = self._detached
        if detached:
            self.dropped_lines += 1
            return
        try:
            self._sink(line)
        except Exception as e:
            self._report_sink_failure(e)

    def _report_sink_failure(self, exc: Exception) -> None:
        try:
            self._on_sink_failure(f"Error occurred handling message: {exc!r}")
        except Exception as e:
            logger.debug(f"{self.name} failure sink raised as well: {e!r}")
