"""
Cooperative cancellation of code running on the execution thread.

Cancellation is requested on a `CancellationToken` from any thread. The
execution thread notices it at its next checkpoint: a trace hook, installed
on that thread only while a unit runs, checks the token on every function
call and on every line executed inside shell-compiled code.
"""

from __future__ import annotations

import sys
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from types import FrameType
from typing import Any


class ExecutionInterrupted(BaseException):
    """
    Raised inside user code when its execution was cancelled.

    Derives from BaseException so a plain ``except Exception`` in user code
    does not swallow it.
    """

    def __init__(self, reason: str = "requested"):
        self.reason = reason
        super().__init__(f"Execution interrupted ({reason})")


class CancellationToken:
    """
    Token for checking and requesting cancellation.

    Thread-safe: `cancel` may be called from any thread.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason = "requested"
        self.cancelled_at: float | None = None

    def cancel(self, reason: str = "requested") -> None:
        """Request cancellation."""
        if self._event.is_set():
            return
        self.reason = reason
        self.cancelled_at = time.monotonic()
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        """Check if cancellation was requested."""
        return self._event.is_set()

    def check(self) -> None:
        """
        Check if cancelled and raise if so.

        Raises:
            ExecutionInterrupted: If cancellation was requested
        """
        if self._event.is_set():
            raise ExecutionInterrupted(self.reason)

    def wait(self, timeout: float | None = None) -> bool:
        """
        Wait for cancellation.

        Returns:
            True if cancelled, False if timeout
        """
        return self._event.wait(timeout)


@contextmanager
def checkpoints(token: CancellationToken, filename_prefix: str) -> Iterator[None]:
    """
    Install cancellation checkpoints on the current thread.

    Only frames whose code was compiled under `filename_prefix` get per-line
    checks; every other frame is checked once, when it is entered.
    """

    def local_trace(frame: FrameType, event: str, arg: Any) -> Any:
        if event == "line":
            token.check()
        return local_trace

    def global_trace(frame: FrameType, event: str, arg: Any) -> Any:
        token.check()
        if frame.f_code.co_filename.startswith(filename_prefix):
            return local_trace
        return None

    previous = sys.gettrace()
    sys.settrace(global_trace)
    try:
        yield
    finally:
        sys.settrace(previous)
