"""
Single-flight execution of compiled units.

Units run on a dedicated execution thread (a one-worker thread pool) so a
runaway unit can be interrupted without touching the caller's thread. At most
one unit is in flight; a second concurrent `execute` is refused.

Interruption is cooperative (see `cancellation`). A unit stuck in native code
never reaches a checkpoint; once the grace period after cancellation expires,
its thread is abandoned and a fresh execution thread takes over. Abandoned
threads are pool workers, not daemon threads: one still stuck in native code
also delays interpreter shutdown until it returns.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from .cancellation import CancellationToken, ExecutionInterrupted, checkpoints
from .config import ExecutionConfig
from .session import CompiledUnit
from .types import ConcurrentExecutionError, Interrupted, RuntimeFailure

logger = logging.getLogger(__name__)


@dataclass
class RawCompletion:
    """Uninterpreted result of a unit that ran to the end."""

    has_value: bool
    value: Any = None
    execution_time_ms: float = 0.0


class ExecutionSerializer:
    """
    Runs compiled units one at a time on the execution thread.

    `invoking` and `invoke_thread` describe the invocation in flight; they
    are what `interrupt` uses to reach it.
    """

    def __init__(self, config: ExecutionConfig | None = None, filename_prefix: str = "<shell"):
        self.config = config or ExecutionConfig()
        self.filename_prefix = filename_prefix

        self._gate = threading.Lock()
        self._invoking = threading.Event()
        self._invoke_thread: threading.Thread | None = None
        self._token: CancellationToken | None = None
        self._pool: ThreadPoolExecutor | None = None
        self._abandoned = 0

    @property
    def invoking(self) -> bool:
        return self._invoking.is_set()

    @property
    def invoke_thread(self) -> threading.Thread | None:
        return self._invoke_thread

    @property
    def abandoned_threads(self) -> int:
        return self._abandoned

    def _executor(self) -> ThreadPoolExecutor:
        if self._pool is None:
            self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="liveshell-exec")
        return self._pool

    def execute(self, unit: CompiledUnit) -> RawCompletion | Interrupted | RuntimeFailure:
        """
        Invoke `unit` on the execution thread and wait for it.

        Returns:
            RawCompletion, Interrupted or RuntimeFailure; user exceptions never
            propagate

        Raises:
            ConcurrentExecutionError: If another execution is in flight
        """
        if not self._gate.acquire(blocking=False):
            raise ConcurrentExecutionError()
        try:
            token = CancellationToken()
            self._token = token
            future = self._executor().submit(self._invoke, unit, token)
            return self._await(future, token, unit)
        finally:
            self._token = None
            self._gate.release()

    def interrupt(self, reason: str = "requested") -> bool:
        """
        Request cancellation of the invocation in flight.

        Returns:
            False if nothing was invoking
        """
        token = self._token
        if token is None or not self._invoking.is_set():
            return False
        logger.debug("Interrupting %s (%s)", self._invoke_thread, reason)
        token.cancel(reason)
        return True

    def shutdown(self) -> None:
        token = self._token
        if token is not None:
            token.cancel("shutdown")
        if self._pool is not None:
            self._pool.shutdown(wait=False)
            self._pool = None

    @contextmanager
    def _invocation(self) -> Iterator[None]:
        current = threading.current_thread()
        self._invoke_thread = current
        self._invoking.set()
        try:
            yield
        finally:
            # an abandoned thread finishing late must not clear a newer invocation
            if self._invoke_thread is current:
                self._invoking.clear()

    def _invoke(self, unit: CompiledUnit, token: CancellationToken) -> RawCompletion | Interrupted | RuntimeFailure:
        start_time = time.time()
        with self._invocation():
            try:
                with checkpoints(token, self.filename_prefix):
                    has_value, value = unit.invoke()
            except ExecutionInterrupted as e:
                return Interrupted(reason=e.reason, source=unit.source)
            except KeyboardInterrupt:
                return Interrupted(reason="keyboard", source=unit.source)
            except BaseException as e:
                # SystemExit, GeneratorExit and user BaseException subclasses included
                return RuntimeFailure(error=f"{type(e).__name__}: {e}", exception=e, source=unit.source)
        execution_time = (time.time() - start_time) * 1000
        return RawCompletion(has_value=has_value, value=value, execution_time_ms=execution_time)

    def _await(
        self,
        future: Future,
        token: CancellationToken,
        unit: CompiledUnit,
    ) -> RawCompletion | Interrupted | RuntimeFailure:
        timeout = self.config.timeout_seconds
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            try:
                return future.result(timeout=self.config.poll_interval_seconds)
            except FutureTimeoutError:
                pass

            now = time.monotonic()
            if deadline is not None and now >= deadline and not token.is_cancelled:
                logger.warning("Execution of %s exceeded %.1fs, interrupting", unit.filename, timeout)
                token.cancel("timeout")

            if token.cancelled_at is not None and now - token.cancelled_at >= self.config.interrupt_grace_seconds:
                self._abandon(unit)
                return Interrupted(reason=token.reason, abandoned=True, source=unit.source)

    def _abandon(self, unit: CompiledUnit) -> None:
        logger.warning(
            "Execution thread %s did not stop after interruption of %s; abandoning it",
            self._invoke_thread,
            unit.filename,
        )
        self._abandoned += 1
        if self._pool is not None:
            self._pool.shutdown(wait=False)
        self._pool = None
        self._invoking.clear()
