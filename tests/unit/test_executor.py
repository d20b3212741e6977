"""
Tests for single-flight execution on the execution thread.
"""

from __future__ import annotations

import threading
import time

import pytest

from liveshell.config import ExecutionConfig, SessionConfig
from liveshell.executor import ExecutionSerializer, RawCompletion
from liveshell.host import StaticModuleProvider
from liveshell.session import SessionEnvironment
from liveshell.types import ConcurrentExecutionError, Interrupted, RuntimeFailure


def wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return False


@pytest.fixture
def session():
    env = SessionEnvironment(
        config=SessionConfig(default_imports=()),
        module_provider=StaticModuleProvider([]),
    )
    env.bootstrap()
    return env


@pytest.fixture
def serializer():
    executor = ExecutionSerializer(
        ExecutionConfig(interrupt_grace_seconds=1.0, poll_interval_seconds=0.01)
    )
    yield executor
    executor.shutdown()


class TestExecute:
    """Tests for ExecutionSerializer.execute()."""

    def test_value(self, serializer, session):
        result = serializer.execute(session.compile("6 * 7"))

        assert isinstance(result, RawCompletion)
        assert result.has_value
        assert result.value == 42
        assert result.execution_time_ms >= 0

    def test_runs_off_caller_thread(self, serializer, session):
        """Units run on the dedicated execution thread."""
        result = serializer.execute(session.compile("import threading\nthreading.current_thread().name"))

        assert result.value.startswith("liveshell-exec")
        assert result.value != threading.current_thread().name

    def test_runtime_failure(self, serializer, session):
        result = serializer.execute(session.compile("raise ValueError('boom')"))

        assert isinstance(result, RuntimeFailure)
        assert isinstance(result.exception, ValueError)
        assert result.error == "ValueError: boom"

    def test_system_exit_is_runtime_failure(self, serializer, session):
        """SystemExit from user code does not stop the engine."""
        result = serializer.execute(session.compile("raise SystemExit(3)"))

        assert isinstance(result, RuntimeFailure)
        assert isinstance(result.exception, SystemExit)

    def test_not_invoking_when_idle(self, serializer, session):
        serializer.execute(session.compile("1"))

        assert not serializer.invoking
        assert serializer.interrupt() is False


class TestInterrupt:
    """Tests for interrupting a running unit."""

    def test_interrupt_infinite_loop(self, serializer, session):
        """A runaway loop stops at its next checkpoint."""
        results = []
        unit = session.compile("while True:\n    pass")
        worker = threading.Thread(target=lambda: results.append(serializer.execute(unit)))
        worker.start()

        assert wait_for(lambda: serializer.invoking)
        assert serializer.interrupt() is True
        worker.join(timeout=5)

        assert isinstance(results[0], Interrupted)
        assert results[0].reason == "requested"
        assert not results[0].abandoned
        assert serializer.execute(session.compile("1 + 1")).value == 2

    def test_interrupt_through_except_exception(self, serializer, session):
        """User code catching Exception cannot swallow the interruption."""
        results = []
        unit = session.compile("while True:\n    try:\n        pass\n    except Exception:\n        pass")
        worker = threading.Thread(target=lambda: results.append(serializer.execute(unit)))
        worker.start()

        assert wait_for(lambda: serializer.invoking)
        serializer.interrupt()
        worker.join(timeout=5)

        assert isinstance(results[0], Interrupted)

    def test_timeout(self, session):
        executor = ExecutionSerializer(
            ExecutionConfig(timeout_seconds=0.1, interrupt_grace_seconds=1.0, poll_interval_seconds=0.01)
        )
        try:
            result = executor.execute(session.compile("while True:\n    pass"))
        finally:
            executor.shutdown()

        assert isinstance(result, Interrupted)
        assert result.reason == "timeout"

    @pytest.mark.slow
    def test_abandon_stuck_thread(self, session):
        """A thread stuck in native code is abandoned after the grace period."""
        executor = ExecutionSerializer(
            ExecutionConfig(timeout_seconds=0.1, interrupt_grace_seconds=0.1, poll_interval_seconds=0.01)
        )
        try:
            result = executor.execute(session.compile("import time\ntime.sleep(1.0)"))
            after = executor.execute(session.compile("3"))
        finally:
            executor.shutdown()

        assert isinstance(result, Interrupted)
        assert result.abandoned
        assert executor.abandoned_threads == 1
        assert after.value == 3

    def test_concurrent_execute_refused(self, serializer, session):
        """A second execution while one is in flight is an error."""
        results = []
        unit = session.compile("while True:\n    pass")
        worker = threading.Thread(target=lambda: results.append(serializer.execute(unit)))
        worker.start()
        assert wait_for(lambda: serializer.invoking)

        try:
            with pytest.raises(ConcurrentExecutionError):
                serializer.execute(session.compile("1"))
        finally:
            serializer.interrupt()
            worker.join(timeout=5)

        assert isinstance(results[0], Interrupted)
