"""
Caller-facing evaluation engine.

`ShellEngine.evaluate` runs one full cycle: normalize, compile against the
session, execute on the execution thread, capture the result. Every failure
is turned into an outcome; nothing raised inside a cycle reaches the caller.

Usage:
    from liveshell import ShellEngine

    with ShellEngine() as engine:
        engine.evaluate("x: int = 5")
        engine.evaluate("=x*2")          # Completed(value=10)
        engine.snapshot_bindings()       # [BindingInfo(name='x', ...)]
"""

from __future__ import annotations

import difflib
import logging
import threading
import time
import traceback

from .capture import ResultCapture
from .config import ShellConfig
from .diagnostics import DiagnosticReporter, from_exception
from .executor import ExecutionSerializer
from .helpers import ShellHelpers
from .host import (
    HostLog,
    LoggingHostLog,
    NullReloadLock,
    PrettyPrinter,
    ReferenceModuleProvider,
    ReloadLock,
    ReprPrinter,
    held,
)
from .introspection import SessionIntrospection
from .preprocessor import normalize
from .session import CompiledUnit, SessionEnvironment
from .types import (
    BindingInfo,
    BootstrapReport,
    CompileFailure,
    Diagnostic,
    DiagnosticCode,
    EvaluationOutcome,
    HistoryEntry,
    Incomplete,
    InternalFault,
    Interrupted,
    RuntimeFailure,
    Severity,
)

logger = logging.getLogger(__name__)


class ShellEngine:
    """
    Interactive evaluation engine bound to one session.

    The engine owns its session explicitly: `open()` bootstraps it,
    `close()` tears it down. Only one evaluate cycle runs at a time; a
    concurrent caller gets an InternalFault instead of waiting.
    """

    def __init__(
        self,
        config: ShellConfig | None = None,
        host_log: HostLog | None = None,
        module_provider: ReferenceModuleProvider | None = None,
        reload_lock: ReloadLock | None = None,
        printer: PrettyPrinter | None = None,
        helper_type: type | None = ShellHelpers,
    ):
        self.config = config or ShellConfig()
        self.host_log = host_log or LoggingHostLog()
        self.reload_lock = reload_lock or NullReloadLock()
        self.printer = printer or ReprPrinter()

        self.reporter = DiagnosticReporter(self.host_log)
        self.session = SessionEnvironment(
            config=self.config.session,
            reporter=self.reporter,
            module_provider=module_provider,
            helper_type=helper_type,
        )
        self.executor = ExecutionSerializer(
            self.config.execution,
            filename_prefix=self.config.session.filename_prefix,
        )
        self.capture = ResultCapture(self.printer, self.reporter, self.config.output)
        self.introspection = SessionIntrospection(self.session, self.printer)

        self._cycle = threading.Lock()
        self.history: list[HistoryEntry] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> BootstrapReport:
        """Bootstrap the session."""
        with held(self.reload_lock):
            return self.session.bootstrap()

    def reload(self) -> BootstrapReport:
        """Bootstrap again, e.g. after the host reloaded its modules."""
        with held(self.reload_lock):
            return self.session.bootstrap()

    def close(self) -> None:
        self.executor.shutdown()
        self.session.close()

    def __enter__(self) -> ShellEngine:
        self.open()
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self.session.is_open

    @property
    def executing(self) -> bool:
        return self.executor.invoking

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(self, raw: str) -> EvaluationOutcome:
        """
        Evaluate one fragment.

        Args:
            raw: Fragment as typed; ``=expr`` is calculator input

        Returns:
            Incomplete, CompileFailure, Interrupted, RuntimeFailure,
            Completed or InternalFault
        """
        start_time = time.time()
        if not self._cycle.acquire(blocking=False):
            message = "Evaluation refused: another evaluation is already in flight"
            self.reporter.report(
                Diagnostic(code=DiagnosticCode.INTERNAL_FAULT, severity=Severity.ERROR, message=message)
            )
            return InternalFault(error=message, source=raw)

        try:
            with held(self.reload_lock):
                outcome = self._run_cycle(raw)
        except BaseException as e:
            logger.exception("Unexpected failure evaluating fragment")
            self.reporter.report(from_exception(e))
            outcome = InternalFault(error=f"{type(e).__name__}: {e}", source=raw)
        finally:
            self._cycle.release()

        self._record(outcome, start_time)
        return outcome

    def _run_cycle(self, raw: str) -> EvaluationOutcome:
        text = normalize(raw)
        compiled = self.session.compile(text)

        if isinstance(compiled, Incomplete):
            return compiled
        if isinstance(compiled, CompileFailure):
            self.reporter.report_all(compiled.diagnostics)
            return compiled
        if not isinstance(compiled, CompiledUnit):
            message = f"Compilation of {text!r} produced no unit and no error"
            self.reporter.report(
                Diagnostic(code=DiagnosticCode.INTERNAL_FAULT, severity=Severity.ERROR, message=message)
            )
            return InternalFault(error=message, source=text)

        self.reporter.report_all(compiled.diagnostics)
        result = self.executor.execute(compiled)

        if isinstance(result, Interrupted):
            self.reporter.report(
                Diagnostic(
                    code=DiagnosticCode.INTERRUPTED,
                    severity=Severity.ERROR,
                    message=f"Interrupted! ({result.reason})",
                )
            )
            return result
        if isinstance(result, RuntimeFailure):
            result.error = self._describe_failure(result.exception)
            self.reporter.report(
                Diagnostic(code=DiagnosticCode.RUNTIME_ERROR, severity=Severity.ERROR, message=result.error)
            )
            return result

        completed = self.capture.capture(result, source=text)
        if completed.rendered is not None and self.config.output.echo_results:
            self.host_log.log_info(completed.rendered)
        return completed

    def interrupt(self) -> bool:
        """
        Interrupt the fragment currently executing.

        Returns:
            False if nothing was executing
        """
        return self.executor.interrupt("requested")

    def snapshot_bindings(self) -> list[BindingInfo]:
        """Copy of the session's bindings, in declaration order."""
        return self.introspection.snapshot()

    def _describe_failure(self, error: BaseException | None) -> str:
        """Traceback limited to shell frames, with name suggestions."""
        if error is None:
            return "Unknown error"
        prefix = self.config.session.filename_prefix
        frames = [
            frame
            for frame in traceback.extract_tb(error.__traceback__)
            if frame.filename.startswith(prefix)
        ]
        lines = []
        if frames:
            lines.append("Traceback (most recent call last):\n")
            lines.extend(traceback.format_list(frames))
        lines.extend(traceback.format_exception_only(type(error), error))
        text = "".join(lines).rstrip()

        if isinstance(error, NameError) and error.name and "Did you mean" not in text:
            similar = self._similar_names(error.name)
            if similar:
                text += f"\n\nDid you mean: {', '.join(similar)}?"
        return text

    def _similar_names(self, name: str) -> list[str]:
        candidates = sorted(n for n in self.session.namespace if not n.startswith("_"))
        return difflib.get_close_matches(name, candidates, n=3, cutoff=0.6)

    def _record(self, outcome: EvaluationOutcome, start_time: float) -> None:
        self.history.append(
            HistoryEntry(
                source=outcome.source,
                kind=outcome.kind,
                elapsed_ms=(time.time() - start_time) * 1000,
            )
        )
        limit = self.config.output.history_limit
        if limit and len(self.history) > limit:
            del self.history[: len(self.history) - limit]

    def get_execution_history(self) -> list[HistoryEntry]:
        """Get evaluation history for debugging."""
        return self.history.copy()
