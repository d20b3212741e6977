"""
Result capture: turns a finished execution into a `Completed` outcome.
"""

from __future__ import annotations

from typing import Any

from .config import OutputConfig
from .diagnostics import DiagnosticReporter, from_exception
from .executor import RawCompletion
from .helpers import ShellMessage
from .host import PrettyPrinter
from .types import Completed, DiagnosticCode


class ResultCapture:
    """
    Decides whether a unit produced a value and renders it.

    A broken ``__repr__`` on a user type must not take the engine down, so
    formatting errors are reported as diagnostics and kept on the outcome.
    """

    def __init__(
        self,
        printer: PrettyPrinter,
        reporter: DiagnosticReporter,
        config: OutputConfig | None = None,
    ):
        self.printer = printer
        self.reporter = reporter
        self.config = config or OutputConfig()

    def capture(self, raw: RawCompletion, source: str = "") -> Completed:
        has_value = raw.has_value and raw.value is not None
        if not has_value:
            return Completed(has_value=False, execution_time_ms=raw.execution_time_ms, source=source)

        rendered = None
        format_error = None
        try:
            rendered = self.render(raw.value)
        except Exception as e:
            diagnostic = from_exception(e, code=DiagnosticCode.FORMAT_FAILED)
            format_error = diagnostic.message
            self.reporter.report(diagnostic)

        return Completed(
            has_value=True,
            value=raw.value,
            rendered=rendered,
            format_error=format_error,
            execution_time_ms=raw.execution_time_ms,
            source=source,
        )

    def render(self, value: Any) -> str:
        """
        Render a value for display.

        Raises:
            Exception: Whatever the pretty-printer or the value's repr raises
        """
        if isinstance(value, ShellMessage):
            text = value.msg
        else:
            text = self.printer.format(value, self.config.verbose_results)
        limit = self.config.max_value_chars
        if limit and len(text) > limit:
            text = text[:limit] + f"... [{len(text) - limit} more chars]"
        return text
