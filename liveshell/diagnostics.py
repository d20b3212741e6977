"""
Diagnostic classification and forwarding to the host console.

Codes 433 and 1685 (a module or predefined name registered more than once)
are produced on every bootstrap and every reload. They are dropped here by
exact code and never reach the host.
"""

from __future__ import annotations

import logging
import traceback
import warnings
from collections.abc import Iterable

from .host import HostLog
from .types import SUPPRESSED_CODES, Diagnostic, DiagnosticCode, Severity

logger = logging.getLogger(__name__)


class DiagnosticReporter:
    """
    Forwards diagnostics to host logging at matching severity.

    Suppressed codes are counted but never forwarded.
    """

    def __init__(self, host_log: HostLog):
        self.host_log = host_log
        self.forwarded_count = 0
        self.suppressed_count = 0

    def report(self, diagnostic: Diagnostic) -> bool:
        """
        Report one diagnostic.

        Returns:
            True if the diagnostic was forwarded to the host
        """
        if diagnostic.code in SUPPRESSED_CODES:
            self.suppressed_count += 1
            logger.debug("Suppressed diagnostic %s", diagnostic)
            return False

        text = str(diagnostic)
        if diagnostic.severity == Severity.ERROR:
            self.host_log.log_error(text)
        elif diagnostic.severity == Severity.WARNING:
            self.host_log.log_warning(text)
        else:
            self.host_log.log_info(text)
        self.forwarded_count += 1
        return True

    def report_all(self, diagnostics: Iterable[Diagnostic]) -> int:
        """Report several diagnostics; returns how many were forwarded."""
        return sum(1 for d in diagnostics if self.report(d))


def from_syntax_error(error: SyntaxError) -> Diagnostic:
    """Build an error diagnostic from a compiler SyntaxError."""
    message = error.msg or str(error)
    if error.text:
        message = f"{message}\n    {error.text.rstrip()}"
    return Diagnostic(
        code=DiagnosticCode.SYNTAX_ERROR,
        severity=Severity.ERROR,
        message=f"{type(error).__name__}: {message}",
        line=error.lineno,
        column=error.offset,
    )


def from_warning(record: warnings.WarningMessage) -> Diagnostic:
    """Build a warning diagnostic from a compiler warning."""
    return Diagnostic(
        code=DiagnosticCode.COMPILE_WARNING,
        severity=Severity.WARNING,
        message=f"{record.category.__name__}: {record.message}",
        line=record.lineno or None,
    )


def from_exception(
    error: BaseException,
    code: DiagnosticCode = DiagnosticCode.INTERNAL_FAULT,
    severity: Severity = Severity.ERROR,
    with_traceback: bool = True,
) -> Diagnostic:
    """Build a diagnostic describing an exception."""
    if with_traceback:
        text = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    else:
        text = f"{type(error).__name__}: {error}"
    return Diagnostic(code=code, severity=severity, message=text.strip())


def aggregate_failures(code: DiagnosticCode, heading: str, names: Iterable[str]) -> Diagnostic | None:
    """
    Collapse per-item bootstrap failures into a single warning.

    Returns:
        None when there were no failures
    """
    failed = sorted(set(names))
    if not failed:
        return None
    return Diagnostic(
        code=code,
        severity=Severity.WARNING,
        message=heading + ":\n  " + "\n  ".join(failed),
    )


def duplicate_imported(name: str) -> Diagnostic:
    return Diagnostic(
        code=DiagnosticCode.DUPLICATE_IMPORTED_TYPE,
        severity=Severity.ERROR,
        message=f"The imported module `{name}' is defined multiple times",
    )


def duplicate_predefined(name: str) -> Diagnostic:
    return Diagnostic(
        code=DiagnosticCode.DUPLICATE_PREDEFINED_TYPE,
        severity=Severity.WARNING,
        message=f"The predefined name `{name}' is defined multiple times. Using definition from builtins",
    )
