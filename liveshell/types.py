"""
Shared type definitions for liveshell.

Diagnostics and binding snapshots are immutable pydantic models; evaluation
outcomes are plain dataclasses, one class per outcome kind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict


class Severity(str, Enum):
    """Severity of a diagnostic."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class DiagnosticCode(IntEnum):
    """Numeric diagnostic codes."""

    # Noisy byproducts of re-registering overlapping modules; never forwarded
    DUPLICATE_IMPORTED_TYPE = 433
    DUPLICATE_PREDEFINED_TYPE = 1685

    # Compilation
    SYNTAX_ERROR = 1001
    COMPILE_WARNING = 1002
    EMPTY_UNIT = 1003

    # Bootstrap
    REFERENCE_FAILED = 2001
    IMPORT_FAILED = 2002
    HELPER_FAILED = 2003

    # Execution
    RUNTIME_ERROR = 3001
    INTERRUPTED = 3002
    FORMAT_FAILED = 3003

    INTERNAL_FAULT = 9001


SUPPRESSED_CODES = frozenset(
    {
        DiagnosticCode.DUPLICATE_IMPORTED_TYPE,
        DiagnosticCode.DUPLICATE_PREDEFINED_TYPE,
    }
)


class Diagnostic(BaseModel):
    """A single compiler, bootstrap or runtime message."""

    model_config = ConfigDict(frozen=True)

    code: int
    severity: Severity
    message: str
    line: int | None = None
    column: int | None = None

    @property
    def is_suppressed(self) -> bool:
        return self.code in SUPPRESSED_CODES

    def __str__(self) -> str:
        location = ""
        if self.line is not None:
            location = f"({self.line},{self.column or 0}): "
        return f"{location}{self.severity.value} LS{self.code:04d}: {self.message}"


class BindingInfo(BaseModel):
    """Read-only copy of one session binding."""

    model_config = ConfigDict(frozen=True)

    name: str
    declared_type: str
    value: str


class OutcomeKind(str, Enum):
    """Tag of an evaluation outcome."""

    INCOMPLETE = "incomplete"
    COMPILE_FAILURE = "compile_failure"
    INTERRUPTED = "interrupted"
    RUNTIME_FAILURE = "runtime_failure"
    COMPLETED = "completed"
    INTERNAL_FAULT = "internal_fault"


@dataclass
class EvaluationOutcome:
    """Base class for the result of one evaluate cycle."""

    kind: OutcomeKind = field(init=False)
    source: str = field(default="", kw_only=True)

    @property
    def succeeded(self) -> bool:
        return self.kind == OutcomeKind.COMPLETED


@dataclass
class Incomplete(EvaluationOutcome):
    """The fragment is a valid prefix; the caller should append more input."""

    remainder: str = ""

    def __post_init__(self) -> None:
        self.kind = OutcomeKind.INCOMPLETE


@dataclass
class CompileFailure(EvaluationOutcome):
    """The fragment did not compile."""

    diagnostics: list[Diagnostic] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.kind = OutcomeKind.COMPILE_FAILURE

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.ERROR]


@dataclass
class Interrupted(EvaluationOutcome):
    """Execution was cancelled before it finished."""

    reason: str = "requested"
    abandoned: bool = False

    def __post_init__(self) -> None:
        self.kind = OutcomeKind.INTERRUPTED


@dataclass
class RuntimeFailure(EvaluationOutcome):
    """User code raised during execution."""

    error: str = ""
    exception: BaseException | None = None

    def __post_init__(self) -> None:
        self.kind = OutcomeKind.RUNTIME_FAILURE


@dataclass
class Completed(EvaluationOutcome):
    """Execution finished; `value` is meaningful only when `has_value`."""

    has_value: bool = False
    value: Any = None
    rendered: str | None = None
    format_error: str | None = None
    execution_time_ms: float = 0.0

    def __post_init__(self) -> None:
        self.kind = OutcomeKind.COMPLETED


@dataclass
class InternalFault(EvaluationOutcome):
    """An engine defect or misuse; the session stays usable."""

    error: str = ""

    def __post_init__(self) -> None:
        self.kind = OutcomeKind.INTERNAL_FAULT


@dataclass
class BootstrapReport:
    """Summary of one bootstrap attempt."""

    attempt: int
    failed_modules: list[str] = field(default_factory=list)
    failed_imports: list[str] = field(default_factory=list)
    failed_helpers: list[str] = field(default_factory=list)
    suppressed: list[Diagnostic] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not (self.failed_modules or self.failed_imports or self.failed_helpers)


@dataclass
class HistoryEntry:
    """One finished evaluate cycle."""

    source: str
    kind: OutcomeKind
    elapsed_ms: float = 0.0


# liveshell Error Classes


class ShellError(Exception):
    """Base class for liveshell errors."""

    pass


class SessionClosedError(ShellError):
    """The session has not been bootstrapped or was closed."""

    def __init__(self) -> None:
        super().__init__("Session is not open; call open() or bootstrap() first")


class UnitAlreadyInvokedError(ShellError):
    """A compiled unit may only be invoked once."""

    def __init__(self, filename: str):
        self.filename = filename
        super().__init__(f"Compiled unit {filename} was already invoked")


class ConcurrentExecutionError(ShellError):
    """Another evaluation is already in flight."""

    def __init__(self, what: str = "execution"):
        super().__init__(f"Another {what} is already in progress")


class EmptyUnitError(ShellError):
    """Text compiled to no statement at all."""

    pass
