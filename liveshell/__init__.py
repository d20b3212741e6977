"""
liveshell: embedded interactive-evaluation engine.

Compiles short Python fragments against a persistent session, runs them on
a dedicated, interruptible execution thread, and reports a value or a
classified diagnostic. It is the engine behind a live shell inside a host
application; the console widget itself is the host's business.
"""

__version__ = "0.1.0"

# Caller-facing engine
from .engine import ShellEngine

# Configuration
from .config import ExecutionConfig, OutputConfig, SessionConfig, ShellConfig

# Components
from .capture import ResultCapture
from .diagnostics import DiagnosticReporter
from .executor import ExecutionSerializer, RawCompletion
from .introspection import SessionIntrospection
from .preprocessor import normalize
from .session import CompiledUnit, SessionEnvironment

# Cancellation
from .cancellation import CancellationToken, ExecutionInterrupted

# Host collaborators
from .helpers import ShellHelpers, ShellMessage
from .host import (
    HostLog,
    LoadedModuleProvider,
    LoggingHostLog,
    NullReloadLock,
    PrettyPrinter,
    RecordingHostLog,
    ReferenceModuleProvider,
    ReloadLock,
    ReprPrinter,
    StaticModuleProvider,
    ThreadReloadLock,
)

# Types
from .types import (
    BindingInfo,
    BootstrapReport,
    Completed,
    CompileFailure,
    ConcurrentExecutionError,
    Diagnostic,
    DiagnosticCode,
    EvaluationOutcome,
    Incomplete,
    InternalFault,
    Interrupted,
    OutcomeKind,
    RuntimeFailure,
    SessionClosedError,
    Severity,
    ShellError,
    UnitAlreadyInvokedError,
)

__all__ = [
    "__version__",
    "ShellEngine",
    "ExecutionConfig",
    "OutputConfig",
    "SessionConfig",
    "ShellConfig",
    "ResultCapture",
    "DiagnosticReporter",
    "ExecutionSerializer",
    "RawCompletion",
    "SessionIntrospection",
    "normalize",
    "CompiledUnit",
    "SessionEnvironment",
    "CancellationToken",
    "ExecutionInterrupted",
    "ShellHelpers",
    "ShellMessage",
    "HostLog",
    "LoadedModuleProvider",
    "LoggingHostLog",
    "NullReloadLock",
    "PrettyPrinter",
    "RecordingHostLog",
    "ReferenceModuleProvider",
    "ReloadLock",
    "ReprPrinter",
    "StaticModuleProvider",
    "ThreadReloadLock",
    "BindingInfo",
    "BootstrapReport",
    "Completed",
    "CompileFailure",
    "ConcurrentExecutionError",
    "Diagnostic",
    "DiagnosticCode",
    "EvaluationOutcome",
    "Incomplete",
    "InternalFault",
    "Interrupted",
    "OutcomeKind",
    "RuntimeFailure",
    "SessionClosedError",
    "Severity",
    "ShellError",
    "UnitAlreadyInvokedError",
]
