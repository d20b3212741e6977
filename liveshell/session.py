"""
Session environment: the persistent state fragments are compiled against.

A session owns:
- a globals dict shared by every compiled unit
- an ordered bindings table (name -> declared type) for names the session's
  fragments declared at module scope
- the imports applied to the session and the reference modules registered
  with it
- a resolution layer, installed as the globals' ``__builtins__``, through
  which reference modules, imported names, helper members and the real
  builtins resolve without qualification

Compilation commits declarations to the bindings table as a whole, after
every code object of the fragment compiled; a failed fragment leaves the
session untouched.
"""

from __future__ import annotations

import ast
import builtins
import codeop
import importlib
import io
import linecache
import logging
import threading
import warnings
from collections import OrderedDict
from dataclasses import dataclass, field
from types import CodeType, ModuleType
from typing import Any

from . import sandbox
from .config import SessionConfig
from .diagnostics import (
    DiagnosticReporter,
    aggregate_failures,
    duplicate_imported,
    duplicate_predefined,
    from_exception,
    from_syntax_error,
    from_warning,
)
from .helpers import ShellHelpers, helper_members
from .host import LoadedModuleProvider, ReferenceModuleProvider
from .types import (
    BootstrapReport,
    CompileFailure,
    Diagnostic,
    DiagnosticCode,
    EmptyUnitError,
    Incomplete,
    SessionClosedError,
    Severity,
    UnitAlreadyInvokedError,
)

logger = logging.getLogger(__name__)


@dataclass
class _Binding:
    name: str
    annotation: str | None = None


@dataclass
class CompiledUnit:
    """
    An invocable artifact compiled from one fragment.

    `body` runs every statement but a trailing expression statement;
    `tail` evaluates that expression and yields the unit's value.
    """

    source: str
    filename: str
    body: CodeType | None
    tail: CodeType | None
    namespace: dict[str, Any] = field(repr=False)
    declarations: tuple[str, ...] = ()
    diagnostics: list[Diagnostic] = field(default_factory=list)
    _invoked: bool = field(default=False, init=False, repr=False)

    @property
    def yields_value(self) -> bool:
        return self.tail is not None

    @property
    def invoked(self) -> bool:
        return self._invoked

    def invoke(self) -> tuple[bool, Any]:
        """
        Run the unit against its session namespace.

        Returns:
            (has_value, value); has_value is True when the unit ends in an
            expression statement

        Raises:
            UnitAlreadyInvokedError: On a second call
        """
        if self._invoked:
            raise UnitAlreadyInvokedError(self.filename)
        self._invoked = True

        if self.body is not None:
            exec(self.body, self.namespace)
        if self.tail is None:
            return False, None
        return True, eval(self.tail, self.namespace)


class _DeclarationCollector(ast.NodeVisitor):
    """Collects names a module body binds in the module scope, in order."""

    def __init__(self) -> None:
        self.declarations: dict[str, str | None] = {}
        self.imports: list[str] = []

    def _declare(self, name: str, annotation: str | None = None) -> None:
        if name not in self.declarations or annotation is not None:
            self.declarations[name] = annotation

    def visit_Name(self, node: ast.Name) -> None:
        if isinstance(node.ctx, ast.Store):
            self._declare(node.id)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        if node.value is not None:
            self.visit(node.value)
        if isinstance(node.target, ast.Name):
            self._declare(node.target.id, ast.unparse(node.annotation))
        else:
            self.visit(node.target)

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._declare(node.name)

    visit_AsyncFunctionDef = visit_FunctionDef

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        self._declare(node.name)

    def visit_Lambda(self, node: ast.Lambda) -> None:
        pass

    def _skip_scope(self, node: ast.AST) -> None:
        pass

    visit_ListComp = visit_SetComp = visit_DictComp = visit_GeneratorExp = _skip_scope

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
        # the handler name is unbound again when the block ends
        for stmt in node.body:
            self.visit(stmt)

    def visit_Import(self, node: ast.Import) -> None:
        self.imports.extend(alias.name for alias in node.names)

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        if node.module and not node.level:
            self.imports.append(node.module)

    def visit_MatchAs(self, node: ast.MatchAs) -> None:
        if node.pattern is not None:
            self.visit(node.pattern)
        if node.name:
            self._declare(node.name)

    def visit_MatchStar(self, node: ast.MatchStar) -> None:
        if node.name:
            self._declare(node.name)

    def visit_MatchMapping(self, node: ast.MatchMapping) -> None:
        self.generic_visit(node)
        if node.rest:
            self._declare(node.rest)


def _split_lines(text: str) -> list[str]:
    return io.StringIO(text, newline="").readlines()


def _source_before(text: str, node: ast.stmt) -> str:
    """Source text preceding `node`, line numbers preserved."""
    lines = _split_lines(text)
    head = "".join(lines[: node.lineno - 1])
    line = lines[node.lineno - 1].encode("utf-8")[: node.col_offset].decode("utf-8")
    return head + line


def _module_exports(module: ModuleType) -> dict[str, Any]:
    names = getattr(module, "__all__", None)
    if names is None:
        names = [name for name in vars(module) if not name.startswith("_")]
    return {name: getattr(module, name) for name in names if hasattr(module, name)}


class SessionEnvironment:
    """
    Persistent compilation state for one interactive session.

    Lifecycle: construct, `bootstrap()` (repeatable), `compile()` any number
    of times, `close()`.
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        reporter: DiagnosticReporter | None = None,
        module_provider: ReferenceModuleProvider | None = None,
        helper_type: type | None = ShellHelpers,
    ):
        self.config = config or SessionConfig()
        self.reporter = reporter
        self.module_provider = module_provider or LoadedModuleProvider()
        self.helper_type = helper_type

        self._state_lock = threading.RLock()
        self._open = False
        self._attempts = 0
        self._units_compiled = 0
        # filename -> linecache entry, oldest first
        self._sources: OrderedDict[str, tuple] = OrderedDict()

        self._bindings: dict[str, _Binding] = {}
        self._imports: list[str] = []
        self._exports: dict[str, dict[str, Any]] = {}
        self._references: dict[str, ModuleType] = {}
        self._helper_members: dict[str, Any] = {}
        self._predefined: dict[str, Any] = {}

        # Installed as __builtins__; rebuilt in place so existing functions see updates
        self._layer: dict[str, Any] = {}
        self._namespace: dict[str, Any] = self._fresh_namespace()

    def _fresh_namespace(self) -> dict[str, Any]:
        namespace: dict[str, Any] = {
            "__name__": "__shell__",
            "__doc__": None,
            "__builtins__": self._layer,
        }
        if self.config.restricted:
            namespace.update(sandbox.guard_globals())
        return namespace

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def bootstrap_attempts(self) -> int:
        return self._attempts

    def bootstrap(self) -> BootstrapReport:
        """
        Register reference modules, apply default imports and install the
        helper type.

        Safe to call again: registered modules raise suppressed duplicate
        diagnostics, failed modules and imports are retried.

        Returns:
            Report of failures and suppressed diagnostics for this attempt
        """
        emitted: list[Diagnostic] = []
        with self._state_lock:
            self._attempts += 1
            report = BootstrapReport(attempt=self._attempts)

            if self.config.restricted:
                self._predefined = sandbox.build_safe_builtins()
            else:
                self._predefined = dict(vars(builtins))

            self._register_references(report, emitted)
            self._apply_imports(report, emitted)
            self._install_helper(report, emitted)
            self._rebuild_layer()
            self._open = True

        failures = [
            aggregate_failures(
                DiagnosticCode.REFERENCE_FAILED,
                "Failed to reference the following modules",
                report.failed_modules,
            ),
            aggregate_failures(
                DiagnosticCode.IMPORT_FAILED,
                "Failed to import the following modules",
                report.failed_imports,
            ),
        ]
        emitted.extend(d for d in failures if d is not None)

        for diagnostic in emitted:
            if diagnostic.is_suppressed:
                report.suppressed.append(diagnostic)
            if self.reporter is not None:
                self.reporter.report(diagnostic)

        logger.debug(
            "Bootstrap attempt %d: %d references, %d imports, %d failures",
            report.attempt,
            len(self._references),
            len(self._imports),
            len(report.failed_modules) + len(report.failed_imports),
        )
        return report

    def close(self) -> None:
        """Drop all session state."""
        with self._state_lock:
            self._open = False
            self._bindings.clear()
            self._imports.clear()
            self._exports.clear()
            self._references.clear()
            self._helper_members.clear()
            self._layer.clear()
            self._namespace.clear()
            self._namespace.update(self._fresh_namespace())
            while self._sources:
                self._forget_oldest_source()

    def _register_source(self, filename: str, text: str) -> None:
        """Let tracebacks show the fragment's lines, keeping only the newest fragments."""
        entry = (len(text), None, _split_lines(text), filename)
        linecache.cache[filename] = entry
        self._sources[filename] = entry
        while len(self._sources) > max(self.config.source_cache_limit, 0):
            self._forget_oldest_source()

    def _forget_oldest_source(self) -> None:
        filename, entry = self._sources.popitem(last=False)
        # another session may have reused the filename since
        if linecache.cache.get(filename) is entry:
            del linecache.cache[filename]

    def _candidate_modules(self) -> list[str]:
        excluded = tuple(self.config.excluded_module_prefixes)
        return [name for name in self.module_provider.list_modules() if not name.startswith(excluded)]

    def _register_references(self, report: BootstrapReport, emitted: list[Diagnostic]) -> None:
        for name in self._candidate_modules():
            if name in self._references:
                emitted.append(duplicate_imported(name))
                continue
            try:
                module = importlib.import_module(name)
            except Exception:
                report.failed_modules.append(name)
                continue
            if name in self._predefined:
                emitted.append(duplicate_predefined(name))
            self._references[name] = module
        report.failed_modules.sort()

    def _apply_imports(self, report: BootstrapReport, emitted: list[Diagnostic]) -> None:
        for name in self.config.default_imports:
            try:
                module = importlib.import_module(name)
                exports = _module_exports(module)
            except Exception:
                report.failed_imports.append(name)
                continue
            for member in sorted(exports):
                if member in self._predefined:
                    emitted.append(duplicate_predefined(member))
            self._exports[name] = exports
            if name not in self._imports:
                self._imports.append(name)
        report.failed_imports.sort()

    def _install_helper(self, report: BootstrapReport, emitted: list[Diagnostic]) -> None:
        self._helper_members = {}
        if self.helper_type is None:
            return
        try:
            members = helper_members(self.helper_type(self))
        except Exception as e:
            report.failed_helpers.append(self.helper_type.__name__)
            emitted.append(
                from_exception(e, code=DiagnosticCode.HELPER_FAILED, severity=Severity.ERROR, with_traceback=False)
            )
            return
        for name in sorted(members):
            if name in self._predefined:
                emitted.append(duplicate_predefined(name))
                continue
            self._helper_members[name] = members[name]

    def _rebuild_layer(self) -> None:
        layer: dict[str, Any] = {}
        if not self.config.restricted:
            layer.update(self._references)
        for name in self._imports:
            layer.update(self._exports.get(name, {}))
        layer.update(self._helper_members)
        layer.update(self._predefined)
        self._layer.clear()
        self._layer.update(layer)

    # ------------------------------------------------------------------
    # Compilation
    # ------------------------------------------------------------------

    def _next_filename(self) -> str:
        return f"{self.config.filename_prefix}-{self._units_compiled + 1}>"

    def compile(self, text: str) -> Incomplete | CompileFailure | CompiledUnit:
        """
        Compile one fragment against the session.

        Args:
            text: Normalized source text

        Returns:
            Incomplete when more input is needed, CompileFailure with
            diagnostics, or a CompiledUnit whose declarations are already
            part of the session

        Raises:
            SessionClosedError: If the session is not bootstrapped
        """
        if not self._open:
            raise SessionClosedError()

        filename = self._next_filename()
        errors: list[Diagnostic] = []
        compiled: tuple[CodeType | None, CodeType | None] | None = None
        collector = _DeclarationCollector()

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                # a submitted fragment ends any block it opened
                if codeop.compile_command(text + "\n", filename, "exec") is None:
                    return Incomplete(remainder=text, source=text)
                tree = ast.parse(text, filename, "exec")
                if not tree.body:
                    raise EmptyUnitError("No statement to evaluate")
                collector.visit(tree)
                compiled = self._compile_tree(text, tree, filename)
            except SyntaxError as e:
                errors.append(from_syntax_error(e))
            except (ValueError, OverflowError) as e:
                errors.append(
                    from_exception(e, code=DiagnosticCode.SYNTAX_ERROR, with_traceback=False)
                )
            except EmptyUnitError as e:
                errors.append(Diagnostic(code=DiagnosticCode.EMPTY_UNIT, severity=Severity.ERROR, message=str(e)))

        diagnostics: list[Diagnostic] = []
        seen = set()
        for record in caught:
            key = (record.category, str(record.message), record.lineno)
            if key in seen:
                continue
            seen.add(key)
            diagnostics.append(from_warning(record))
        diagnostics.extend(errors)

        if compiled is None:
            return CompileFailure(diagnostics=diagnostics, source=text)

        with self._state_lock:
            for name, annotation in collector.declarations.items():
                binding = self._bindings.get(name)
                if binding is None:
                    self._bindings[name] = _Binding(name, annotation)
                elif annotation is not None:
                    binding.annotation = annotation
            for name in collector.imports:
                if name not in self._imports:
                    self._imports.append(name)
            self._units_compiled += 1
            self._register_source(filename, text)

        body, tail = compiled
        return CompiledUnit(
            source=text,
            filename=filename,
            body=body,
            tail=tail,
            namespace=self._namespace,
            declarations=tuple(collector.declarations),
            diagnostics=diagnostics,
        )

    def _compile_tree(self, text: str, tree: ast.Module, filename: str) -> tuple[CodeType | None, CodeType | None]:
        last = tree.body[-1]
        tail_node = last if isinstance(last, ast.Expr) else None
        statements = tree.body[:-1] if tail_node is not None else tree.body

        if self.config.restricted:
            return self._compile_restricted(text, statements, tail_node, filename)

        body = None
        if statements:
            body = compile(ast.Module(body=statements, type_ignores=[]), filename, "exec")
        tail = None
        if tail_node is not None:
            tail = compile(ast.Expression(body=tail_node.value), filename, "eval")
        return body, tail

    def _compile_restricted(
        self,
        text: str,
        statements: list[ast.stmt],
        tail_node: ast.Expr | None,
        filename: str,
    ) -> tuple[CodeType | None, CodeType | None]:
        if tail_node is None:
            return sandbox.compile_fragment(text, filename, "exec"), None

        body = None
        if statements:
            body = sandbox.compile_fragment(_source_before(text, tail_node), filename, "exec")
        segment = ast.get_source_segment(text, tail_node.value)
        tail = sandbox.compile_fragment(f"({segment}\n)", filename, "eval")
        return body, tail

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def namespace(self) -> dict[str, Any]:
        """The live globals shared by compiled units."""
        return self._namespace

    @property
    def imports(self) -> tuple[str, ...]:
        with self._state_lock:
            return tuple(self._imports)

    @property
    def references(self) -> tuple[str, ...]:
        with self._state_lock:
            return tuple(self._references)

    @property
    def units_compiled(self) -> int:
        return self._units_compiled

    def resolves(self, name: str) -> bool:
        """Whether `name` resolves in the session without qualification."""
        return name in self._namespace or name in self._layer

    def bindings(self) -> list[tuple[str, str | None, bool, Any]]:
        """
        Copy of the bindings table joined with current values.

        Returns:
            (name, annotation, is_bound, value) per binding, in declaration order
        """
        with self._state_lock:
            namespace = self._namespace
            return [
                (b.name, b.annotation, b.name in namespace, namespace.get(b.name))
                for b in self._bindings.values()
            ]
