"""
Security tests for restricted sessions.

These tests verify that a session configured as restricted:
- Compiles fragments with RestrictedPython
- Hides dangerous builtins and reference modules
- Keeps ordinary shell use working
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from liveshell.config import SessionConfig, ShellConfig
from liveshell.engine import ShellEngine
from liveshell.host import StaticModuleProvider
from liveshell.sandbox import BLOCKED_BUILTINS, build_safe_builtins
from liveshell.types import Completed, CompileFailure, RuntimeFailure


@pytest.fixture
def sandbox(host_log):
    """Create an engine with a restricted session."""
    config = ShellConfig(session=SessionConfig(default_imports=("math",), restricted=True))
    shell = ShellEngine(config, host_log=host_log, module_provider=StaticModuleProvider(["os", "json"]))
    shell.open()
    yield shell
    shell.close()


@pytest.mark.security
class TestBlockedBuiltins:
    """Tests that dangerous builtins are blocked."""

    @pytest.mark.parametrize("name", sorted(BLOCKED_BUILTINS))
    def test_not_in_safe_builtins(self, name):
        assert name not in build_safe_builtins()

    def test_open_blocked(self, sandbox):
        """open() is not defined."""
        outcome = sandbox.evaluate("open('/etc/passwd', 'r')")

        assert isinstance(outcome, RuntimeFailure)
        assert "NameError" in outcome.error

    def test_eval_blocked(self, sandbox):
        outcome = sandbox.evaluate("eval('1 + 1')")

        assert not isinstance(outcome, Completed)

    def test_import_blocked(self, sandbox):
        """import statements cannot load modules."""
        outcome = sandbox.evaluate("import os")

        assert isinstance(outcome, RuntimeFailure)
        assert "ImportError" in outcome.error


@pytest.mark.security
class TestRestrictedCompilation:
    """Tests that restricted constructs fail to compile."""

    def test_private_name_rejected(self, sandbox, host_log):
        outcome = sandbox.evaluate("=_secret")

        assert isinstance(outcome, CompileFailure)
        assert host_log.messages("error")

    def test_dunder_attribute_rejected(self, sandbox):
        outcome = sandbox.evaluate("=(1).__class__")

        assert isinstance(outcome, CompileFailure)

    def test_failed_compile_commits_nothing(self, sandbox):
        sandbox.evaluate("a = 1\n_b = 2")

        assert sandbox.snapshot_bindings() == []


@pytest.mark.security
class TestReferenceModulesHidden:
    """Reference modules are not resolvable in restricted sessions."""

    def test_os_hidden(self, sandbox):
        outcome = sandbox.evaluate("=os.getcwd()")

        assert isinstance(outcome, RuntimeFailure)
        assert "NameError" in outcome.error


@pytest.mark.security
class TestRestrictedUse:
    """Ordinary shell use still works in restricted sessions."""

    def test_arithmetic(self, sandbox):
        assert sandbox.evaluate("=2*21;").value == 42

    def test_body_and_tail(self, sandbox):
        assert sandbox.evaluate("a = 2\na * 3").value == 6

    def test_loop_and_augmented_assignment(self, sandbox):
        sandbox.evaluate("total = 0\nfor i in [1, 2, 3]:\n    total += i")

        assert sandbox.evaluate("=total").value == 6

    def test_item_assignment(self, sandbox):
        sandbox.evaluate("items = [1, 2, 3]\nitems[0] = 9")

        assert sandbox.evaluate("=items").value == [9, 2, 3]

    def test_default_imports_resolve(self, sandbox):
        assert sandbox.evaluate("=sqrt(16)").value == 4.0

    def test_helpers_available(self, sandbox):
        outcome = sandbox.evaluate("usage()")

        assert isinstance(outcome, Completed)
        assert "usage()" in outcome.rendered

    def test_bindings_tracked(self, sandbox):
        sandbox.evaluate("x = 5")

        assert [(b.name, b.declared_type, b.value) for b in sandbox.snapshot_bindings()] == [("x", "int", "5")]
