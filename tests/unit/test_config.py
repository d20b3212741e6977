"""
Unit tests for config module.
"""

import json
import sys
import tempfile
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from liveshell.config import (
    ExecutionConfig,
    OutputConfig,
    SessionConfig,
    ShellConfig,
    default_config,
)


class TestSessionConfig:
    """Tests for SessionConfig."""

    def test_default_values(self):
        """Has expected default values."""
        config = SessionConfig()

        assert "math" in config.default_imports
        assert "liveshell" in config.excluded_module_prefixes
        assert config.restricted is False
        assert config.filename_prefix == "<shell"
        assert config.source_cache_limit == 128


class TestExecutionConfig:
    """Tests for ExecutionConfig."""

    def test_default_values(self):
        config = ExecutionConfig()

        assert config.timeout_seconds is None
        assert config.interrupt_grace_seconds == 2.0
        assert config.poll_interval_seconds > 0


class TestOutputConfig:
    """Tests for OutputConfig."""

    def test_default_values(self):
        config = OutputConfig()

        assert config.echo_results is True
        assert config.verbose_results is True
        assert config.max_value_chars == 10_000
        assert config.history_limit == 200


class TestShellConfig:
    """Tests for ShellConfig."""

    def test_default_config(self):
        """Module-level default is a plain ShellConfig."""
        assert default_config == ShellConfig()

    def test_load_missing_file_returns_defaults(self):
        """Loading a file that does not exist gives defaults."""
        with tempfile.TemporaryDirectory() as tmp:
            config = ShellConfig.load(Path(tmp) / "missing.json")

        assert config == ShellConfig()

    def test_save_and_load(self):
        """Config survives a save/load cycle, tuples included."""
        config = ShellConfig(
            session=SessionConfig(default_imports=("math",), restricted=True),
            execution=ExecutionConfig(timeout_seconds=5.0),
            output=OutputConfig(echo_results=False, history_limit=10),
        )

        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "nested" / "config.json"
            config.save(path)
            loaded = ShellConfig.load(path)

        assert loaded == config
        assert isinstance(loaded.session.default_imports, tuple)

    def test_load_partial_file(self):
        """Sections missing from the file keep their defaults."""
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text(json.dumps({"execution": {"timeout_seconds": 1.5}}))
            config = ShellConfig.load(path)

        assert config.execution.timeout_seconds == 1.5
        assert config.session == SessionConfig()
        assert config.output == OutputConfig()
