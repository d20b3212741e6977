"""
Pytest configuration and fixtures for liveshell tests.
"""

import pytest
import sys
from pathlib import Path

# Add project root to path so we can import the liveshell package
sys.path.insert(0, str(Path(__file__).parent.parent))

from liveshell.config import ExecutionConfig, ShellConfig
from liveshell.engine import ShellEngine
from liveshell.host import RecordingHostLog, StaticModuleProvider


@pytest.fixture
def host_log():
    """Provide a host log that records every message."""
    return RecordingHostLog()


@pytest.fixture
def fast_config():
    """Provide a config with short polling and grace intervals."""
    return ShellConfig(
        execution=ExecutionConfig(
            interrupt_grace_seconds=1.0,
            poll_interval_seconds=0.01,
        )
    )


@pytest.fixture
def engine(fast_config, host_log):
    """Provide an open engine referencing a couple of stdlib modules."""
    shell = ShellEngine(
        config=fast_config,
        host_log=host_log,
        module_provider=StaticModuleProvider(["json", "re"]),
    )
    shell.open()
    yield shell
    shell.close()


# Markers
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "hypothesis: property-based tests"
    )
    config.addinivalue_line(
        "markers", "slow: tests that take >1s"
    )
    config.addinivalue_line(
        "markers", "security: security-related tests"
    )
