"""
Configuration management for liveshell.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class SessionConfig:
    """
    Configuration for the session environment and its bootstrap.

    - default_imports: modules whose public names are visible unqualified
    - excluded_module_prefixes: candidate reference modules skipped at bootstrap
    - restricted: compile fragments with RestrictedPython
    - source_cache_limit: fragments whose source stays registered for tracebacks
    """

    default_imports: tuple[str, ...] = (
        "math",
        "itertools",
        "functools",
        "collections",
        "pathlib",
    )
    excluded_module_prefixes: tuple[str, ...] = ("liveshell", "__main__", "_", "<shell")
    restricted: bool = False
    filename_prefix: str = "<shell"
    source_cache_limit: int = 128


@dataclass
class ExecutionConfig:
    """Configuration for the execution thread."""

    timeout_seconds: float | None = None
    interrupt_grace_seconds: float = 2.0
    poll_interval_seconds: float = 0.05


@dataclass
class OutputConfig:
    """Configuration for result rendering and history."""

    echo_results: bool = True
    verbose_results: bool = True
    max_value_chars: int = 10_000
    history_limit: int = 200


@dataclass
class ShellConfig:
    """Complete liveshell configuration."""

    session: SessionConfig = field(default_factory=SessionConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    @classmethod
    def load(cls, path: Path | None = None) -> "ShellConfig":
        """Load configuration from file."""
        if path is None:
            path = Path.home() / ".liveshell" / "config.json"

        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        session_data = dict(data.get("session", {}))
        # JSON has no tuples
        for key in ("default_imports", "excluded_module_prefixes"):
            if key in session_data:
                session_data[key] = tuple(session_data[key])

        return cls(
            session=SessionConfig(**session_data),
            execution=ExecutionConfig(**data.get("execution", {})),
            output=OutputConfig(**data.get("output", {})),
        )

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file."""
        if path is None:
            path = Path.home() / ".liveshell" / "config.json"

        path.parent.mkdir(parents=True, exist_ok=True)

        session_data = dict(self.session.__dict__)
        for key in ("default_imports", "excluded_module_prefixes"):
            session_data[key] = list(session_data[key])

        with open(path, "w") as f:
            json.dump(
                {
                    "session": session_data,
                    "execution": self.execution.__dict__,
                    "output": self.output.__dict__,
                },
                f,
                indent=2,
            )


# Default configuration instance
default_config = ShellConfig()
