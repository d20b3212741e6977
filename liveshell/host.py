"""
Collaborators supplied by the host application.

The engine only consumes these contracts; default implementations cover a
plain Python process (stdlib logging, ``sys.modules`` discovery, no reload).
"""

from __future__ import annotations

import logging
import pprint
import reprlib
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class HostLog(Protocol):
    """Host console logging."""

    def log_error(self, text: str) -> None: ...

    def log_warning(self, text: str) -> None: ...

    def log_info(self, text: str) -> None: ...


@runtime_checkable
class ReferenceModuleProvider(Protocol):
    """Lists candidate modules the session may reference."""

    def list_modules(self) -> list[str]: ...


@runtime_checkable
class ReloadLock(Protocol):
    """Host live-reload lock; reload is blocked while held."""

    def lock(self) -> None: ...

    def unlock(self) -> None: ...


@runtime_checkable
class PrettyPrinter(Protocol):
    """Turns a value into display text."""

    def format(self, value: Any, verbose: bool = False) -> str: ...


class LoggingHostLog:
    """Forwards host messages to a stdlib logger."""

    def __init__(self, logger_name: str = "liveshell.host"):
        self._logger = logging.getLogger(logger_name)

    def log_error(self, text: str) -> None:
        self._logger.error(text)

    def log_warning(self, text: str) -> None:
        self._logger.warning(text)

    def log_info(self, text: str) -> None:
        self._logger.info(text)


class RecordingHostLog:
    """Keeps every message in memory, tagged with its severity."""

    def __init__(self) -> None:
        self.records: list[tuple[str, str]] = []

    def log_error(self, text: str) -> None:
        self.records.append(("error", text))

    def log_warning(self, text: str) -> None:
        self.records.append(("warning", text))

    def log_info(self, text: str) -> None:
        self.records.append(("info", text))

    def messages(self, severity: str | None = None) -> list[str]:
        return [text for level, text in self.records if severity is None or level == severity]

    def clear(self) -> None:
        self.records.clear()


class LoadedModuleProvider:
    """Offers the top-level names of every module already imported."""

    def list_modules(self) -> list[str]:
        names = {name.split(".", 1)[0] for name in list(sys.modules)}
        return sorted(names)


class StaticModuleProvider:
    """Offers a fixed list of module names."""

    def __init__(self, modules: list[str] | tuple[str, ...]):
        self._modules = list(modules)

    def list_modules(self) -> list[str]:
        return list(self._modules)


class NullReloadLock:
    """Reload lock for hosts without live reload."""

    def lock(self) -> None:
        pass

    def unlock(self) -> None:
        pass


class ThreadReloadLock:
    """Reload lock backed by a re-entrant thread lock; hosts reload under `reloading()`."""

    def __init__(self) -> None:
        self._lock = threading.RLock()

    def lock(self) -> None:
        self._lock.acquire()

    def unlock(self) -> None:
        self._lock.release()

    @contextmanager
    def reloading(self) -> Iterator[None]:
        with self._lock:
            yield


@contextmanager
def held(reload_lock: ReloadLock) -> Iterator[None]:
    """Hold the host reload lock for the duration of the block."""
    reload_lock.lock()
    try:
        yield
    finally:
        reload_lock.unlock()


class ReprPrinter:
    """
    Default pretty-printer.

    Verbose mode uses `pprint` for readable nested containers; compact mode
    uses `reprlib` so huge values stay on one short line.
    """

    def __init__(self, width: int = 100):
        self.width = width
        self._compact = reprlib.Repr()
        self._compact.maxstring = 80
        self._compact.maxother = 80

    def format(self, value: Any, verbose: bool = False) -> str:
        if verbose:
            return pprint.pformat(value, width=self.width)
        return self._compact.repr(value)
