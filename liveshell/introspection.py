"""
Read-only view of a session's bindings.
"""

from __future__ import annotations

from typing import Any

from .host import PrettyPrinter, ReprPrinter
from .session import SessionEnvironment
from .types import BindingInfo

UNBOUND = "<unbound>"


def type_name(value: Any) -> str:
    """Display name of a value's type, module-qualified outside builtins."""
    cls = type(value)
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


class SessionIntrospection:
    """
    Snapshots the bindings a session's fragments declared.

    Snapshots are copies: later evaluations do not change them, and taking
    one never touches the session. Snapshots are not serialized against a
    concurrently running unit; values are read as they are at that moment.
    """

    def __init__(self, session: SessionEnvironment, printer: PrettyPrinter | None = None):
        self.session = session
        self.printer = printer or ReprPrinter()

    def snapshot(self) -> list[BindingInfo]:
        """
        Copy the session's bindings, in declaration order.

        Returns:
            One BindingInfo per declared name
        """
        infos = []
        for name, annotation, is_bound, value in self.session.bindings():
            if annotation is not None:
                declared = annotation
            elif is_bound:
                declared = type_name(value)
            else:
                declared = "object"
            infos.append(
                BindingInfo(
                    name=name,
                    declared_type=declared,
                    value=self._format(value) if is_bound else UNBOUND,
                )
            )
        return infos

    def _format(self, value: Any) -> str:
        try:
            return self.printer.format(value, False)
        except Exception as e:
            return f"<unprintable {type(e).__name__}: {e}>"

    def describe(self) -> str:
        """Bindings as declarations, one per line."""
        return "".join(f"{b.declared_type} {b.name} = {b.value};\n" for b in self.snapshot())
