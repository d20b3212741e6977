"""
Helper members visible unqualified in every session.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from . import __version__

if TYPE_CHECKING:
    from .session import SessionEnvironment


@dataclass(frozen=True)
class ShellMessage:
    """A value displayed as its text, bypassing the pretty-printer."""

    msg: str

    def __str__(self) -> str:
        return self.msg


USAGE = f"""liveshell v.{__version__}:

usage()      -- This screen; help for helper commands.
variables()  -- Show the variables you've created this session, and their current values.
=<expr>      -- Calculator mode: evaluate <expr> as a single expression.
"""


class ShellHelpers:
    """
    Default helper type.

    Every public attribute of an instance is installed into the session's
    name resolution layer, so `usage()` works without qualification.
    """

    def __init__(self, session: SessionEnvironment):
        self._session = session

    def usage(self) -> ShellMessage:
        return ShellMessage(USAGE)

    def variables(self) -> ShellMessage:
        from .introspection import SessionIntrospection

        return ShellMessage(SessionIntrospection(self._session).describe())


def helper_members(helper: object) -> dict[str, object]:
    """Public members of a helper instance, keyed by name."""
    members = {}
    for name in dir(helper):
        if name.startswith("_"):
            continue
        members[name] = getattr(helper, name)
    return members
