"""
Restricted compilation mode.

When a session is configured as restricted, fragments are compiled with
RestrictedPython and run against a reduced builtins set plus the guard
functions RestrictedPython's generated code calls.
"""

from __future__ import annotations

import operator
from types import CodeType
from typing import Any

from RestrictedPython import compile_restricted, safe_builtins
from RestrictedPython.Eval import default_guarded_getiter
from RestrictedPython.Guards import (
    guarded_iter_unpack_sequence,
    safer_getattr,
)

# Blocked builtins that could be dangerous
BLOCKED_BUILTINS = frozenset(
    {
        "open",
        "exec",
        "eval",
        "compile",
        "__import__",
        "input",
        "breakpoint",
    }
)

_INPLACE_OPERATORS = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
    "<<=": operator.ilshift,
    ">>=": operator.irshift,
    "&=": operator.iand,
    "|=": operator.ior,
    "^=": operator.ixor,
    "@=": operator.imatmul,
}


class _ShellPrintCollector:
    """Print target for RestrictedPython's rewritten print() calls."""

    def __init__(self, _getattr: Any = None):
        pass

    def _call_print(self, *args: Any, **kwargs: Any) -> None:
        kwargs.pop("file", None)
        print(*args, **kwargs)


def _guarded_getitem(obj: Any, key: Any) -> Any:
    """Allow subscript access on containers."""
    if hasattr(obj, "__getitem__"):
        return obj[key]
    msg = f"Subscript access not allowed on {type(obj).__name__}"
    raise TypeError(msg)


def _guarded_write(obj: Any) -> Any:
    """
    Allow item/attribute assignment on plain containers and user objects.

    Modules and classes stay read-only.
    """
    if isinstance(obj, (dict, list, set)):
        return obj
    if isinstance(obj, type) or type(obj).__name__ == "module":
        msg = f"Write access not allowed on {type(obj).__name__}"
        raise TypeError(msg)
    return obj


def _inplacevar(op: str, target: Any, value: Any) -> Any:
    try:
        return _INPLACE_OPERATORS[op](target, value)
    except KeyError:
        raise TypeError(f"Unsupported in-place operator {op}") from None


def build_safe_builtins() -> dict[str, Any]:
    """Build the restricted builtins dict."""
    # Start with RestrictedPython's safe_builtins
    builtins = dict(safe_builtins)

    safe_additions = {
        "dict": dict,
        "list": list,
        "set": set,
        "frozenset": frozenset,
        "enumerate": enumerate,
        "reversed": reversed,
        "map": map,
        "filter": filter,
        "any": any,
        "all": all,
        "sum": sum,
        "min": min,
        "max": max,
        "iter": iter,
        "next": next,
        "type": type,
        "getattr": safer_getattr,
    }
    builtins.update(safe_additions)

    # Explicitly remove dangerous builtins
    for blocked in BLOCKED_BUILTINS:
        builtins.pop(blocked, None)

    return builtins


def guard_globals() -> dict[str, Any]:
    """Names RestrictedPython-compiled code expects in its globals."""
    return {
        "__metaclass__": type,
        "_getiter_": default_guarded_getiter,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_getattr_": safer_getattr,
        "_getitem_": _guarded_getitem,
        "_write_": _guarded_write,
        "_inplacevar_": _inplacevar,
        "_print_": _ShellPrintCollector,
    }


def compile_fragment(source: str, filename: str, mode: str) -> CodeType:
    """
    Compile source text in restricted mode.

    Raises:
        SyntaxError: If the source is invalid or uses a forbidden construct
    """
    return compile_restricted(source, filename=filename, mode=mode)
