"""
Input normalization.

A fragment starting with ``=`` is "calculator" input: the remainder is wrapped
in parentheses so it is always parsed as a single expression statement.
"""

CALCULATOR_SENTINEL = "="
STATEMENT_TERMINATOR = ";"


def is_calculator_input(raw: str) -> bool:
    """Whether the trimmed fragment uses the calculator shortcut."""
    return raw.strip().startswith(CALCULATOR_SENTINEL)


def normalize(raw: str) -> str:
    """
    Normalize a raw fragment into source text.

    Trims surrounding whitespace. Calculator input ``=expr`` becomes
    ``(expr);``; a terminator already ending ``expr`` is not doubled.
    Never fails: validity is left to the compiler.

    Args:
        raw: Text exactly as typed by the user

    Returns:
        Source text to compile
    """
    text = raw.strip()
    if not text.startswith(CALCULATOR_SENTINEL):
        return text

    remainder = text[len(CALCULATOR_SENTINEL) :].strip()
    if remainder.endswith(STATEMENT_TERMINATOR):
        remainder = remainder[: -len(STATEMENT_TERMINATOR)].rstrip()
    return f"({remainder}){STATEMENT_TERMINATOR}"
