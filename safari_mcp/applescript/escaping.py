"""Escaping of text destined for a double-quoted AppleScript string literal."""

from __future__ import annotations

from typing import Any, overload

__all__ = ["escape_applescript"]


@overload
def escape_applescript(value: str, *, legacy_quotes: bool = False) -> str: ...


@overload
def escape_applescript(value: Any, *, legacy_quotes: bool = False) -> Any: ...


def escape_applescript(value: Any, *, legacy_quotes: bool = False) -> Any:
    """Escape ``value`` for embedding between double quotes.

    Replacement order is fixed (backslash, double quote, newline, carriage
    return) so no character is escaped twice. With ``legacy_quotes`` double
    quotes are left untouched, reproducing the historical wire format.
    Non-string values are returned unchanged.
    """

    if not isinstance(value, str):
        return value
    escaped = value.replace("\\", "\\\\")
    if not legacy_quotes:
        escaped = escaped.replace('"', '\\"')
    return escaped.replace("\n", "\\n").replace("\r", "\\r")
