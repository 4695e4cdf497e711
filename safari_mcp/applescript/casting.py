"""Best-effort typing of raw tool arguments for AppleScript literal construction.

Tool arguments arrive as JSON scalars, most often strings that merely *look*
like numbers, booleans, lists or dates. :func:`cast_value` turns such a raw
value into one variant of :data:`CastValue`; the synthesizer then decides how
each variant is spelled inside a script.

The comma heuristic in :func:`infer_literal` is intentionally naive: a sentence
such as ``"Hello, world"`` becomes the two-item list ``{Hello, world}``.
Callers that need commas inside text must pre-quote the value (``'"a, b"'``).
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Literal

__all__ = [
    "BoolValue",
    "CastValue",
    "LiteralValue",
    "NullValue",
    "NumberValue",
    "TextValue",
    "cast_value",
    "infer_literal",
    "is_numeric",
    "universal_cast",
]

_NUMERIC_PATTERN = re.compile(r"^-?\d+(\.\d+)?$")
_ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}")
_DATE_PREFIX = 'date "'
_TRUE_WORDS = frozenset({"true", "yes"})
_FALSE_WORDS = frozenset({"false", "no"})

LiteralKind = Literal["list", "rectangle", "record", "date"]


@dataclass(frozen=True, slots=True)
class NullValue:
    """Absent value (JSON ``null``)."""

    def to_python(self) -> None:
        return None


@dataclass(frozen=True, slots=True)
class BoolValue:
    value: bool

    def to_python(self) -> bool:
        return self.value


@dataclass(frozen=True, slots=True)
class NumberValue:
    """AppleScript has a single numeric literal form; ints and reals share it.

    ``text`` keeps the caller's spelling (``"1.50"``) for rendering.
    """

    value: int | float
    text: str | None = field(default=None, compare=False)

    def to_python(self) -> int | float:
        return self.value

    @property
    def source(self) -> str:
        if self.text is not None:
            return self.text
        if isinstance(self.value, float):
            return format(Decimal(repr(self.value)), "f")
        return str(self.value)


@dataclass(frozen=True, slots=True)
class TextValue:
    """Plain text that must be escaped and quoted before reaching a script."""

    text: str

    def to_python(self) -> str:
        return self.text


@dataclass(frozen=True, slots=True)
class LiteralValue:
    """Pre-formed AppleScript literal (list, record, rectangle or date)."""

    source: str
    kind: LiteralKind

    def to_python(self) -> str:
        return self.source


CastValue = NullValue | BoolValue | NumberValue | TextValue | LiteralValue


def is_numeric(text: str) -> bool:
    """Return ``True`` when ``text`` is an optionally signed integer or decimal."""

    return _NUMERIC_PATTERN.fullmatch(text) is not None


def infer_literal(text: str) -> LiteralValue | None:
    """Classify brace-wrapped and comma-separated text as an AppleScript literal.

    ``text`` must already be trimmed. Returns ``None`` when the text does not
    look like a list, record or rectangle.
    """

    if text.startswith("{") and text.endswith("}"):
        kind: LiteralKind = "record" if ":" in text else "list"
        return LiteralValue(text, kind)
    if "," in text and not text.startswith("{"):
        parts = [part.strip() for part in text.split(",")]
        if len(parts) == 4 and all(is_numeric(part) for part in parts):
            return LiteralValue(f"{{{text}}}", "rectangle")
        if len(parts) >= 2:
            return LiteralValue(f"{{{text}}}", "list")
    return None


def cast_value(raw: Any) -> CastValue:
    """Infer the AppleScript-facing type of ``raw``. Never raises."""

    if raw is None:
        return NullValue()
    if isinstance(raw, bool):
        return BoolValue(raw)
    if isinstance(raw, int):
        return NumberValue(raw)
    if isinstance(raw, float) and math.isfinite(raw):
        return NumberValue(int(raw) if raw.is_integer() else raw)

    text = _stringify(raw).strip()
    if text == "":
        return TextValue("")

    lowered = text.lower()
    if lowered in _TRUE_WORDS:
        return BoolValue(True)
    if lowered in _FALSE_WORDS:
        return BoolValue(False)

    if is_numeric(text):
        return NumberValue(_parse_number(text), text)

    literal = infer_literal(text)
    if literal is not None:
        return literal

    if text.startswith(_DATE_PREFIX):
        return LiteralValue(text, "date")
    if _ISO_DATE_PATTERN.match(text):
        return LiteralValue(f'date "{text}"', "date")

    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        return TextValue(text[1:-1])

    return TextValue(text)


def universal_cast(raw: Any) -> Any:
    """Return the plain Python form of :func:`cast_value` (``None``, bool, number or str)."""

    return cast_value(raw).to_python()


def _parse_number(text: str) -> int | float:
    if "." not in text:
        try:
            return int(text)
        except ValueError:
            # Past the interpreter's int digit limit; `text` still renders the digits.
            return float(text)
    number = float(text)
    return int(number) if number.is_integer() else number


def _stringify(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, (list, tuple)):
        return ",".join(_stringify(item) for item in raw)
    if isinstance(raw, Mapping):
        fields = ", ".join(f"{key}:{_stringify(value)}" for key, value in raw.items())
        return f"{{{fields}}}"
    return str(raw)
