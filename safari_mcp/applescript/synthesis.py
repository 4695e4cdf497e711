"""Assemble AppleScript programs from command templates and raw arguments."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .casting import BoolValue, CastValue, LiteralValue, NullValue, TextValue, cast_value
from .escaping import escape_applescript

__all__ = [
    "MissingArgumentError",
    "ParamSlot",
    "PropertiesSlot",
    "PropertySlot",
    "ScriptSynthesizer",
    "Segment",
    "is_unset",
]


class MissingArgumentError(ValueError):
    """Raised when a required template parameter has no value."""

    def __init__(self, param: str) -> None:
        super().__init__(f"{param} is required")
        self.param = param


@dataclass(frozen=True, slots=True)
class ParamSlot:
    """A parameter position inside a command template.

    ``keyword`` is emitted in front of the value and dropped together with it
    when an optional parameter is unset. Reference slots hold object
    specifiers (``front window``) and are never quoted.
    """

    param: str
    required: bool = False
    keyword: str | None = None
    reference: bool = False
    kind: str | None = None
    echo: str | None = None


@dataclass(frozen=True, slots=True)
class PropertySlot:
    param: str
    property: str
    kind: str | None = None
    echo: str | None = None


@dataclass(frozen=True, slots=True)
class PropertiesSlot:
    """The ``with properties {...}`` clause built from individual parameters."""

    properties: tuple[PropertySlot, ...] = field(default_factory=tuple)


Segment = str | ParamSlot | PropertiesSlot


def is_unset(value: Any) -> bool:
    """Optional arguments that are missing or empty are left out of scripts."""

    return value is None or value == ""


class ScriptSynthesizer:
    """Compose ``tell application`` scripts for one target application."""

    def __init__(self, application: str = "Safari", *, legacy_quotes: bool = False) -> None:
        self.application = application
        self.legacy_quotes = legacy_quotes

    def render_value(self, raw: Any, *, reference: bool = False) -> str:
        """Cast ``raw`` and spell it in AppleScript syntax."""

        return self.render_cast(cast_value(raw), reference=reference)

    def render_cast(self, value: CastValue, *, reference: bool = False) -> str:
        if isinstance(value, TextValue):
            escaped = escape_applescript(value.text, legacy_quotes=self.legacy_quotes)
            return escaped if reference else f'"{escaped}"'
        if isinstance(value, LiteralValue):
            return value.source
        if isinstance(value, BoolValue):
            return "true" if value.value else "false"
        if isinstance(value, NullValue):
            return "missing value"
        return value.source

    def build_properties_record(
        self,
        slots: Iterable[PropertySlot],
        arguments: Mapping[str, Any],
    ) -> str:
        """Return ``{key:value, ...}`` for the defined properties, or ``""`` when none are."""

        pairs = [
            f"{slot.property}:{self.render_value(arguments.get(slot.param))}"
            for slot in slots
            if not is_unset(arguments.get(slot.param))
        ]
        if not pairs:
            return ""
        return "{" + ", ".join(pairs) + "}"

    def compose(self, segments: Sequence[Segment], arguments: Mapping[str, Any]) -> str:
        """Render the command body for ``segments`` without the ``tell`` wrapper."""

        words: list[str] = []
        for segment in segments:
            if isinstance(segment, str):
                words.append(segment)
            elif isinstance(segment, ParamSlot):
                value = arguments.get(segment.param)
                if is_unset(value):
                    if segment.required:
                        raise MissingArgumentError(segment.param)
                    continue
                if segment.keyword:
                    words.append(segment.keyword)
                words.append(self.render_value(value, reference=segment.reference))
            else:
                record = self.build_properties_record(segment.properties, arguments)
                if record:
                    words.append(f"with properties {record}")
        return " ".join(words)

    def wrap(self, body: str) -> str:
        app = escape_applescript(self.application)
        return f'tell application "{app}"\n    {body}\nend tell'

    def synthesize(self, segments: Sequence[Segment], arguments: Mapping[str, Any]) -> str:
        """Return a complete, runnable script for ``segments``."""

        return self.wrap(self.compose(segments, arguments))
