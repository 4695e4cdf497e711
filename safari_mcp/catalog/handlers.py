"""Turn catalog entries into callable tool handlers."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any

from jsonschema import validators
from jsonschema.exceptions import best_match

from safari_mcp.applescript.executor import ScriptExecutor
from safari_mcp.applescript.synthesis import ParamSlot, ScriptSynthesizer, is_unset

from .loader import CatalogLoader, ToolDefinition

__all__ = [
    "ArgumentValidator",
    "IntrospectionHandler",
    "ScriptToolHandler",
    "ToolValidationError",
    "ValidationMode",
]

LOGGER = logging.getLogger(__name__)

PROPERTY_SET_MESSAGE = "Property set successfully"


class ValidationMode(Enum):
    OFF = "off"
    SHADOW = "shadow"
    ENFORCE = "enforce"

    @classmethod
    def from_str(cls, raw: str | None) -> ValidationMode:
        if not raw:
            return cls.ENFORCE
        normalised = raw.strip().lower()
        for mode in cls:
            if mode.value == normalised:
                return mode
        LOGGER.warning("Unknown argument validation mode %r; using enforce", raw)
        return cls.ENFORCE


class ToolValidationError(ValueError):
    """Raised when call arguments do not satisfy the tool's input schema."""

    def __init__(self, tool: str, message: str) -> None:
        super().__init__(message)
        self.tool = tool


class ArgumentValidator:
    """Check call arguments against each tool's ``inputSchema``."""

    def __init__(self, mode: ValidationMode = ValidationMode.ENFORCE) -> None:
        self.mode = mode
        self._cache: dict[str, Any] = {}

    def validate(self, tool: ToolDefinition, arguments: Mapping[str, Any]) -> None:
        if self.mode is ValidationMode.OFF:
            return
        error = best_match(self._validator(tool).iter_errors(dict(arguments)))
        if error is None:
            return
        message = f"Invalid arguments for {tool.name}: {error.message}"
        if self.mode is ValidationMode.SHADOW:
            LOGGER.warning("%s (shadow mode, continuing)", message)
            return
        raise ToolValidationError(tool.name, message)

    def _validator(self, tool: ToolDefinition) -> Any:
        validator = self._cache.get(tool.name)
        if validator is None:
            validator_cls = validators.validator_for(tool.input_schema)
            validator = validator_cls(tool.input_schema)
            self._cache[tool.name] = validator
        return validator


class ScriptToolHandler:
    """Synthesize, run and shape the result of an AppleScript-backed tool."""

    def __init__(self, synthesizer: ScriptSynthesizer, executor: ScriptExecutor) -> None:
        self._synthesizer = synthesizer
        self._executor = executor

    async def __call__(self, tool: ToolDefinition, arguments: Mapping[str, Any]) -> dict[str, Any]:
        script = self._synthesizer.synthesize(tool.segments, arguments)
        result = await self._executor.run(script)

        payload: dict[str, Any] = {"success": result.succeeded}
        if tool.result == "property":
            payload["message"] = PROPERTY_SET_MESSAGE
            payload["value"] = arguments.get(tool.value_param or "")
        elif tool.result == "value":
            payload["value"] = result.stdout
        else:
            payload["message"] = result.stdout
        payload["script"] = script
        for key, param, required in tool.echoes:
            value = arguments.get(param)
            payload[key] = value if required or not is_unset(value) else None
        return payload


class IntrospectionHandler:
    """Describe the scripting dictionary implied by the loaded catalog.

    Nothing here talks to the application, so these tools stay usable when it
    is not running.
    """

    def __init__(self, catalog: CatalogLoader) -> None:
        self._catalog = catalog

    async def __call__(self, tool: ToolDefinition, arguments: Mapping[str, Any]) -> dict[str, Any]:
        if tool.name == "get_all_classes":
            return {"success": True, "classes": self.classes()}
        if tool.name == "get_all_properties_of":
            class_name = str(arguments.get("class_name", "")).strip()
            return {
                "success": True,
                "class": class_name,
                "properties": self.properties_of(class_name),
            }
        if tool.name == "get_parsed_sdef":
            return {
                "success": True,
                "classes": [
                    {
                        "name": name,
                        "properties": self.properties_of(name),
                        "commands": self.commands_of(name),
                    }
                    for name in self.classes()
                ],
            }
        raise LookupError(f"No introspection handler for {tool.name}")

    def classes(self) -> list[str]:
        seen: dict[str, None] = {}
        for tool in self._catalog:
            if tool.requires_application:
                seen.setdefault(tool.class_name, None)
        return list(seen)

    def properties_of(self, class_name: str) -> list[dict[str, Any]]:
        if class_name not in self.classes():
            raise ValueError(f"Unknown class: {class_name}")
        properties: dict[str, dict[str, Any]] = {}
        for tool in self._catalog:
            if tool.class_name != class_name or tool.property_name is None:
                continue
            entry = properties.setdefault(
                tool.property_name,
                {
                    "name": tool.property_name,
                    "description": _property_description(tool),
                    "type": None,
                    "readable": False,
                    "writable": False,
                },
            )
            if tool.result == "property":
                entry["writable"] = True
                entry["type"] = _value_kind(tool) or entry["type"]
            else:
                entry["readable"] = True
        return list(properties.values())

    def commands_of(self, class_name: str) -> list[dict[str, Any]]:
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "parameters": list(tool.input_schema.get("properties", {})),
                "required": list(tool.input_schema.get("required", [])),
            }
            for tool in self._catalog
            if tool.requires_application
            and tool.class_name == class_name
            and tool.property_name is None
        ]


def _property_description(tool: ToolDefinition) -> str:
    # Getter and setter descriptions share the text after the verb.
    _, _, rest = tool.description.partition(" ")
    return rest or tool.description


def _value_kind(tool: ToolDefinition) -> str | None:
    for segment in tool.segments:
        if isinstance(segment, ParamSlot) and segment.param == tool.value_param:
            return segment.kind
    return None
