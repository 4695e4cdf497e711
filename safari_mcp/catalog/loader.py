from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from jsonschema import validators
from jsonschema.exceptions import SchemaError
from packaging.version import InvalidVersion, Version

from safari_mcp.applescript.synthesis import ParamSlot, PropertiesSlot, PropertySlot, Segment

__all__ = ["CatalogError", "CatalogLoader", "ToolDefinition", "default_catalog_dir"]

LOGGER = logging.getLogger(__name__)


class CatalogError(Exception):
    """Raised when a tool catalog file fails validation."""


_TOOL_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")
_CLASSES = ("application", "document", "window", "tab")
_RESULT_KINDS = {"message", "value", "property", "static"}
_PARAM_KEYS = {"param", "keyword", "as", "kind", "echo"}
_PROPERTY_KEYS = {"param", "property", "kind", "echo"}
_CATALOG_GLOB = "*.tools.yaml"


def default_catalog_dir() -> Path:
    """Return the directory holding the bundled Safari catalog."""

    return Path(__file__).resolve().parent / "tools"


@dataclass(frozen=True)
class ToolDefinition:
    """In-memory representation of one catalog tool."""

    name: str
    description: str
    class_name: str
    result: str
    input_schema: Mapping[str, Any]
    segments: tuple[Segment, ...]
    suite: str
    source_path: Path
    property_name: str | None = None
    value_param: str | None = None

    @property
    def requires_application(self) -> bool:
        return self.result != "static"

    @property
    def echoes(self) -> list[tuple[str, str, bool]]:
        """``(key, param, required)`` for every argument echoed in the result payload."""

        echoed: list[tuple[str, str, bool]] = []
        for segment in self.segments:
            if isinstance(segment, ParamSlot) and segment.echo:
                echoed.append((segment.echo, segment.param, segment.required))
            elif isinstance(segment, PropertiesSlot):
                echoed.extend(
                    (slot.echo, slot.param, False) for slot in segment.properties if slot.echo
                )
        return echoed

    def to_listing(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": dict(self.input_schema),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], source_path: Path, *, suite: str) -> ToolDefinition:
        if not isinstance(data, Mapping):
            raise CatalogError(
                f"Expected mapping for tool in {source_path}, got {type(data).__name__}"
            )

        missing = [
            key for key in ("name", "description", "class", "result", "inputSchema") if key not in data
        ]
        if missing:
            raise CatalogError(f"Tool in {source_path} missing required field(s): {', '.join(missing)}")

        name = _require_str(data["name"], "name", source_path)
        if not _TOOL_NAME_PATTERN.fullmatch(name):
            raise CatalogError(f"Tool name '{name}' in {source_path} must be lowercase snake_case")
        description = _require_str(data["description"], "description", source_path)

        class_name = data["class"]
        if class_name not in _CLASSES:
            raise CatalogError(f"Tool {name} class must be one of {', '.join(_CLASSES)}")

        result = data["result"]
        if result not in _RESULT_KINDS:
            raise CatalogError(f"Tool {name} result must be one of {', '.join(sorted(_RESULT_KINDS))}")

        input_schema = _require_mapping(data["inputSchema"], "inputSchema", name)
        _validate_json_schema(input_schema, name)
        properties = input_schema.get("properties") or {}
        required = set(input_schema.get("required") or ())

        raw_script = data.get("script")
        if result == "static":
            if raw_script:
                raise CatalogError(f"Static tool {name} must not declare a script")
            segments: tuple[Segment, ...] = ()
        else:
            if not isinstance(raw_script, Sequence) or isinstance(raw_script, str) or not raw_script:
                raise CatalogError(f"Tool {name} script must be a non-empty list of segments")
            segments = tuple(
                _parse_segment(item, name, properties, required) for item in raw_script
            )

        value_param = data.get("value")
        if result == "property":
            if not isinstance(value_param, str) or value_param not in properties:
                raise CatalogError(f"Property tool {name} must name its value parameter")

        property_name = data.get("property")
        if property_name is not None and not isinstance(property_name, str):
            raise CatalogError(f"Tool {name} property must be a string")

        return cls(
            name=name,
            description=description,
            class_name=class_name,
            result=result,
            input_schema=dict(input_schema),
            segments=segments,
            suite=suite,
            source_path=source_path,
            property_name=property_name,
            value_param=value_param,
        )


class CatalogLoader:
    """Load and expose the tool catalog."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}

    @classmethod
    def load_default(cls) -> CatalogLoader:
        loader = cls()
        loader.load_dir(default_catalog_dir())
        return loader

    def load_dir(self, directory: Path | str) -> None:
        base_dir = Path(directory).expanduser().resolve()
        if not base_dir.exists():
            raise CatalogError(f"Catalog directory not found: {base_dir}")

        tools: dict[str, ToolDefinition] = {}
        for path in sorted(base_dir.glob(_CATALOG_GLOB)):
            with path.open("r", encoding="utf-8") as handle:
                try:
                    data = yaml.safe_load(handle)
                except yaml.YAMLError as exc:
                    raise CatalogError(f"Failed to parse YAML for catalog {path}: {exc}") from exc

            suite, entries = _read_suite(data, path)
            for entry in entries:
                tool = ToolDefinition.from_dict(entry, path, suite=suite)
                if tool.name in tools:
                    raise CatalogError(f"Duplicate tool name '{tool.name}' found in {path}")
                tools[tool.name] = tool

        if not tools:
            LOGGER.warning("No tools found under %s", base_dir)
        self._tools = tools

    def list(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def get(self, name: str) -> ToolDefinition:
        return self._tools[name]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)


def _read_suite(data: Any, path: Path) -> tuple[str, list[Any]]:
    if not isinstance(data, Mapping):
        raise CatalogError(f"Catalog {path} must be a mapping with a 'tools' list")
    version = _require_str(data.get("version"), "version", path)
    try:
        Version(version)
    except InvalidVersion as exc:
        raise CatalogError(f"Catalog {path} version '{version}' is not a valid version") from exc
    suite = data.get("suite") or path.name.removesuffix(".tools.yaml")
    tools = data.get("tools")
    if not isinstance(tools, list):
        raise CatalogError(f"Catalog {path} field 'tools' must be a list")
    return str(suite), tools


def _parse_segment(
    item: Any,
    tool: str,
    properties: Mapping[str, Any],
    required: set[str],
) -> Segment:
    if isinstance(item, str):
        if not item.strip():
            raise CatalogError(f"Tool {tool} script contains an empty word")
        return item
    if not isinstance(item, Mapping):
        raise CatalogError(f"Tool {tool} script segment must be a string or mapping")

    if "properties" in item:
        slots = item["properties"]
        if not isinstance(slots, list) or not slots:
            raise CatalogError(f"Tool {tool} properties segment must be a non-empty list")
        return PropertiesSlot(tuple(_parse_property(slot, tool, properties) for slot in slots))

    unknown = set(item) - _PARAM_KEYS
    if unknown:
        raise CatalogError(f"Tool {tool} segment has unknown key(s): {', '.join(sorted(unknown))}")
    param = _require_param(item.get("param"), tool, properties)
    style = item.get("as")
    if style not in (None, "reference"):
        raise CatalogError(f"Tool {tool} segment '{param}' has unsupported style '{style}'")
    return ParamSlot(
        param=param,
        required=param in required,
        keyword=item.get("keyword"),
        reference=style == "reference",
        kind=item.get("kind"),
        echo=item.get("echo"),
    )


def _parse_property(item: Any, tool: str, properties: Mapping[str, Any]) -> PropertySlot:
    if not isinstance(item, Mapping):
        raise CatalogError(f"Tool {tool} property slot must be a mapping")
    unknown = set(item) - _PROPERTY_KEYS
    if unknown:
        raise CatalogError(f"Tool {tool} property slot has unknown key(s): {', '.join(sorted(unknown))}")
    param = _require_param(item.get("param"), tool, properties)
    prop = item.get("property")
    if not isinstance(prop, str) or not prop:
        raise CatalogError(f"Tool {tool} property slot '{param}' must name a property")
    return PropertySlot(param=param, property=prop, kind=item.get("kind"), echo=item.get("echo"))


def _require_param(value: Any, tool: str, properties: Mapping[str, Any]) -> str:
    if not isinstance(value, str) or not value:
        raise CatalogError(f"Tool {tool} segment must name a parameter")
    if value not in properties:
        raise CatalogError(f"Tool {tool} segment references unknown parameter '{value}'")
    return value


def _require_str(value: Any, field: str, source: Path) -> str:
    if not isinstance(value, str) or not value:
        raise CatalogError(f"Field '{field}' in catalog {source} must be a non-empty string")
    return value


def _require_mapping(value: Any, field: str, tool: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise CatalogError(f"Tool {tool} field '{field}' must be a mapping")
    return value


def _validate_json_schema(schema: Mapping[str, Any], tool: str) -> None:
    try:
        validator_cls = validators.validator_for(schema)
        validator_cls.check_schema(schema)
    except SchemaError as exc:
        raise CatalogError(f"Tool {tool} inputSchema is invalid: {exc.message}") from exc
