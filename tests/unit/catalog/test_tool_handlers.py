from __future__ import annotations

import asyncio
import logging

import pytest

from safari_mcp.applescript.executor import ScriptExecutor
from safari_mcp.applescript.synthesis import MissingArgumentError, ScriptSynthesizer
from safari_mcp.catalog.handlers import (
    ArgumentValidator,
    IntrospectionHandler,
    ScriptToolHandler,
    ToolValidationError,
    ValidationMode,
)
from safari_mcp.catalog.loader import CatalogLoader
from tests.helpers.fakes import FakeRunner, RecordingSleep


def _handler(runner: FakeRunner) -> ScriptToolHandler:
    return ScriptToolHandler(ScriptSynthesizer(), ScriptExecutor(runner, sleep=RecordingSleep()))


def test_message_result_with_optional_echoes(catalog: CatalogLoader) -> None:
    runner = FakeRunner([""])
    tool = catalog.get("close_window")

    payload = asyncio.run(_handler(runner)(tool, {"target_window_required_string": "front window"}))

    assert payload == {
        "success": True,
        "message": "",
        "script": 'tell application "Safari"\n    close front window\nend tell',
        "window": "front window",
        "saving": None,
        "saving_in": None,
    }
    assert runner.scripts == [payload["script"]]


def test_value_result(catalog: CatalogLoader) -> None:
    runner = FakeRunner(["https://example.com"])
    tool = catalog.get("get_url_of_tab_of_window")

    payload = asyncio.run(
        _handler(runner)(
            tool,
            {"target_tab_required_string": "tab 1", "target_window_required_string": "window 1"},
        )
    )

    assert payload["success"] is True
    assert payload["value"] == "https://example.com"
    assert payload["tab"] == "tab 1"
    assert payload["window"] == "window 1"
    assert "return URL of tab 1 of window 1" in payload["script"]


def test_property_result_echoes_raw_value(catalog: CatalogLoader) -> None:
    runner = FakeRunner([""])
    tool = catalog.get("set_bounds_of_window")

    payload = asyncio.run(
        _handler(runner)(
            tool,
            {"target_window_required_string": "front window", "value_required_rectangle": "0, 0, 800, 600"},
        )
    )

    assert payload["message"] == "Property set successfully"
    assert payload["value"] == "0, 0, 800, 600"
    assert payload["window"] == "front window"
    assert "set bounds of front window to {0, 0, 800, 600}" in payload["script"]
    assert list(payload) == ["success", "message", "value", "script", "window"]


def test_error_output_sets_success_false(catalog: CatalogLoader) -> None:
    payload = asyncio.run(_handler(FakeRunner(["Error"]))(catalog.get("count_window"), {}))
    assert payload["success"] is False
    assert payload["message"] == "Error"


def test_missing_required_argument_raises(catalog: CatalogLoader) -> None:
    runner = FakeRunner()
    with pytest.raises(MissingArgumentError, match="target_window_required_string is required"):
        asyncio.run(_handler(runner)(catalog.get("close_window"), {}))
    assert runner.scripts == []


def test_validator_enforce(catalog: CatalogLoader) -> None:
    validator = ArgumentValidator(ValidationMode.ENFORCE)
    tool = catalog.get("close_window")
    validator.validate(tool, {"target_window_required_string": "front window"})
    with pytest.raises(ToolValidationError, match="Invalid arguments for close_window") as excinfo:
        validator.validate(tool, {"target_window_required_string": 3})
    assert excinfo.value.tool == "close_window"
    with pytest.raises(ToolValidationError):
        validator.validate(tool, {"target_window_required_string": "w", "surprise": True})


def test_validator_shadow_logs_only(catalog: CatalogLoader, caplog: pytest.LogCaptureFixture) -> None:
    validator = ArgumentValidator(ValidationMode.SHADOW)
    with caplog.at_level(logging.WARNING):
        validator.validate(catalog.get("close_window"), {"target_window_required_string": 3})
    assert "shadow mode" in caplog.text


def test_validator_off(catalog: CatalogLoader) -> None:
    ArgumentValidator(ValidationMode.OFF).validate(catalog.get("close_window"), {"bogus": 1})


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, ValidationMode.ENFORCE),
        ("", ValidationMode.ENFORCE),
        ("Shadow", ValidationMode.SHADOW),
        (" off ", ValidationMode.OFF),
        ("unknown", ValidationMode.ENFORCE),
    ],
)
def test_validation_mode_parsing(raw: str | None, expected: ValidationMode) -> None:
    assert ValidationMode.from_str(raw) is expected


def test_introspection_classes(catalog: CatalogLoader) -> None:
    handler = IntrospectionHandler(catalog)
    payload = asyncio.run(handler(catalog.get("get_all_classes"), {}))
    assert payload == {"success": True, "classes": ["application", "document", "tab", "window"]}


def test_introspection_properties(catalog: CatalogLoader) -> None:
    handler = IntrospectionHandler(catalog)
    payload = asyncio.run(handler(catalog.get("get_all_properties_of"), {"class_name": "window"}))

    properties = {entry["name"]: entry for entry in payload["properties"]}
    assert payload["class"] == "window"
    assert properties["bounds"]["readable"] and properties["bounds"]["writable"]
    assert properties["bounds"]["type"] == "rectangle"
    assert properties["closeable"]["readable"] and not properties["closeable"]["writable"]
    assert properties["name"]["description"] == "The title of the window."


def test_introspection_unknown_class(catalog: CatalogLoader) -> None:
    handler = IntrospectionHandler(catalog)
    with pytest.raises(ValueError, match="Unknown class: bookmark"):
        asyncio.run(handler(catalog.get("get_all_properties_of"), {"class_name": "bookmark"}))


def test_parsed_sdef(catalog: CatalogLoader) -> None:
    handler = IntrospectionHandler(catalog)
    payload = asyncio.run(handler(catalog.get("get_parsed_sdef"), {}))

    by_name = {entry["name"]: entry for entry in payload["classes"]}
    assert set(by_name) == {"application", "document", "tab", "window"}
    window_commands = [command["name"] for command in by_name["window"]["commands"]]
    assert "close_window" in window_commands
    assert all(not name.startswith(("get_", "set_")) for name in window_commands)
    assert by_name["application"]["properties"][0]["name"] == "name"
