from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from safari_mcp.applescript.availability import ApplicationProbe
from safari_mcp.applescript.executor import RetryPolicy, ScriptExecutor
from safari_mcp.applescript.synthesis import ScriptSynthesizer
from safari_mcp.catalog.handlers import (
    ArgumentValidator,
    IntrospectionHandler,
    ScriptToolHandler,
    ValidationMode,
)
from safari_mcp.catalog.loader import CatalogError, CatalogLoader
from safari_mcp.server.config import ServerSettings
from safari_mcp.server.dispatcher import ToolDispatcher
from safari_mcp.server.logging import JsonLogWriter
from safari_mcp.server.models import ToolFailure, ToolSuccess
from tests.helpers.fakes import FakeRunner, RecordingSleep, failing


def _dispatcher(
    catalog: CatalogLoader,
    runner: FakeRunner,
    *,
    probe_runner: FakeRunner | None = None,
    mode: ValidationMode = ValidationMode.ENFORCE,
    log_writer: JsonLogWriter | None = None,
) -> ToolDispatcher:
    sleep = RecordingSleep()
    probe_runner = probe_runner or FakeRunner(["available"])
    return ToolDispatcher(
        catalog=catalog,
        script_handler=ScriptToolHandler(ScriptSynthesizer(), ScriptExecutor(runner, sleep=sleep)),
        static_handler=IntrospectionHandler(catalog),
        probe=ApplicationProbe(ScriptExecutor(probe_runner, policy=RetryPolicy(max_retries=0))),
        validator=ArgumentValidator(mode),
        log_writer=log_writer,
    )


def test_successful_call(catalog: CatalogLoader) -> None:
    runner = FakeRunner(["3"])
    dispatcher = _dispatcher(catalog, runner)

    outcome = asyncio.run(dispatcher.call("count_window", {}))

    assert isinstance(outcome, ToolSuccess)
    assert outcome.to_payload()["message"] == "3"


def test_unknown_tool(catalog: CatalogLoader) -> None:
    outcome = asyncio.run(_dispatcher(catalog, FakeRunner()).call("nope", {"a": 1}))
    assert isinstance(outcome, ToolFailure)
    assert outcome.to_payload() == {
        "success": False,
        "error": "Unknown tool: nope",
        "tool": "nope",
        "args": {"a": 1},
    }
    assert outcome.code == "UNKNOWN_TOOL"


def test_unavailable_application_skips_the_tool(catalog: CatalogLoader) -> None:
    runner = FakeRunner()
    dispatcher = _dispatcher(catalog, runner, probe_runner=FakeRunner([failing()]))

    outcome = asyncio.run(dispatcher.call("count_window", {}))

    assert outcome.to_payload() == {
        "success": False,
        "error": "Application is not available or not running",
    }
    assert runner.scripts == []


def test_static_tools_do_not_probe(catalog: CatalogLoader) -> None:
    probe_runner = FakeRunner([failing()])
    dispatcher = _dispatcher(catalog, FakeRunner(), probe_runner=probe_runner)

    outcome = asyncio.run(dispatcher.call("get_all_classes", {}))

    assert isinstance(outcome, ToolSuccess)
    assert probe_runner.scripts == []


def test_missing_argument_becomes_failure(catalog: CatalogLoader) -> None:
    dispatcher = _dispatcher(catalog, FakeRunner(), mode=ValidationMode.OFF)
    outcome = asyncio.run(dispatcher.call("close_window", None))
    assert isinstance(outcome, ToolFailure)
    assert outcome.error == "target_window_required_string is required"
    assert outcome.to_payload()["args"] is None


def test_schema_violation_becomes_failure(catalog: CatalogLoader) -> None:
    runner = FakeRunner()
    dispatcher = _dispatcher(catalog, runner)
    outcome = asyncio.run(dispatcher.call("close_window", {"target_window_required_string": 1}))
    assert isinstance(outcome, ToolFailure)
    assert outcome.code == "INVALID_PARAMS"
    assert runner.scripts == []


def test_execution_error_becomes_failure(catalog: CatalogLoader) -> None:
    runner = FakeRunner([failing("Command failed: boom")])
    dispatcher = _dispatcher(catalog, runner)
    outcome = asyncio.run(dispatcher.call("count_window", {}))
    assert isinstance(outcome, ToolFailure)
    assert outcome.error == "AppleScript error: Command failed: boom"
    assert outcome.code == "SCRIPT_ERROR"


def test_calls_are_logged(catalog: CatalogLoader, tmp_path: Path) -> None:
    writer = JsonLogWriter(tmp_path / "tool-invocations-test.jsonl")
    dispatcher = _dispatcher(catalog, FakeRunner([failing()]), log_writer=writer)

    asyncio.run(dispatcher.call("get_all_classes", {}))
    asyncio.run(dispatcher.call("count_window", {}))
    writer.close()

    events = [json.loads(line) for line in writer.path.read_text(encoding="utf-8").splitlines()]
    assert [event["status"] for event in events] == ["ok", "error"]
    assert events[1]["failure_code"] == "SCRIPT_ERROR"
    assert events[1]["attempts"] == 4
    assert events[1]["metadata"] == {"retryable": True}
    assert events[0]["sequence"] == 0 and events[1]["sequence"] == 1


def test_list_tools_matches_catalog(catalog: CatalogLoader) -> None:
    tools = _dispatcher(catalog, FakeRunner()).list_tools()
    assert [tool["name"] for tool in tools] == [tool.name for tool in catalog.list()]


def test_create_from_settings(tmp_path: Path) -> None:
    settings = ServerSettings(osascript=str(tmp_path / "osascript"), max_retries=0)
    dispatcher = ToolDispatcher.create(settings)
    assert len(dispatcher.catalog) == 70
    assert dispatcher.probe is not None
    assert dispatcher.probe.application == "Safari"


def test_create_rejects_bad_catalog_dir(tmp_path: Path) -> None:
    with pytest.raises(CatalogError):
        ToolDispatcher.create(ServerSettings(catalog_dir=tmp_path / "absent"))
