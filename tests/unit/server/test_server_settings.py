from __future__ import annotations

from pathlib import Path

import pytest

from safari_mcp.catalog.handlers import ValidationMode
from safari_mcp.server.cli import build_settings, parse_args
from safari_mcp.server.config import ServerSettings


def test_defaults() -> None:
    settings = ServerSettings()
    assert settings.osascript == "osascript"
    assert settings.application == "Safari"
    assert settings.timeout_seconds == 10.0
    assert settings.max_output_bytes == 1024 * 1024
    assert settings.max_retries == 3
    assert settings.retry_base_delay_seconds == 1.0
    assert settings.argument_validation is ValidationMode.ENFORCE
    assert settings.legacy_quotes is False
    assert settings.log_dir is None


def test_from_env() -> None:
    settings = ServerSettings.from_env(
        {
            "SAFARI_MCP_OSASCRIPT": "/usr/local/bin/osascript",
            "SAFARI_MCP_TIMEOUT_MS": "2500",
            "SAFARI_MCP_MAX_RETRIES": "0",
            "SAFARI_MCP_RETRY_BASE_DELAY_MS": "50",
            "SAFARI_MCP_ARGUMENT_VALIDATION": "shadow",
            "SAFARI_MCP_LEGACY_QUOTES": "yes",
            "SAFARI_MCP_LOG_DIR": "/tmp/safari-logs",
            "SAFARI_MCP_LOG_LEVEL": "debug",
            "SAFARI_MCP_SKIP_PROBE": "1",
            "UNRELATED": "ignored",
        }
    )
    assert settings.osascript == "/usr/local/bin/osascript"
    assert settings.timeout_seconds == 2.5
    assert settings.max_retries == 0
    assert settings.retry_base_delay_seconds == 0.05
    assert settings.argument_validation is ValidationMode.SHADOW
    assert settings.legacy_quotes is True
    assert settings.log_dir == Path("/tmp/safari-logs")
    assert settings.log_level == "DEBUG"
    assert settings.skip_probe is True


@pytest.mark.parametrize(
    "environ",
    [
        {"SAFARI_MCP_TIMEOUT_MS": "soon"},
        {"SAFARI_MCP_TIMEOUT_MS": "0"},
        {"SAFARI_MCP_MAX_RETRIES": "-1"},
        {"SAFARI_MCP_LEGACY_QUOTES": "maybe"},
        {"SAFARI_MCP_LOG_LEVEL": "chatty"},
        {"SAFARI_MCP_APPLICATION": ""},
    ],
)
def test_invalid_environment(environ: dict[str, str]) -> None:
    with pytest.raises(ValueError):
        ServerSettings.from_env(environ)


def test_cli_flags_override_environment() -> None:
    args = parse_args(["--timeout-ms", "500", "--legacy-quotes", "--argument-validation", "off"])
    settings = build_settings(args, {"SAFARI_MCP_TIMEOUT_MS": "9000", "SAFARI_MCP_MAX_RETRIES": "1"})
    assert settings.timeout_ms == 500
    assert settings.max_retries == 1
    assert settings.legacy_quotes is True
    assert settings.argument_validation is ValidationMode.OFF


def test_absent_flags_keep_environment() -> None:
    settings = build_settings(parse_args([]), {"SAFARI_MCP_LEGACY_QUOTES": "true"})
    assert settings.legacy_quotes is True
    assert settings.skip_probe is False
