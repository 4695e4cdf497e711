from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

from safari_mcp.applescript.executor import (
    DEFAULT_BASE_DELAY_SECONDS,
    DEFAULT_MAX_OUTPUT_BYTES,
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT_SECONDS,
)
from safari_mcp.catalog.handlers import ValidationMode

__all__ = ["ServerSettings"]

_ENV_PREFIX = "SAFARI_MCP_"
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}
_LOG_LEVELS = ("DEBUG", "INFO", "WARN", "WARNING", "ERROR")


@dataclass(frozen=True, slots=True)
class ServerSettings:
    """Runtime configuration for the stdio server."""

    osascript: str = "osascript"
    application: str = "Safari"
    timeout_ms: int = int(DEFAULT_TIMEOUT_SECONDS * 1000)
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_base_delay_ms: int = int(DEFAULT_BASE_DELAY_SECONDS * 1000)
    argument_validation: ValidationMode = ValidationMode.ENFORCE
    legacy_quotes: bool = False
    log_dir: Path | None = None
    log_level: str = "INFO"
    skip_probe: bool = False
    catalog_dir: Path | None = None

    def __post_init__(self) -> None:
        if not self.osascript:
            raise ValueError("osascript must name an interpreter binary")
        if not self.application:
            raise ValueError("application must not be empty")
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be a positive integer")
        if self.max_output_bytes <= 0:
            raise ValueError("max_output_bytes must be a positive integer")
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")
        if self.retry_base_delay_ms < 0:
            raise ValueError("retry_base_delay_ms must not be negative")
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def retry_base_delay_seconds(self) -> float:
        return self.retry_base_delay_ms / 1000.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ServerSettings:
        """Build settings from ``SAFARI_MCP_*`` environment variables."""

        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for item in fields(cls):
            raw = env.get(_ENV_PREFIX + item.name.upper())
            if raw is None:
                continue
            values[item.name] = _coerce(item.name, raw)
        return cls(**values)

    def with_overrides(self, **overrides: Any) -> ServerSettings:
        """Return a copy with every non-``None`` override applied."""

        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes) if changes else self


def _coerce(name: str, raw: str) -> Any:
    value = raw.strip()
    if name in {"timeout_ms", "max_output_bytes", "max_retries", "retry_base_delay_ms"}:
        try:
            return int(value)
        except ValueError as exc:
            raise ValueError(f"{_ENV_PREFIX}{name.upper()} must be an integer, got {raw!r}") from exc
    if name in {"legacy_quotes", "skip_probe"}:
        lowered = value.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"{_ENV_PREFIX}{name.upper()} must be a boolean, got {raw!r}")
    if name == "argument_validation":
        return ValidationMode.from_str(value)
    if name in {"log_dir", "catalog_dir"}:
        return Path(value).expanduser() if value else None
    if name == "log_level":
        return value.upper()
    return value
