from __future__ import annotations

import json
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from safari_mcp.applescript.availability import ApplicationProbe
from safari_mcp.applescript.executor import (
    ExecutionError,
    OsascriptRunner,
    RetryPolicy,
    ScriptExecutor,
)
from safari_mcp.applescript.synthesis import ScriptSynthesizer
from safari_mcp.catalog.handlers import ArgumentValidator, IntrospectionHandler, ScriptToolHandler
from safari_mcp.catalog.loader import CatalogLoader, ToolDefinition

from .config import ServerSettings
from .errors import ApplicationUnavailableError, FailureCode, UnknownToolError
from .logging import JsonLogWriter, ToolLogEvent
from .models import ToolFailure, ToolOutcome, ToolSuccess

__all__ = ["ToolDispatcher"]

LOGGER = logging.getLogger(__name__)

Handler = Callable[[ToolDefinition, Mapping[str, Any]], Awaitable[dict[str, Any]]]


@dataclass(slots=True)
class _CallRecord:
    start_time: float
    attempts: int | None = None


class ToolDispatcher:
    """Route ``tools/call`` requests to catalog handlers.

    Every exception raised while handling a call is turned into a
    :class:`ToolFailure`; callers never see handler errors.
    """

    def __init__(
        self,
        *,
        catalog: CatalogLoader,
        script_handler: Handler,
        static_handler: Handler,
        probe: ApplicationProbe | None,
        validator: ArgumentValidator,
        log_writer: JsonLogWriter | None = None,
    ) -> None:
        self._catalog = catalog
        self._script_handler = script_handler
        self._static_handler = static_handler
        self._probe = probe
        self._validator = validator
        self._log_writer = log_writer

    @classmethod
    def create(
        cls,
        settings: ServerSettings,
        *,
        catalog: CatalogLoader | None = None,
        log_writer: JsonLogWriter | None = None,
    ) -> ToolDispatcher:
        if catalog is None:
            if settings.catalog_dir is not None:
                catalog = CatalogLoader()
                catalog.load_dir(settings.catalog_dir)
            else:
                catalog = CatalogLoader.load_default()
        runner = OsascriptRunner(
            settings.osascript,
            timeout=settings.timeout_seconds,
            max_output_bytes=settings.max_output_bytes,
        )
        executor = ScriptExecutor(
            runner,
            policy=RetryPolicy(
                max_retries=settings.max_retries,
                base_delay=settings.retry_base_delay_seconds,
            ),
        )
        probe = ApplicationProbe(
            ScriptExecutor(runner, policy=RetryPolicy(max_retries=0)),
            application=settings.application,
        )
        synthesizer = ScriptSynthesizer(settings.application, legacy_quotes=settings.legacy_quotes)
        return cls(
            catalog=catalog,
            script_handler=ScriptToolHandler(synthesizer, executor),
            static_handler=IntrospectionHandler(catalog),
            probe=probe,
            validator=ArgumentValidator(settings.argument_validation),
            log_writer=log_writer,
        )

    @property
    def catalog(self) -> CatalogLoader:
        return self._catalog

    @property
    def probe(self) -> ApplicationProbe | None:
        return self._probe

    def list_tools(self) -> list[dict[str, Any]]:
        return [tool.to_listing() for tool in self._catalog.list()]

    async def call(self, name: str, arguments: Mapping[str, Any] | None) -> ToolOutcome:
        record = _CallRecord(start_time=time.perf_counter())
        args = dict(arguments or {})
        try:
            outcome: ToolOutcome = ToolSuccess(await self._call(name, args))
        except ApplicationUnavailableError as exc:
            LOGGER.warning("Tool %s skipped: %s", name, exc)
            outcome = ToolFailure(
                error=str(exc),
                code=FailureCode.classify(exc),
                tool=name,
                args=arguments,
                include_call=False,
            )
        except Exception as exc:
            LOGGER.error("Error in tool '%s': %s", name, exc)
            if isinstance(exc, ExecutionError):
                record.attempts = exc.attempts
            outcome = ToolFailure(
                error=str(exc),
                code=FailureCode.classify(exc),
                tool=name,
                args=arguments,
            )
        self._log_call(name, args, outcome, record)
        return outcome

    async def _call(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        tool = self._catalog.get(name) if name in self._catalog else None
        if (tool is None or tool.requires_application) and self._probe is not None:
            if not await self._probe.is_available():
                raise ApplicationUnavailableError()
        if tool is None:
            raise UnknownToolError(name)
        self._validator.validate(tool, arguments)
        if not tool.requires_application:
            return await self._static_handler(tool, arguments)
        return await self._script_handler(tool, arguments)

    def _log_call(
        self,
        name: str,
        arguments: Mapping[str, Any],
        outcome: ToolOutcome,
        record: _CallRecord,
    ) -> None:
        if self._log_writer is None:
            return
        payload = outcome.to_payload()
        failure = outcome if isinstance(outcome, ToolFailure) else None
        event = ToolLogEvent(
            ts=datetime.now(UTC),
            tool=name,
            status="error" if failure else "ok",
            duration_ms=(time.perf_counter() - record.start_time) * 1000.0,
            attempts=record.attempts,
            input_bytes=_payload_size(arguments),
            output_bytes=_payload_size(payload),
            failure_code=failure.code if failure else None,
            error=failure.error if failure else None,
            metadata={"retryable": FailureCode.is_retryable(failure.code)} if failure else {},
        )
        self._log_writer.write(event)


def _payload_size(payload: Any) -> int:
    return len(json.dumps(payload, default=str, ensure_ascii=False).encode("utf-8"))
