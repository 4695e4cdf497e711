from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

from pydantic import ValidationError

from safari_mcp import __version__

from .dispatcher import ToolDispatcher
from .errors import FailureCode
from .framing import DEFAULT_MAX_BUFFER_BYTES, LineFramer
from .models import (
    CallToolResult,
    InitializeResult,
    RpcRequest,
    ServerInfo,
    ToolCallParams,
    ToolFailure,
    ToolOutcome,
)

__all__ = ["JsonRpcStdioServer"]

LOGGER = logging.getLogger(__name__)

_READ_CHUNK = 64 * 1024
_INITIALIZED_METHODS = frozenset({"initialized", "notifications/initialized"})


class LineWriter(Protocol):
    def write(self, data: bytes) -> object: ...

    async def drain(self) -> None: ...


class JsonRpcStdioServer:
    """JSON-RPC 2.0 server speaking newline-delimited messages over STDIO.

    Each inbound line is handled in its own task, so responses may be written
    in a different order than requests arrived. Every response goes out in a
    single ``write`` call.
    """

    def __init__(
        self,
        dispatcher: ToolDispatcher,
        *,
        version: str = __version__,
        max_buffer_bytes: int = DEFAULT_MAX_BUFFER_BYTES,
    ) -> None:
        self._dispatcher = dispatcher
        self._version = version
        self._max_buffer_bytes = max_buffer_bytes
        self._tasks: set[asyncio.Task[None]] = set()
        self._drain_lock = asyncio.Lock()
        self.initialized = False

    def _error_response(self, *, code: str, request_id: Any, detail: str | None = None) -> dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "error": FailureCode.to_jsonrpc_error(code, detail=detail),
        }

    @staticmethod
    def _result_response(request_id: Any, result: Mapping[str, Any]) -> dict[str, Any]:
        return {"jsonrpc": "2.0", "id": request_id, "result": dict(result)}

    async def handle_message(self, message: Any) -> dict[str, Any] | None:
        """Handle one decoded message; return the response, or ``None`` when none is owed."""

        if not isinstance(message, Mapping):
            LOGGER.error("Dropping non-object JSON-RPC message: %r", message)
            return None
        try:
            request = RpcRequest.model_validate(message)
        except ValidationError as exc:
            LOGGER.error("Invalid JSON-RPC request: %s", exc.errors()[0]["msg"])
            if "id" not in message:
                return None
            return self._error_response(code="INVALID_REQUEST", request_id=message.get("id"))

        if request.is_notification:
            await self.handle_notification(request)
            return None
        return await self.handle_request(request)

    async def handle_request(self, request: RpcRequest) -> dict[str, Any]:
        LOGGER.info("Received request: %s %s", request.method, request.id)
        method = request.method
        if method == "initialize":
            result = InitializeResult(server_info=ServerInfo(version=self._version))
            return self._result_response(request.id, result.model_dump(by_alias=True))
        if method in _INITIALIZED_METHODS:
            self.initialized = True
            return self._result_response(request.id, {})
        if method == "ping":
            return self._result_response(request.id, {})
        if method == "tools/list":
            return self._result_response(request.id, {"tools": self._dispatcher.list_tools()})
        if method == "tools/call":
            try:
                params = ToolCallParams.model_validate(request.params or {})
            except ValidationError as exc:
                detail = exc.errors()[0]["msg"]
                LOGGER.error("Invalid tools/call params: %s", detail)
                raw = request.params or {}
                name = raw.get("name")
                outcome: ToolOutcome = ToolFailure(
                    error=f"Invalid params: {detail}",
                    code="INVALID_PARAMS",
                    tool=name if isinstance(name, str) else None,
                    args=raw.get("arguments"),
                )
            else:
                outcome = await self._dispatcher.call(params.name, params.arguments)
            result = CallToolResult.from_payload(outcome.to_payload())
            return self._result_response(request.id, result.model_dump())

        LOGGER.warning("Unknown method: %s", method)
        return self._error_response(code="METHOD_NOT_FOUND", request_id=request.id, detail=method)

    async def handle_notification(self, request: RpcRequest) -> None:
        if request.method in _INITIALIZED_METHODS:
            LOGGER.info("Client initialized")
            self.initialized = True
        elif request.method.startswith("notifications/"):
            LOGGER.debug("Ignoring notification %s", request.method)
        else:
            LOGGER.warning("Unknown method: %s", request.method)

    async def process_line(self, line: str, writer: LineWriter) -> None:
        try:
            message = json.loads(line)
        except ValueError as exc:
            LOGGER.error("Error processing message: %s", exc)
            return
        try:
            response = await self.handle_message(message)
        except Exception:
            LOGGER.exception("Error processing message")
            if not (isinstance(message, Mapping) and "id" in message):
                return
            response = self._error_response(code="INTERNAL_ERROR", request_id=message["id"])
        if response is not None:
            await self._send(writer, response)

    async def serve(self, reader: asyncio.StreamReader, writer: LineWriter) -> None:
        """Read ``reader`` until EOF, then wait for in-flight requests to finish.

        A trailing line without its newline is never dispatched.
        """

        framer = LineFramer(self._max_buffer_bytes)
        while True:
            chunk = await reader.read(_READ_CHUNK)
            if not chunk:
                break
            for line in framer.feed(chunk):
                self._spawn(line, writer)
        tail = framer.drain()
        if tail:
            LOGGER.warning("Discarding unterminated line at end of input (%d chars)", len(tail))
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _spawn(self, line: str, writer: LineWriter) -> None:
        task = asyncio.create_task(self.process_line(line, writer))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send(self, writer: LineWriter, response: Mapping[str, Any]) -> None:
        data = (json.dumps(response, ensure_ascii=False) + "\n").encode("utf-8")
        writer.write(data)
        async with self._drain_lock:
            await writer.drain()
