"""Wire models for the JSON-RPC transport and tool outcomes."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "CallToolResult",
    "InitializeResult",
    "RpcRequest",
    "ServerInfo",
    "TextContent",
    "ToolCallParams",
    "ToolFailure",
    "ToolOutcome",
    "ToolSuccess",
]

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "safari-applescript"


class RpcRequest(BaseModel):
    """Inbound JSON-RPC message; a missing ``id`` marks a notification."""

    model_config = ConfigDict(extra="allow")

    jsonrpc: str = "2.0"
    id: int | str | None = None
    method: str
    params: dict[str, Any] | None = None

    @property
    def is_notification(self) -> bool:
        return "id" not in self.model_fields_set


class ToolCallParams(BaseModel):
    """``params`` of a ``tools/call`` request."""

    model_config = ConfigDict(extra="allow")

    name: str
    arguments: dict[str, Any] | None = None


class TextContent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["text"] = "text"
    text: str


class CallToolResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    content: list[TextContent]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> CallToolResult:
        return cls(content=[TextContent(text=json.dumps(payload, indent=2, ensure_ascii=False))])


class ServerInfo(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = SERVER_NAME
    version: str


class InitializeResult(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    protocol_version: str = Field(default=PROTOCOL_VERSION, alias="protocolVersion")
    capabilities: dict[str, Any] = Field(default_factory=lambda: {"tools": {}})
    server_info: ServerInfo = Field(alias="serverInfo")


@dataclass(slots=True)
class ToolSuccess:
    payload: dict[str, Any]

    def to_payload(self) -> dict[str, Any]:
        return dict(self.payload)


@dataclass(slots=True)
class ToolFailure:
    """A domain failure; still a successful JSON-RPC response on the wire."""

    error: str
    code: str
    tool: str | None = None
    args: Any = None
    include_call: bool = True

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": False, "error": self.error}
        if self.include_call:
            payload["tool"] = self.tool
            payload["args"] = self.args
        return payload


ToolOutcome = ToolSuccess | ToolFailure
