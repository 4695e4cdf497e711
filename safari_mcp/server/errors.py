from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from safari_mcp.applescript.executor import ExecutionError
from safari_mcp.applescript.synthesis import MissingArgumentError
from safari_mcp.catalog.handlers import ToolValidationError

__all__ = ["ApplicationUnavailableError", "FailureCode", "UnknownToolError"]


class UnknownToolError(LookupError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class ApplicationUnavailableError(RuntimeError):
    def __init__(self, message: str = "Application is not available or not running") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class _FailureSpec:
    code: str
    description: str
    retryable: bool
    jsonrpc_code: int
    message: str


class FailureCode:
    """Failure codes shared by tool outcomes, structured logs and JSON-RPC errors."""

    _SPECS: tuple[_FailureSpec, ...] = (
        _FailureSpec(
            "PARSE_ERROR",
            "Inbound line was not valid JSON",
            False,
            -32700,
            "Parse error",
        ),
        _FailureSpec(
            "INVALID_REQUEST",
            "Inbound message was not a JSON-RPC request object",
            False,
            -32600,
            "Invalid request",
        ),
        _FailureSpec(
            "METHOD_NOT_FOUND",
            "JSON-RPC method is not implemented",
            False,
            -32601,
            "Method not found",
        ),
        _FailureSpec(
            "INVALID_PARAMS",
            "Request parameters or tool arguments failed validation",
            False,
            -32602,
            "Invalid params",
        ),
        _FailureSpec(
            "UNKNOWN_TOOL",
            "Requested tool is not in the catalog",
            False,
            -32004,
            "Unknown tool",
        ),
        _FailureSpec(
            "APPLICATION_UNAVAILABLE",
            "Scripted application did not answer the availability probe",
            True,
            -32001,
            "Application is not available or not running",
        ),
        _FailureSpec(
            "SCRIPT_ERROR",
            "AppleScript failed after every retry",
            True,
            -32003,
            "AppleScript error",
        ),
        _FailureSpec(
            "INTERNAL_ERROR",
            "Unexpected server-side failure",
            True,
            -32603,
            "Internal error",
        ),
    )

    _BY_CODE: dict[str, _FailureSpec] = {spec.code: spec for spec in _SPECS}

    @classmethod
    def codes(cls) -> Sequence[str]:
        return tuple(spec.code for spec in cls._SPECS)

    @classmethod
    def _lookup(cls, code: str) -> _FailureSpec:
        if code not in cls._BY_CODE:
            raise KeyError(f"{code} is not a known failure code")
        return cls._BY_CODE[code]

    @classmethod
    def is_retryable(cls, code: str) -> bool:
        return cls._lookup(code).retryable

    @classmethod
    def classify(cls, exc: BaseException) -> str:
        """Return the failure code for an exception raised while handling a tool call."""

        if isinstance(exc, (MissingArgumentError, ToolValidationError)):
            return "INVALID_PARAMS"
        if isinstance(exc, UnknownToolError):
            return "UNKNOWN_TOOL"
        if isinstance(exc, ApplicationUnavailableError):
            return "APPLICATION_UNAVAILABLE"
        if isinstance(exc, ExecutionError):
            return "SCRIPT_ERROR"
        return "INTERNAL_ERROR"

    @classmethod
    def to_jsonrpc_error(cls, code: str, *, detail: str | None = None) -> dict[str, object]:
        spec = cls._lookup(code)
        message = f"{spec.message}: {detail}" if detail else spec.message
        return {
            "code": spec.jsonrpc_code,
            "message": message,
            "data": {"failure": spec.code, "retryable": spec.retryable},
        }

