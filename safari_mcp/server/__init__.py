"""STDIO JSON-RPC transport and tool dispatch."""

from .config import ServerSettings
from .dispatcher import ToolDispatcher
from .errors import ApplicationUnavailableError, FailureCode, UnknownToolError
from .framing import LineFramer
from .stdio import JsonRpcStdioServer

__all__ = [
    "ApplicationUnavailableError",
    "FailureCode",
    "JsonRpcStdioServer",
    "LineFramer",
    "ServerSettings",
    "ToolDispatcher",
    "UnknownToolError",
]
