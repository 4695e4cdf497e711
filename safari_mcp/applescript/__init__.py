"""AppleScript value marshalling, script synthesis and execution."""

from .availability import ApplicationProbe
from .casting import (
    BoolValue,
    CastValue,
    LiteralValue,
    NullValue,
    NumberValue,
    TextValue,
    cast_value,
    infer_literal,
    universal_cast,
)
from .escaping import escape_applescript
from .executor import (
    ExecutionError,
    ExecutionResult,
    OsascriptRunner,
    RetryPolicy,
    ScriptExecutor,
    ScriptRunError,
)
from .synthesis import (
    MissingArgumentError,
    ParamSlot,
    PropertiesSlot,
    PropertySlot,
    ScriptSynthesizer,
)

__all__ = [
    "ApplicationProbe",
    "BoolValue",
    "CastValue",
    "ExecutionError",
    "ExecutionResult",
    "LiteralValue",
    "MissingArgumentError",
    "NullValue",
    "NumberValue",
    "OsascriptRunner",
    "ParamSlot",
    "PropertiesSlot",
    "PropertySlot",
    "RetryPolicy",
    "ScriptExecutor",
    "ScriptRunError",
    "ScriptSynthesizer",
    "TextValue",
    "cast_value",
    "escape_applescript",
    "infer_literal",
    "universal_cast",
]
