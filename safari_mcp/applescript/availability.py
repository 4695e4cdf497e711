"""Probe whether the scripted application answers Apple events."""

from __future__ import annotations

import logging

from .escaping import escape_applescript
from .executor import ExecutionError, ScriptExecutor

__all__ = ["ApplicationProbe"]

LOGGER = logging.getLogger(__name__)

_EXPECTED_REPLY = "available"


class ApplicationProbe:
    """Ask the application to echo a fixed token."""

    def __init__(self, executor: ScriptExecutor, application: str = "Safari") -> None:
        self._executor = executor
        self.application = application

    @property
    def script(self) -> str:
        app = escape_applescript(self.application)
        return f'tell application "{app}" to return "{_EXPECTED_REPLY}"'

    async def is_available(self) -> bool:
        try:
            reply = await self._executor.execute(self.script)
        except ExecutionError as exc:
            LOGGER.debug("%s availability probe failed: %s", self.application, exc)
            return False
        return reply == _EXPECTED_REPLY
