from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

__all__ = [
    "Attempting",
    "ExecutionError",
    "ExecutionResult",
    "Failed",
    "OsascriptRunner",
    "RetryPolicy",
    "RetryState",
    "ScriptExecutor",
    "ScriptRun",
    "ScriptRunError",
    "Succeeded",
    "Waiting",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_OUTPUT_BYTES = 1024 * 1024
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_SECONDS = 1.0

_READ_CHUNK = 64 * 1024

Sleep = Callable[[float], Awaitable[object]]


class ScriptRunError(Exception):
    """Raised when a single interpreter run fails."""


class ExecutionError(Exception):
    """Raised once every retry of a script has failed."""

    def __init__(self, message: str, *, attempts: int) -> None:
        super().__init__(f"AppleScript error: {message}")
        self.reason = message
        self.attempts = attempts


@dataclass(slots=True)
class ScriptRun:
    """Raw output of one interpreter process."""

    stdout: str
    stderr: str
    returncode: int


@dataclass(slots=True)
class ExecutionResult:
    """Outcome of a script that eventually ran to completion."""

    stdout: str
    stderr: str
    attempts: int
    duration_ms: float

    @property
    def succeeded(self) -> bool:
        return self.stdout != "Error"


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Fixed exponential backoff without jitter."""

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY_SECONDS

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2**attempt)


@dataclass(frozen=True, slots=True)
class Attempting:
    attempt: int


@dataclass(frozen=True, slots=True)
class Waiting:
    attempt: int
    delay: float
    error: str


@dataclass(frozen=True, slots=True)
class Succeeded:
    attempt: int
    run: ScriptRun


@dataclass(frozen=True, slots=True)
class Failed:
    attempt: int
    error: str


RetryState = Attempting | Waiting | Succeeded | Failed


class OsascriptRunner:
    """Run one script in a fresh ``osascript`` process."""

    def __init__(
        self,
        binary: str = "osascript",
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    ) -> None:
        self.binary = binary
        self.timeout = timeout
        self.max_output_bytes = max_output_bytes

    async def run(self, script: str) -> ScriptRun:
        try:
            process = await asyncio.create_subprocess_exec(
                self.binary,
                "-e",
                script,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ScriptRunError(f"failed to start {self.binary}: {exc}") from exc

        assert process.stdout is not None and process.stderr is not None
        try:
            stdout, stderr, _ = await asyncio.wait_for(
                asyncio.gather(
                    self._read_capped(process.stdout, "stdout"),
                    self._read_capped(process.stderr, "stderr"),
                    process.wait(),
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            await _terminate(process)
            raise ScriptRunError(f"timed out after {self.timeout:g}s") from exc
        except ScriptRunError:
            await _terminate(process)
            raise

        stdout_text = stdout.decode("utf-8", errors="replace")
        stderr_text = stderr.decode("utf-8", errors="replace")
        if process.returncode != 0:
            detail = stderr_text.strip() or f"exit code {process.returncode}"
            raise ScriptRunError(f"Command failed: {self.binary} -e <script>: {detail}")
        return ScriptRun(stdout=stdout_text, stderr=stderr_text, returncode=process.returncode)

    async def _read_capped(self, stream: asyncio.StreamReader, name: str) -> bytes:
        chunks: list[bytes] = []
        total = 0
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                return b"".join(chunks)
            total += len(chunk)
            if total > self.max_output_bytes:
                raise ScriptRunError(f"{name} maxBuffer length exceeded ({self.max_output_bytes} bytes)")
            chunks.append(chunk)


class ScriptExecutor:
    """Run scripts with retries, driven as an explicit state machine.

    ``Attempting(n)`` either succeeds, or moves to ``Waiting(delay)`` and back
    to ``Attempting(n + 1)``; after ``max_retries`` retries the machine ends in
    ``Failed``. ``sleep`` is injectable so tests can observe delays without
    waiting for them.
    """

    def __init__(
        self,
        runner: OsascriptRunner,
        *,
        policy: RetryPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self._runner = runner
        self._policy = policy or RetryPolicy()
        self._sleep = sleep
        self._logger = logger or LOGGER

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def transition(self, state: Attempting, error: ScriptRunError | None, run: ScriptRun | None) -> RetryState:
        """Return the state following one attempt."""

        if error is None:
            assert run is not None
            return Succeeded(state.attempt, run)
        if state.attempt >= self._policy.max_retries:
            return Failed(state.attempt, str(error))
        return Waiting(state.attempt, self._policy.delay_for(state.attempt), str(error))

    async def run(self, script: str) -> ExecutionResult:
        """Execute ``script`` until it succeeds or retries are exhausted."""

        start_time = time.perf_counter()
        state: RetryState = Attempting(0)
        while True:
            if isinstance(state, Attempting):
                state = await self._attempt(script, state)
            elif isinstance(state, Waiting):
                self._logger.info(
                    "AppleScript attempt %d failed (%s); retrying in %.1fs",
                    state.attempt + 1,
                    state.error,
                    state.delay,
                )
                await self._sleep(state.delay)
                state = Attempting(state.attempt + 1)
            elif isinstance(state, Succeeded):
                if state.run.stderr.strip():
                    self._logger.warning("AppleScript stderr: %s", state.run.stderr.strip())
                return ExecutionResult(
                    stdout=state.run.stdout.strip(),
                    stderr=state.run.stderr,
                    attempts=state.attempt + 1,
                    duration_ms=_elapsed_ms(start_time),
                )
            else:
                self._logger.error(
                    "AppleScript execution error after %d attempt(s): %s",
                    state.attempt + 1,
                    state.error,
                )
                raise ExecutionError(state.error, attempts=state.attempt + 1)

    async def execute(self, script: str) -> str:
        """Execute ``script`` and return its trimmed standard output."""

        result = await self.run(script)
        return result.stdout

    async def _attempt(self, script: str, state: Attempting) -> RetryState:
        self._logger.debug("Running AppleScript (attempt %d)", state.attempt + 1)
        try:
            run = await self._runner.run(script)
        except ScriptRunError as exc:
            return self.transition(state, exc, None)
        return self.transition(state, None, run)


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0
