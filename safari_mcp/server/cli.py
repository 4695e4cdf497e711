from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path
from typing import IO

from safari_mcp import __version__
from safari_mcp.catalog.handlers import ValidationMode
from safari_mcp.catalog.loader import CatalogError

from .config import ServerSettings
from .dispatcher import ToolDispatcher
from .logging import JsonLogWriter
from .stdio import JsonRpcStdioServer

LOGGER = logging.getLogger("safari_mcp")

_SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the Safari AppleScript MCP server on STDIO")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--osascript", default=None, help="AppleScript interpreter binary")
    parser.add_argument("--application", default=None, help="Application to script")
    parser.add_argument(
        "--timeout-ms",
        type=int,
        default=None,
        help="Per-attempt script timeout in milliseconds",
    )
    parser.add_argument(
        "--max-output-bytes",
        type=int,
        default=None,
        help="Maximum interpreter output per stream in bytes",
    )
    parser.add_argument("--max-retries", type=int, default=None, help="Retries after a failed run")
    parser.add_argument(
        "--retry-base-delay-ms",
        type=int,
        default=None,
        help="Delay before the first retry; doubles on each retry",
    )
    parser.add_argument(
        "--argument-validation",
        choices=[mode.value for mode in ValidationMode],
        default=None,
        help="How tool arguments are checked against their input schema",
    )
    parser.add_argument(
        "--legacy-quotes",
        action="store_true",
        default=None,
        help="Leave double quotes in string literals unescaped",
    )
    parser.add_argument("--catalog-dir", default=None, help="Directory of *.tools.yaml files")
    parser.add_argument("--log-dir", default=None, help="Directory for structured tool logs")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARN", "ERROR"],
        default=None,
        help="Logging level",
    )
    parser.add_argument(
        "--skip-probe",
        action="store_true",
        default=None,
        help="Do not probe the application at startup",
    )
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace, environ: dict[str, str] | None = None) -> ServerSettings:
    settings = ServerSettings.from_env(environ)
    return settings.with_overrides(
        osascript=args.osascript,
        application=args.application,
        timeout_ms=args.timeout_ms,
        max_output_bytes=args.max_output_bytes,
        max_retries=args.max_retries,
        retry_base_delay_ms=args.retry_base_delay_ms,
        argument_validation=(
            ValidationMode(args.argument_validation) if args.argument_validation else None
        ),
        legacy_quotes=args.legacy_quotes,
        catalog_dir=Path(args.catalog_dir) if args.catalog_dir else None,
        log_dir=Path(args.log_dir) if args.log_dir else None,
        log_level=args.log_level,
        skip_probe=args.skip_probe,
    )


class _StdoutWriter:
    """Byte writer over a text stream's buffer; only protocol lines go here."""

    def __init__(self, stream: IO[str]) -> None:
        self._buffer = stream.buffer

    def write(self, data: bytes) -> None:
        self._buffer.write(data)

    async def drain(self) -> None:
        self._buffer.flush()


async def _open_stdin() -> asyncio.StreamReader:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)
    return reader


async def _run_server(settings: ServerSettings) -> None:
    log_writer = JsonLogWriter.in_directory(settings.log_dir) if settings.log_dir else None
    try:
        dispatcher = ToolDispatcher.create(settings, log_writer=log_writer)
        LOGGER.info("Loaded %d tools", len(dispatcher.catalog))

        if not settings.skip_probe and dispatcher.probe is not None:
            LOGGER.info("Testing %s availability...", settings.application)
            if await dispatcher.probe.is_available():
                LOGGER.info("%s is available", settings.application)
            else:
                LOGGER.warning("%s is not available or not running", settings.application)

        server = JsonRpcStdioServer(dispatcher)
        reader = await _open_stdin()
        serve_task = asyncio.create_task(server.serve(reader, _StdoutWriter(sys.stdout)))

        loop = asyncio.get_running_loop()
        for signum in _SHUTDOWN_SIGNALS:
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(signum, serve_task.cancel)

        LOGGER.info("Safari AppleScript MCP server running on stdio")
        with contextlib.suppress(asyncio.CancelledError):
            await serve_task
        LOGGER.info("Shutting down Safari AppleScript MCP server")
    finally:
        if log_writer is not None:
            log_writer.close()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        settings = build_settings(args)
    except ValueError as exc:
        logging.basicConfig(stream=sys.stderr, level=logging.INFO)
        LOGGER.error("Fatal error starting server: %s", exc)
        return 1

    level = "WARNING" if settings.log_level == "WARN" else settings.log_level
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(_run_server(settings))
    except KeyboardInterrupt:
        return 0
    except (CatalogError, OSError) as exc:
        LOGGER.error("Fatal error starting server: %s", exc)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
