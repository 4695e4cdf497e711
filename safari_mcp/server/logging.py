"""Structured tool-invocation logging for the stdio server."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping
from uuid import uuid4

_LOG_PREFIX = "tool-invocations"


@dataclass
class ToolLogEvent:
    """One ``tools/call`` as recorded in the JSONL log."""

    ts: datetime
    tool: str
    status: str
    duration_ms: float
    input_bytes: int
    output_bytes: int
    attempts: int | None = None
    failure_code: str | None = None
    error: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        ts = self.ts
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        else:
            ts = ts.astimezone(timezone.utc)

        return {
            "ts": ts.isoformat().replace("+00:00", "Z"),
            "tool": self.tool,
            "status": self.status,
            "duration_ms": float(self.duration_ms),
            "attempts": self.attempts,
            "input_bytes": int(self.input_bytes),
            "output_bytes": int(self.output_bytes),
            "failure_code": self.failure_code,
            "error": self.error,
            "metadata": dict(self.metadata or {}),
        }


class JsonLogWriter:
    """Persist tool log events to newline-delimited JSON."""

    def __init__(self, path: str | Path, *, retention: int = 5) -> None:
        self.path = Path(path)
        self._retention = max(retention, 1)
        self._lock = threading.Lock()
        self._run_id = uuid4().hex
        self._sequence = 0
        self._buffer: list[str] = []
        self._handle = None
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._enforce_retention()

    @classmethod
    def in_directory(cls, log_dir: str | Path, *, retention: int = 5) -> JsonLogWriter:
        """Open a fresh, timestamped log file under ``log_dir``."""

        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        return cls(Path(log_dir) / f"{_LOG_PREFIX}-{stamp}.jsonl", retention=retention)

    @property
    def run_id(self) -> str:
        return self._run_id

    def write(self, event: ToolLogEvent) -> None:
        payload = event.to_payload()
        payload["run_id"] = self._run_id

        with self._lock:
            payload["sequence"] = self._sequence
            self._sequence += 1
            line = json.dumps(payload, sort_keys=True, ensure_ascii=False) + "\n"
            self._buffer.append(line)
            self._ensure_handle()
            self._flush_buffer()

    def close(self) -> None:
        with self._lock:
            self._ensure_handle()
            self._flush_buffer()
            if self._handle is not None:
                try:
                    self._handle.flush()
                finally:
                    self._handle.close()
                    self._handle = None

    def __enter__(self) -> JsonLogWriter:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _ensure_handle(self) -> None:
        if self._handle is not None:
            return
        try:
            self._handle = self.path.open("a", encoding="utf-8")
        except OSError:
            self._handle = None

    def _flush_buffer(self) -> None:
        if not self._buffer or self._handle is None:
            return
        try:
            self._handle.writelines(self._buffer)
            self._handle.flush()
            self._buffer.clear()
        except OSError:
            # Keep the buffer; the next write reopens the file.
            try:
                self._handle.close()
            finally:
                self._handle = None

    def _enforce_retention(self) -> None:
        directory = self.path.parent
        try:
            candidates = sorted(
                (p for p in directory.glob(f"{_LOG_PREFIX}-*.jsonl") if p.is_file()),
                key=lambda entry: entry.stat().st_mtime,
            )
        except OSError:
            return

        # The file for this run may not exist yet; leave room for it.
        excess = len(candidates) - (self._retention - 1)
        for old_path in candidates[: max(excess, 0)]:
            if old_path == self.path:
                continue
            try:
                old_path.unlink()
            except OSError:
                continue


__all__ = ["JsonLogWriter", "ToolLogEvent"]
