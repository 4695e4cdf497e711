from __future__ import annotations

import codecs
import logging

__all__ = ["DEFAULT_MAX_BUFFER_BYTES", "LineFramer"]

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_BUFFER_BYTES = 16 * 1024 * 1024


class LineFramer:
    """Split a byte stream into newline-terminated text lines.

    The trailing partial line is kept until more data arrives. A partial line
    that grows past ``max_buffer_bytes`` is discarded, together with the rest
    of that line up to its newline.
    """

    def __init__(self, max_buffer_bytes: int = DEFAULT_MAX_BUFFER_BYTES) -> None:
        if max_buffer_bytes <= 0:
            raise ValueError("max_buffer_bytes must be a positive integer")
        self.max_buffer_bytes = max_buffer_bytes
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._fragments: list[str] = []
        self._partial_bytes = 0
        self._discarding = False

    @property
    def pending(self) -> str:
        return "".join(self._fragments)

    def feed(self, chunk: bytes | str) -> list[str]:
        """Consume ``chunk`` and return every complete, non-blank line in order."""

        text = chunk if isinstance(chunk, str) else self._decoder.decode(chunk)
        lines: list[str] = []
        while text:
            head, newline, text = text.partition("\n")
            if not newline:
                self._append(head)
                break
            if self._discarding:
                self._discarding = False
                continue
            line = self._take_partial() + head
            if line.strip():
                lines.append(line.strip())
        return lines

    def drain(self) -> str:
        """Return and clear the unterminated partial line at end of input.

        The result is never a complete message; callers only report it.
        """

        tail = self._take_partial() + self._decoder.decode(b"", final=True)
        self._discarding = False
        return tail.strip()

    def _take_partial(self) -> str:
        partial = "".join(self._fragments)
        self._fragments.clear()
        self._partial_bytes = 0
        return partial

    def _append(self, fragment: str) -> None:
        if self._discarding or not fragment:
            return
        self._fragments.append(fragment)
        self._partial_bytes += len(fragment.encode("utf-8"))
        if self._partial_bytes > self.max_buffer_bytes:
            LOGGER.error(
                "Discarding partial line larger than %d bytes without a newline",
                self.max_buffer_bytes,
            )
            self._fragments.clear()
            self._partial_bytes = 0
            self._discarding = True
