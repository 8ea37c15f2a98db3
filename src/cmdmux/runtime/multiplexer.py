"""Line-atomic output multiplexing.

Many subprocess streams write into one terminal. Each stream gets an
OutputChannel that assembles bytes into lines; complete lines are written to
the shared sink one at a time under a single lock, so a line from one command
never contains bytes from another.
"""

from __future__ import annotations

import logging
import sys
import threading
from typing import BinaryIO

__all__ = [
    "OutputChannel",
    "OutputMultiplexer",
    "DEFAULT_MAX_LINE_BYTES",
]

logger = logging.getLogger(__name__)

DEFAULT_MAX_LINE_BYTES = 64 * 1024


class OutputMultiplexer:
    """Serialize many byte streams into one sink, one whole line per write.

    Example:
        mux = OutputMultiplexer(sys.stdout.buffer)
        out = mux.channel("web")
        out.feed(b"listening on :8080\\nready")
        out.close()
        # sink: b"[web] listening on :8080\\n[web] ready\\n"
    """

    def __init__(
        self,
        sink: BinaryIO | None = None,
        *,
        max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
    ) -> None:
        if max_line_bytes <= 0:
            raise ValueError("max_line_bytes must be positive")
        self._sink = sink if sink is not None else sys.stdout.buffer
        self._lock = threading.Lock()
        self.max_line_bytes = max_line_bytes
        self._lines_written = 0

    @property
    def lines_written(self) -> int:
        """Number of atomic writes made to the sink so far."""
        return self._lines_written

    def channel(self, name: str = "", *, silence: bool = False) -> OutputChannel:
        """Create a line-assembly channel for one stream of one command.

        Args:
            name: Prefix label; empty means no prefix
            silence: Discard everything fed to the channel
        """
        prefix = f"[{name}] ".encode() if name else b""
        return OutputChannel(self, prefix, silence=silence)

    def write_line(self, line: bytes) -> None:
        """Write one complete line to the sink atomically.

        The lock covers exactly this line's write and flush.
        """
        with self._lock:
            self._sink.write(line)
            self._sink.flush()
            self._lines_written += 1


class OutputChannel:
    """Line-assembly buffer for a single stream.

    Not shared between streams: stdout and stderr of the same command each
    get their own channel, so a partial stdout line is never completed by
    stderr bytes.
    """

    def __init__(self, mux: OutputMultiplexer, prefix: bytes, *, silence: bool = False) -> None:
        self._mux = mux
        self._prefix = prefix
        self.silence = silence
        self._buffer = bytearray()
        self._closed = False
        self.bytes_received = 0

    @property
    def pending(self) -> bytes:
        """Bytes received but not yet terminated by a newline."""
        return bytes(self._buffer)

    def feed(self, chunk: bytes) -> None:
        """Accept a raw chunk and emit every line it completes."""
        if self._closed:
            raise ValueError("channel is closed")
        self.bytes_received += len(chunk)
        if self.silence or not chunk:
            return

        self._buffer.extend(chunk)
        start = 0
        while True:
            newline = self._buffer.find(b"\n", start)
            if newline < 0:
                break
            self._write(self._buffer[start : newline + 1])
            start = newline + 1
        del self._buffer[:start]

        # Bound memory for producers that never write a newline
        limit = self._mux.max_line_bytes
        while len(self._buffer) >= limit:
            self._write(self._end_piece(self._buffer[:limit]))
            del self._buffer[:limit]

    def close(self) -> None:
        """Flush a trailing partial line and refuse further input.

        Unprefixed channels pass the remainder through untouched. Prefixed
        channels end it with a newline so the next command's line starts
        on its own row.
        """
        if self._closed:
            return
        self._closed = True
        if self._buffer and not self.silence:
            self._write(self._end_piece(self._buffer))
        self._buffer.clear()

    def _end_piece(self, piece: bytes | bytearray) -> bytes:
        if not self._prefix:
            return bytes(piece)
        return bytes(piece) + b"\n"

    def _write(self, line: bytes | bytearray) -> None:
        self._mux.write_line(self._prefix + bytes(line))
