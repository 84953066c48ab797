"""Buffered forward-only byte scanner.

Wraps a binary stream (plain file, gzip stream, BytesIO) and exposes a growing buffer
addressed relative to `offset`, the absolute stream offset of the first buffered byte.
Callers look ahead freely (`find`, `view`, `ensure`) and only drop bytes with
`consume` once a record has been accepted or rejected.
"""

from __future__ import annotations
from typing import BinaryIO, Optional

DEFAULT_CHUNK_SIZE = 1 << 20


class ByteScanner:
    def __init__(
        self,
        stream: BinaryIO,
        offset: int = 0,
        *,
        prefix: bytes = b"",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self._stream = stream
        self._buf = bytearray(prefix)
        self._offset = offset - len(prefix)
        self._chunk_size = chunk_size
        self._eof = False

    @property
    def offset(self) -> int:
        return self._offset

    def __len__(self) -> int:
        return len(self._buf)

    def _fill(self) -> bool:
        if self._eof:
            return False
        chunk = self._stream.read(self._chunk_size)
        if not chunk:
            self._eof = True
            return False
        self._buf += chunk
        return True

    def ensure(self, n: int) -> int:
        """Buffer at least `n` bytes if the input has them; return the buffered length."""
        while len(self._buf) < n and self._fill():
            pass
        return len(self._buf)

    def find(self, pattern: bytes, start: int = 0, limit: Optional[int] = None) -> int:
        """Relative position of `pattern` at or after `start`, or -1.

        With `limit`, gives up once that many bytes are buffered without a match.
        """
        search_from = start
        while True:
            idx = self._buf.find(pattern, search_from)
            if idx >= 0:
                return idx
            search_from = max(start, len(self._buf) - len(pattern) + 1)
            if limit is not None and len(self._buf) >= limit:
                return -1
            if not self._fill():
                return -1

    def view(self, start: int, end: int) -> bytes:
        self.ensure(end)
        return bytes(self._buf[start:end])

    def consume(self, n: int) -> None:
        n = min(n, len(self._buf))
        del self._buf[:n]
        self._offset += n

    def seek(self, pattern: bytes) -> bool:
        """Drop bytes until `pattern` starts the buffer. False at end of input.

        Memory stays bounded while skipping: only a pattern-sized tail is kept
        between reads.
        """
        keep = len(pattern) - 1
        while True:
            idx = self._buf.find(pattern)
            if idx >= 0:
                self.consume(idx)
                return True
            if len(self._buf) > keep:
                self.consume(len(self._buf) - keep)
            if not self._fill():
                return False
