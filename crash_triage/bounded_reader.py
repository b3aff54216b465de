"""Byte-capped reading of untrusted attachment content."""
from __future__ import annotations

import io
import os
from typing import BinaryIO

DEFAULT_CHUNK_SIZE = 64 * 1024


class LimitExceededError(OSError):
    """Raised when a stream delivers more bytes than its reader allows."""

    def __init__(self, limit: int):
        super().__init__(f"Trying to read more than {limit} bytes")
        self.limit = limit


class BoundedReader(io.RawIOBase):
    """Stream wrapper which reads at most ``limit`` bytes.

    Reads never silently truncate: once the budget is used up, the next read
    raises :class:`LimitExceededError` unless the wrapped stream is at its end.
    """

    def __init__(self, stream: BinaryIO, limit: int):
        super().__init__()
        if limit < 0:
            raise ValueError("limit must not be negative")
        self._stream = stream
        self.limit = limit
        self.total_read = 0

    @property
    def remaining(self) -> int:
        return self.limit - self.total_read

    def _max_read_amount(self, desired: int) -> int:
        if desired <= 0:
            return 0
        remaining = self.remaining
        if remaining <= 0:
            # Budget used up exactly at end of stream is still a complete read
            if self._stream.read(1):
                raise LimitExceededError(self.limit)
            return 0
        return min(remaining, desired)

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        self._checkClosed()
        if size is None or size < 0:
            return self.readall()

        amount = self._max_read_amount(size)
        if amount == 0:
            return b""
        data = self._stream.read(amount) or b""
        self.total_read += len(data)
        return data

    def readall(self) -> bytes:
        chunks = []
        while True:
            chunk = self.read(DEFAULT_CHUNK_SIZE)
            if not chunk:
                break
            chunks.append(chunk)
        return b"".join(chunks)

    def readinto(self, buffer) -> int:
        data = self.read(len(buffer))
        n = len(data)
        buffer[:n] = data
        return n

    def available(self) -> int:
        """Bytes readable without blocking, never more than the remaining budget."""
        return max(0, min(self._underlying_available(), self.remaining))

    def _underlying_available(self) -> int:
        if hasattr(self._stream, "available"):
            return self._stream.available()
        try:
            if self._stream.seekable():
                position = self._stream.tell()
                end = self._stream.seek(0, os.SEEK_END)
                self._stream.seek(position)
                return end - position
        except (AttributeError, OSError):
            pass
        return 0

    def close(self) -> None:
        if not self.closed:
            try:
                self._stream.close()
            finally:
                super().close()


def read_text(stream: BinaryIO, limit: int, encoding: str = "utf-8") -> str:
    """Read a whole stream under a byte cap and decode it.

    The stream is closed on every path. Raises :class:`LimitExceededError`
    when the stream is larger than ``limit``.
    """
    with BoundedReader(stream, limit) as reader:
        data = reader.read()
    return data.decode(encoding, errors="replace")
