"""Bounds-checked little-endian cursor over an in-memory buffer."""

from __future__ import annotations

import struct


class PluginDecodeError(ValueError):
    """Base class for every failure to decode a plugin header."""


class TruncatedPluginError(PluginDecodeError):
    pass


class ByteReader:
    """Sequential reader that never reads past the end of its buffer.

    Every primitive either returns exactly the requested bytes or raises
    ``TruncatedPluginError``; callers never see a short read.
    """

    __slots__ = ("_data", "_pos")

    def __init__(self, data: bytes) -> None:
        self._data = memoryview(data)
        self._pos = 0

    @property
    def position(self) -> int:
        return self._pos

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def read(self, n: int, what: str = "data") -> bytes:
        if n < 0:
            raise PluginDecodeError(f"Negative length for {what}: {n}")
        if n > self.remaining:
            raise TruncatedPluginError(
                f"Truncated {what}: need {n} bytes at offset {self._pos}, {self.remaining} left"
            )
        chunk = self._data[self._pos : self._pos + n].tobytes()
        self._pos += n
        return chunk

    def skip(self, n: int, what: str = "data") -> None:
        if n > self.remaining:
            raise TruncatedPluginError(
                f"Truncated {what}: cannot skip {n} bytes at offset {self._pos}"
            )
        self._pos += n

    def read_u16(self, what: str = "u16") -> int:
        return struct.unpack("<H", self.read(2, what))[0]

    def read_u32(self, what: str = "u32") -> int:
        return struct.unpack("<I", self.read(4, what))[0]

    def read_u64(self, what: str = "u64") -> int:
        return struct.unpack("<Q", self.read(8, what))[0]
