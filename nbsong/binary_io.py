"""Little-endian primitives for the song wire format."""

from __future__ import annotations

import struct
from typing import BinaryIO, Final

_U8: Final = struct.Struct("<B")
_I16: Final = struct.Struct("<h")
_U16: Final = struct.Struct("<H")
_I32: Final = struct.Struct("<i")

# Carriage returns inside strings are shown as spaces.
_CARRIAGE_RETURN: Final[bytes] = b"\x0d"


class BinaryReader:
    """Reads fixed-width little-endian fields from a binary stream."""

    def __init__(self, stream: BinaryIO) -> None:
        self.stream = stream

    def _read(self, size: int) -> bytes:
        data = self.stream.read(size)
        if len(data) != size:
            raise EOFError(f"Expected {size} byte(s), stream ended after {len(data)}.")
        return data

    def read_byte(self) -> int:
        """Unsigned 8-bit value."""
        return _U8.unpack(self._read(1))[0]

    def read_bool(self) -> bool:
        return self.read_byte() != 0

    def read_short(self) -> int:
        """Signed 16-bit value."""
        return _I16.unpack(self._read(2))[0]

    def read_ushort(self) -> int:
        """Unsigned 16-bit value."""
        return _U16.unpack(self._read(2))[0]

    def read_int(self) -> int:
        """Signed 32-bit value."""
        return _I32.unpack(self._read(4))[0]

    def read_string(self) -> str:
        """
        Length-prefixed string (``int32`` byte count, then the bytes).

        Raises:
            ValueError: If the length prefix is negative.
            EOFError: If the stream ends inside the string.
        """
        length = self.read_int()
        if length < 0:
            raise ValueError(f"Invalid string length {length}.")
        raw = self._read(length).replace(_CARRIAGE_RETURN, b" ")
        return raw.decode("utf-8", errors="replace")


class BinaryWriter:
    """Writes fixed-width little-endian fields straight to a binary sink."""

    def __init__(self, sink: BinaryIO) -> None:
        self.sink = sink

    def _write(self, packer: struct.Struct, value: int, field: str) -> None:
        try:
            data = packer.pack(value)
        except struct.error as exc:
            raise ValueError(f"{field}={value} does not fit the wire format.") from exc
        self.sink.write(data)

    def write_byte(self, value: int, field: str = "byte") -> None:
        self._write(_U8, int(value), field)

    def write_bool(self, value: bool) -> None:
        self._write(_U8, 1 if value else 0, "bool")

    def write_short(self, value: int, field: str = "short") -> None:
        self._write(_I16, int(value), field)

    def write_ushort(self, value: int, field: str = "ushort") -> None:
        self._write(_U16, int(value), field)

    def write_int(self, value: int, field: str = "int") -> None:
        self._write(_I32, int(value), field)

    def write_string(self, text: str) -> None:
        data = text.encode("utf-8")
        self.write_int(len(data), "string length")
        self.sink.write(data)
