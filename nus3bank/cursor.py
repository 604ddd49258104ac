from __future__ import annotations

import struct
from typing import Optional, Tuple

from .errors import BadMagic, OutOfBounds


_U8 = struct.Struct("<B")
_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_I32 = struct.Struct("<i")
_F32 = struct.Struct("<f")


def padding_for(size: int) -> int:
    """Zero bytes needed after a field of `size` bytes to reach a 4-byte boundary."""
    return (4 - size % 4) % 4


class ByteReader:
    """Little-endian reader over an in-memory buffer.

    Positions are absolute within `data`; `end` bounds every read so a reader
    can be confined to one section or metadata block without copying, and
    `base` is the position that `align4` measures alignment from.
    """

    def __init__(self, data: bytes, offset: int = 0, base: int = 0, end: Optional[int] = None):
        self.data = memoryview(data)
        self.pos = offset
        self.base = base
        self.end = len(self.data) if end is None else min(end, len(self.data))

    def tell(self) -> int:
        return self.pos

    def seek(self, pos: int) -> None:
        if pos < 0 or pos > self.end:
            raise OutOfBounds(pos, 0, max(0, self.end - pos))
        self.pos = pos

    def remaining(self) -> int:
        return max(0, self.end - self.pos)

    def read_bytes(self, n: int) -> bytes:
        if n < 0 or self.pos + n > self.end:
            raise OutOfBounds(self.pos, n, self.remaining())
        b = self.data[self.pos : self.pos + n].tobytes()
        self.pos += n
        return b

    def skip(self, n: int) -> None:
        self.read_bytes(n)

    def _unpack(self, st: struct.Struct):
        if self.pos + st.size > self.end:
            raise OutOfBounds(self.pos, st.size, self.remaining())
        (v,) = st.unpack_from(self.data, self.pos)
        self.pos += st.size
        return v

    def read_u8(self) -> int:
        return self._unpack(_U8)

    def read_u16(self) -> int:
        return self._unpack(_U16)

    def read_u32(self) -> int:
        return self._unpack(_U32)

    def read_i32(self) -> int:
        return self._unpack(_I32)

    def read_f32(self) -> float:
        return self._unpack(_F32)

    def assert_magic(self, expected: bytes) -> None:
        at = self.pos
        found = self.read_bytes(len(expected))
        if found != expected:
            raise BadMagic(expected, found, at)

    def read_length_prefixed_string(self, length: int) -> Tuple[str, bytes]:
        """Read `length` bytes and cut at the first NUL.

        Returns the decoded text (invalid UTF-8 replaced) and the raw bytes
        before the NUL, so callers can re-emit names they cannot decode.
        """
        raw = self.read_bytes(length).partition(b"\x00")[0]
        return raw.decode("utf-8", errors="replace"), raw

    def align4(self) -> None:
        self.skip(padding_for(self.pos - self.base))


class ByteWriter:
    def __init__(self):
        self._buf = bytearray()

    def __len__(self) -> int:
        return len(self._buf)

    def getvalue(self) -> bytes:
        return bytes(self._buf)

    def write_bytes(self, b: bytes) -> None:
        self._buf += b

    def write_u8(self, v: int) -> None:
        self._buf += _U8.pack(v)

    def write_u16(self, v: int) -> None:
        self._buf += _U16.pack(v)

    def write_u32(self, v: int) -> None:
        self._buf += _U32.pack(v)

    def write_i32(self, v: int) -> None:
        self._buf += _I32.pack(v)

    def write_f32(self, v: float) -> None:
        self._buf += _F32.pack(v)

    def write_length_prefixed_string(self, raw: bytes) -> None:
        # length byte counts the terminator
        self.write_u8(len(raw) + 1)
        self._buf += raw
        self._buf += b"\x00"

    def pad4(self) -> None:
        self._buf += b"\x00" * padding_for(len(self._buf))
