from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, List, Optional, Tuple

from .constants import (
    MAX_TRACK_COUNT,
    TAG_BINF,
    TAG_DTON,
    TAG_GRP,
    TAG_JUNK,
    TAG_PACK,
    TAG_PROP,
    TAG_TONE,
    TONE_POINTER_SIZE,
)
from .cursor import ByteReader, ByteWriter, padding_for
from .errors import MalformedHeader, OutOfBounds


# Section bodies exclude the 8-byte frame (tag + size); the writer adds it.
# Typed sections whose fields do not re-encode to the original body keep the
# original in `verbatim`, and `to_bytes()` returns it unchanged.


@dataclass
class PropSection:
    """Bank properties: project name and an optional build timestamp."""

    tag: ClassVar[bytes] = TAG_PROP

    pad0: int = 0
    unk1: int = 0
    reserved: int = 0
    unk2: int = 0
    project: str = ""
    project_raw: bytes = b""
    extended: bool = False
    unk3: int = 0
    timestamp: Optional[str] = None
    timestamp_raw: Optional[bytes] = None
    verbatim: Optional[bytes] = None
    decoded: bool = True

    @classmethod
    def from_bytes(cls, body: bytes) -> "PropSection":
        r = ByteReader(body)
        sec = cls()
        sec.pad0 = r.read_u32()
        sec.unk1 = r.read_i32()
        sec.reserved = r.read_u16()
        sec.unk2 = r.read_u16()
        sec.project, sec.project_raw = r.read_length_prefixed_string(r.read_u8())
        r.align4()
        # Minimal layout ends after the project name
        if r.remaining() >= 2:
            sec.extended = True
            sec.unk3 = r.read_u16()
            r.align4()
            if r.remaining() >= 1:
                sec.timestamp, sec.timestamp_raw = r.read_length_prefixed_string(r.read_u8())
                r.align4()
        if sec._encode() != bytes(body):
            sec.verbatim = bytes(body)
        return sec

    @classmethod
    def opaque(cls, body: bytes) -> "PropSection":
        return cls(verbatim=bytes(body), decoded=False)

    def _encode(self) -> bytes:
        w = ByteWriter()
        w.write_u32(self.pad0)
        w.write_i32(self.unk1)
        w.write_u16(self.reserved)
        w.write_u16(self.unk2)
        w.write_length_prefixed_string(self.project_raw)
        w.pad4()
        if self.extended:
            w.write_u16(self.unk3)
            w.pad4()
            if self.timestamp_raw is not None:
                w.write_length_prefixed_string(self.timestamp_raw)
                w.pad4()
        return w.getvalue()

    def to_bytes(self) -> bytes:
        if self.verbatim is not None:
            return self.verbatim
        return self._encode()


@dataclass
class BankInfoSection:
    """BINF: bank id and bank name."""

    tag: ClassVar[bytes] = TAG_BINF

    reserved: int = 0
    bank_id: int = 0
    name: str = ""
    name_raw: bytes = b""
    flag: int = 0
    verbatim: Optional[bytes] = None
    decoded: bool = True

    @classmethod
    def from_bytes(cls, body: bytes) -> "BankInfoSection":
        r = ByteReader(body)
        sec = cls()
        sec.reserved = r.read_u32()
        sec.bank_id = r.read_u32()
        sec.name, sec.name_raw = r.read_length_prefixed_string(r.read_u8())
        r.align4()
        sec.flag = r.read_u32()
        if sec._encode() != bytes(body):
            sec.verbatim = bytes(body)
        return sec

    @classmethod
    def opaque(cls, body: bytes) -> "BankInfoSection":
        return cls(verbatim=bytes(body), decoded=False)

    def _encode(self) -> bytes:
        w = ByteWriter()
        w.write_u32(self.reserved)
        w.write_u32(self.bank_id)
        w.write_length_prefixed_string(self.name_raw)
        w.pad4()
        w.write_u32(self.flag)
        return w.getvalue()

    def to_bytes(self) -> bytes:
        if self.verbatim is not None:
            return self.verbatim
        return self._encode()


def _pointer_table(r: ByteReader) -> Tuple[int, List[Tuple[int, int]]]:
    count = r.read_u32()
    if count * TONE_POINTER_SIZE > r.remaining():
        raise OutOfBounds(r.tell(), count * TONE_POINTER_SIZE, r.remaining())
    return count, [(r.read_u32(), r.read_u32()) for _ in range(count)]


@dataclass
class GroupSection:
    """GRP: group names. Kept as raw bytes; `names()` is a read-only view."""

    body: bytes
    tag: ClassVar[bytes] = TAG_GRP

    @classmethod
    def from_bytes(cls, body: bytes) -> "GroupSection":
        return cls(bytes(body))

    def names(self) -> List[str]:
        r = ByteReader(self.body)
        _, pointers = _pointer_table(r)
        out: List[str] = []
        for off, size in pointers:
            start = 4 + off
            if start >= len(self.body):
                raise OutOfBounds(start, 1, 0)
            # The declared size is unreliable for the last entry; 0 means "to the end".
            end = len(self.body) if size == 0 else min(start + size, len(self.body))
            er = ByteReader(self.body, start, end=end)
            er.read_i32()
            n = er.read_u8()
            if n == 0xFF:
                raw = self.body[er.tell() : end].partition(b"\x00")[0]
                out.append(raw.decode("utf-8", errors="replace"))
            else:
                text, _ = er.read_length_prefixed_string(min(n, er.remaining()))
                out.append(text)
        return out

    def to_bytes(self) -> bytes:
        return self.body


@dataclass
class DataToneEntry:
    hash: int
    unk1: int
    name: str
    values: List[float]


@dataclass
class DataToneSection:
    """DTON: per-tone float tables. Kept as raw bytes; `entries()` is a read-only view."""

    body: bytes
    tag: ClassVar[bytes] = TAG_DTON

    @classmethod
    def from_bytes(cls, body: bytes) -> "DataToneSection":
        return cls(bytes(body))

    def entries(self) -> List[DataToneEntry]:
        r = ByteReader(self.body)
        _, pointers = _pointer_table(r)
        out: List[DataToneEntry] = []
        for off, size in pointers:
            start = 4 + off
            end = min(start + size, len(self.body))
            if start >= len(self.body):
                raise OutOfBounds(start, size, 0)
            er = ByteReader(self.body, start, end=end)
            h = er.read_i32()
            unk1 = er.read_i32()
            name, _ = er.read_length_prefixed_string(er.read_u8())
            er.align4()
            values = [er.read_f32() for _ in range(er.remaining() // 4)]
            out.append(DataToneEntry(hash=h, unk1=unk1, name=name, values=values))
        return out

    def to_bytes(self) -> bytes:
        return self.body


@dataclass
class ToneSection:
    """TONE: pointer table of per-track metadata blocks.

    Pointer offsets are relative to the first byte after the count field.
    The body is regenerated from the track list on every save.
    """

    body: bytes
    pointers: List[Tuple[int, int]] = field(default_factory=list)
    tag: ClassVar[bytes] = TAG_TONE

    @classmethod
    def from_bytes(cls, body: bytes) -> "ToneSection":
        r = ByteReader(body)
        count, pointers = _pointer_table(r)
        if count > MAX_TRACK_COUNT:
            raise MalformedHeader(f"TONE declares {count} tracks (limit {MAX_TRACK_COUNT})")
        for off, size in pointers:
            # a block may declare more bytes than the section holds; blocks() clamps it
            start = 4 + off
            if start >= len(body):
                raise OutOfBounds(start, size, 0)
        return cls(bytes(body), pointers)

    @classmethod
    def from_blocks(cls, blocks: List[bytes], declared: Optional[List[int]] = None) -> "ToneSection":
        """Build a TONE body: count, pointer table, one zero u32, then the padded blocks.

        `declared` holds the pointer sizes read from the input. Only the last
        block may keep a declared size larger than its bytes, since only there
        does the size run past the section end instead of into the next block.
        """
        w = ByteWriter()
        w.write_u32(len(blocks))
        pointers: List[Tuple[int, int]] = []
        off = TONE_POINTER_SIZE * len(blocks) + 4
        for i, blk in enumerate(blocks):
            size = len(blk)
            if declared and i == len(blocks) - 1:
                size = max(size, declared[i])
            pointers.append((off, size))
            off += len(blk) + padding_for(len(blk))
        for off, size in pointers:
            w.write_u32(off)
            w.write_u32(size)
        w.write_u32(0)
        for blk in blocks:
            w.write_bytes(blk)
            w.pad4()
        return cls(w.getvalue(), pointers)

    def blocks(self) -> List[bytes]:
        return [self.body[4 + off : 4 + off + size] for off, size in self.pointers]

    def to_bytes(self) -> bytes:
        return self.body


@dataclass
class JunkSection:
    body: bytes
    tag: ClassVar[bytes] = TAG_JUNK

    @classmethod
    def from_bytes(cls, body: bytes) -> "JunkSection":
        return cls(bytes(body))

    def to_bytes(self) -> bytes:
        return self.body


@dataclass
class PackSection:
    """PACK: concatenated track payloads, each 4-byte aligned."""

    body: bytes
    tag: ClassVar[bytes] = TAG_PACK

    @classmethod
    def from_bytes(cls, body: bytes) -> "PackSection":
        return cls(bytes(body))

    def to_bytes(self) -> bytes:
        return self.body


@dataclass
class UnknownSection:
    tag: bytes
    body: bytes

    def to_bytes(self) -> bytes:
        return self.body


SECTION_TYPES = {
    TAG_PROP: PropSection,
    TAG_BINF: BankInfoSection,
    TAG_GRP: GroupSection,
    TAG_DTON: DataToneSection,
    TAG_TONE: ToneSection,
    TAG_JUNK: JunkSection,
    TAG_PACK: PackSection,
}
