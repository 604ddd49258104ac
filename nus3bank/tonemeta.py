from __future__ import annotations

import math
import struct
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from .constants import (
    PAIR_INDEX_END,
    PAIR_INDEX_LIMIT,
    TONE_META_COUNT_LIMIT,
    TONE_META_MARKER,
    TONE_META_PAIR_SIZE,
    TONE_META_PARAM_COUNT,
    TONE_META_PREFIX_SIZE,
    TONE_META_RESERVED_SIZE,
    TONE_META_TERMINATOR,
)
from .cursor import ByteReader, ByteWriter
from .errors import OutOfBounds


# Two block shapes are recognized (offsets from the block start).
#
# Compact:
#   [prefix 0 or 8 bytes]
#   reserved[6]
#   name_len u8 (N + 1), name[N], 0x00, zero padding to 4
#   marker u32 (== 8), payload_offset u32, payload_size u32
#   k x 8-byte pairs, (u32 index, f32 value) or (f32 value, u32 index)
#
# Full:
#   [prefix 0 or 8 bytes]
#   hash i32, unk1 i32
#   name_len u8 (N + 1), name[N], 0x00, zero padding to 4
#   reserved0 i32, marker u32 (== 8), payload_offset u32, payload_size u32
#   param f32[12]
#   offsets_count u32, offsets i32[offsets_count]
#   pair_count u32, pair_count x 8-byte pairs (either order)
#   i32 words up to and including a -1 terminator
#   i32 end words filling the rest of the block
_FIELDS_SIZE = 12
_F32 = struct.Struct("<f")


class PairOrder:
    INDEX_THEN_VALUE = "index_then_value"
    VALUE_THEN_INDEX = "value_then_index"


class BlockShape:
    COMPACT = "compact"
    FULL = "full"


@dataclass
class MetadataLayout:
    """Everything in a metadata block except the name, offset and size.

    Fields past `pairs` only apply to the full shape.
    """

    recognized: bool
    shape: str = BlockShape.COMPACT
    prefix: bytes = b""
    reserved: bytes = b"\x00" * TONE_META_RESERVED_SIZE
    pair_order: str = PairOrder.INDEX_THEN_VALUE
    pairs: List[Tuple[int, float]] = field(default_factory=list)
    hash: int = 0
    unk1: int = 0
    reserved0: int = 0
    params: List[float] = field(default_factory=list)
    offsets: List[int] = field(default_factory=list)
    unkending: List[int] = field(default_factory=list)
    end: List[int] = field(default_factory=list)
    raw: bytes = b""

    @classmethod
    def canonical(cls) -> "MetadataLayout":
        """Layout used for new tracks when the bank has no recognized track to copy."""
        return cls(recognized=True)

    @classmethod
    def unrecognized(cls, raw: bytes) -> "MetadataLayout":
        return cls(recognized=False, raw=bytes(raw))


@dataclass
class DecodedBlock:
    name: str
    name_raw: bytes
    offset: Optional[int]
    size: Optional[int]
    layout: MetadataLayout
    reason: Optional[str] = None


def _index_ok(v: int) -> bool:
    return v <= PAIR_INDEX_LIMIT or v == PAIR_INDEX_END


def _value_ok(v: int) -> bool:
    return math.isfinite(_F32.unpack(struct.pack("<I", v))[0])


def _pair_order(block: bytes, at: int) -> Optional[str]:
    r = ByteReader(block, at)
    a = r.read_u32()
    b = r.read_u32()
    if _index_ok(a) and _value_ok(b):
        return PairOrder.INDEX_THEN_VALUE
    if _value_ok(a) and _index_ok(b):
        return PairOrder.VALUE_THEN_INDEX
    return None


def _read_pairs(r: ByteReader, order: str, count: int) -> List[Tuple[int, float]]:
    pairs: List[Tuple[int, float]] = []
    for _ in range(count):
        if order == PairOrder.INDEX_THEN_VALUE:
            idx = r.read_u32()
            val = r.read_f32()
        else:
            val = r.read_f32()
            idx = r.read_u32()
        pairs.append((idx, val))
    return pairs


def _write_pairs(w: ByteWriter, order: str, pairs: List[Tuple[int, float]]) -> None:
    for idx, val in pairs:
        if order == PairOrder.INDEX_THEN_VALUE:
            w.write_u32(idx)
            w.write_f32(val)
        else:
            w.write_f32(val)
            w.write_u32(idx)


def _read_name(r: ByteReader, block: bytes) -> Optional[Tuple[str, bytes]]:
    n = r.read_u8()
    if n == 0:
        return None
    name, name_raw = r.read_length_prefixed_string(n)
    if block[r.tell() - 1] != 0:
        return None
    r.align4()
    return name, name_raw


def _compact_at(block: bytes, prefix_len: int) -> Optional[DecodedBlock]:
    r = ByteReader(block, prefix_len)
    reserved = r.read_bytes(TONE_META_RESERVED_SIZE)
    got = _read_name(r, block)
    if got is None:
        return None
    tail = r.remaining() - _FIELDS_SIZE
    if tail < 0 or tail % TONE_META_PAIR_SIZE:
        return None
    if r.read_u32() != TONE_META_MARKER:
        return None
    offset = r.read_u32()
    size = r.read_u32()

    order = PairOrder.INDEX_THEN_VALUE
    if r.remaining():
        order = _pair_order(block, r.tell())
        if order is None:
            return None
    pairs = _read_pairs(r, order, r.remaining() // TONE_META_PAIR_SIZE)
    layout = MetadataLayout(
        recognized=True,
        shape=BlockShape.COMPACT,
        prefix=block[:prefix_len],
        reserved=reserved,
        pair_order=order,
        pairs=pairs,
    )
    return DecodedBlock(got[0], got[1], offset, size, layout)


def _full_at(block: bytes, prefix_len: int) -> Optional[DecodedBlock]:
    r = ByteReader(block, prefix_len)
    hash_ = r.read_i32()
    unk1 = r.read_i32()
    got = _read_name(r, block)
    if got is None:
        return None
    reserved0 = r.read_i32()
    if r.read_u32() != TONE_META_MARKER:
        return None
    offset = r.read_u32()
    size = r.read_u32()
    params = [r.read_f32() for _ in range(TONE_META_PARAM_COUNT)]

    count = r.read_u32()
    if count > TONE_META_COUNT_LIMIT or 4 * count > r.remaining():
        return None
    offsets = [r.read_i32() for _ in range(count)]

    count = r.read_u32()
    if count > TONE_META_COUNT_LIMIT or TONE_META_PAIR_SIZE * count > r.remaining():
        return None
    order = PairOrder.INDEX_THEN_VALUE
    if count:
        order = _pair_order(block, r.tell())
        if order is None:
            return None
    pairs = _read_pairs(r, order, count)

    unkending: List[int] = []
    while not unkending or unkending[-1] != TONE_META_TERMINATOR:
        unkending.append(r.read_i32())
    if r.remaining() % 4:
        return None
    end = [r.read_i32() for _ in range(r.remaining() // 4)]

    layout = MetadataLayout(
        recognized=True,
        shape=BlockShape.FULL,
        prefix=block[:prefix_len],
        pair_order=order,
        pairs=pairs,
        hash=hash_,
        unk1=unk1,
        reserved0=reserved0,
        params=params,
        offsets=offsets,
        unkending=unkending,
        end=end,
    )
    return DecodedBlock(got[0], got[1], offset, size, layout)


def _try(parse: Callable[[bytes, int], Optional[DecodedBlock]], block: bytes, prefix_len: int) -> Optional[DecodedBlock]:
    # a shape that runs off the end of the block simply does not fit
    try:
        return parse(block, prefix_len)
    except OutOfBounds:
        return None


def _best_effort_name(block: bytes) -> Tuple[str, bytes]:
    for pos in (
        TONE_META_RESERVED_SIZE,
        TONE_META_PREFIX_SIZE + TONE_META_RESERVED_SIZE,
        8,
        TONE_META_PREFIX_SIZE + 8,
    ):
        if pos < len(block):
            n = block[pos]
            if 0 < n and pos + 1 + n <= len(block) and block[pos + n] == 0:
                raw = block[pos + 1 : pos + n]
                return raw.decode("utf-8", errors="replace"), raw
    return "", b""


def unrecognized_block(block: bytes, track_id: int, reason: str) -> DecodedBlock:
    """Keep `block` as raw bytes, with a best-effort name for listings."""
    name, name_raw = _best_effort_name(block)
    reason = f"track 0x{track_id:x}: {reason}; metadata kept as raw bytes"
    return DecodedBlock(name, name_raw, None, None, MetadataLayout.unrecognized(block), reason)


def decode_block(block: bytes, track_id: int) -> DecodedBlock:
    """Decode one TONE metadata block.

    Each shape is tried with and without the 8-byte prefix. A candidate fits
    only when its fields, counts and trailing words account for the block
    size exactly. Anything that fits no candidate or more than one, or that
    does not re-encode to the same bytes, is returned as an unrecognized
    layout holding the raw block.
    """
    block = bytes(block)
    fits = []
    for parse in (_compact_at, _full_at):
        for prefix_len in (0, TONE_META_PREFIX_SIZE):
            dec = _try(parse, block, prefix_len)
            if dec is not None:
                fits.append(dec)
    if len(fits) != 1:
        return unrecognized_block(block, track_id, "no unique block shape" if fits else "block matches no known shape")

    dec = fits[0]
    if encode_block(dec.name_raw, dec.offset, dec.size, dec.layout) != block:
        return unrecognized_block(block, track_id, "block does not re-encode identically")
    return dec


def encode_block(name_raw: bytes, offset: int, size: int, layout: MetadataLayout) -> bytes:
    if not layout.recognized:
        return layout.raw
    w = ByteWriter()
    w.write_bytes(layout.prefix)
    if layout.shape == BlockShape.FULL:
        w.write_i32(layout.hash)
        w.write_i32(layout.unk1)
    else:
        w.write_bytes(layout.reserved)
    w.write_length_prefixed_string(name_raw)
    w.pad4()
    if layout.shape == BlockShape.FULL:
        w.write_i32(layout.reserved0)
    w.write_u32(TONE_META_MARKER)
    w.write_u32(offset)
    w.write_u32(size)
    if layout.shape != BlockShape.FULL:
        _write_pairs(w, layout.pair_order, layout.pairs)
        return w.getvalue()

    for v in layout.params:
        w.write_f32(v)
    w.write_u32(len(layout.offsets))
    for v in layout.offsets:
        w.write_i32(v)
    w.write_u32(len(layout.pairs))
    _write_pairs(w, layout.pair_order, layout.pairs)
    unkending = list(layout.unkending)
    if not unkending or unkending[-1] != TONE_META_TERMINATOR:
        unkending.append(TONE_META_TERMINATOR)
    for v in unkending + layout.end:
        w.write_i32(v)
    return w.getvalue()
