"""Hand-assembled NUS3BANK byte fixtures for the test suite.

Built with plain struct packing so tests do not depend on nus3bank.writer.
"""

from __future__ import annotations

import struct
from typing import Callable, Iterable, List, Optional, Sequence, Tuple


def _pad(b: bytes) -> bytes:
    return b + b"\x00" * ((4 - len(b) % 4) % 4)


def lps(raw: bytes) -> bytes:
    return bytes([len(raw) + 1]) + raw + b"\x00"


def meta_block(
    name: bytes,
    offset: int,
    size: int,
    *,
    prefix: bytes = b"",
    reserved: bytes = b"\x00" * 6,
    pairs: Iterable[Tuple[int, float]] = (),
    value_first: bool = False,
    marker: int = 8,
) -> bytes:
    b = _pad(prefix + reserved + lps(name))
    b += struct.pack("<III", marker, offset, size)
    for idx, val in pairs:
        b += struct.pack("<fI", val, idx) if value_first else struct.pack("<If", idx, val)
    return b


def full_meta_block(
    name: bytes,
    offset: int,
    size: int,
    *,
    prefix: bytes = b"",
    hash_: int = 0x1234,
    unk1: int = 0,
    reserved0: int = 0,
    params: Sequence[float] = tuple(float(i) for i in range(12)),
    offsets: Sequence[int] = (),
    pairs: Iterable[Tuple[int, float]] = ((0, 0.5),),
    value_first: bool = False,
    words: Sequence[int] = (-1,),
    end: Sequence[int] = (0, 0, 0),
) -> bytes:
    """Metadata block with hash/unk1, params, offsets, pairs and -1 terminated words."""
    pairs = list(pairs)
    b = _pad(prefix + struct.pack("<ii", hash_, unk1) + lps(name))
    b += struct.pack("<iiII", reserved0, 8, offset, size)
    b += struct.pack("<12f", *params)
    b += struct.pack("<I", len(offsets)) + b"".join(struct.pack("<i", v) for v in offsets)
    b += struct.pack("<I", len(pairs))
    for idx, val in pairs:
        b += struct.pack("<fI", val, idx) if value_first else struct.pack("<If", idx, val)
    b += b"".join(struct.pack("<i", v) for v in list(words) + list(end))
    return b


def tone_body(blocks: Sequence[bytes]) -> bytes:
    table = b""
    data = b""
    off = 8 * len(blocks) + 4
    for blk in blocks:
        table += struct.pack("<II", off + len(data), len(blk))
        data += _pad(blk)
    return struct.pack("<I", len(blocks)) + table + b"\x00" * 4 + data


def pack_body(payloads: Sequence[bytes]) -> Tuple[bytes, List[int]]:
    body = b""
    offsets = []
    for p in payloads:
        offsets.append(len(body))
        body += _pad(p)
    return body, offsets


def binf_body(bank_id: int = 7, name: bytes = b"bgm_test", flag: int = 1) -> bytes:
    return _pad(struct.pack("<II", 0, bank_id) + lps(name)) + struct.pack("<I", flag)


def prop_body(project: bytes = b"project", timestamp: Optional[bytes] = b"2024-01-01 00:00:00") -> bytes:
    b = _pad(struct.pack("<IiHH", 0, 1, 0, 2) + lps(project))
    if timestamp is not None:
        b = _pad(b + struct.pack("<H", 3))
        b = _pad(b + lps(timestamp))
    return b


def grp_body(names: Sequence[bytes]) -> bytes:
    entries = [_pad(struct.pack("<i", 1) + lps(n)) for n in names]
    table = b""
    off = 8 * len(entries)
    for e in entries:
        table += struct.pack("<II", off, len(e))
        off += len(e)
    return struct.pack("<I", len(entries)) + table + b"".join(entries)


def dton_body(entries: Sequence[Tuple[int, bytes, Sequence[float]]]) -> bytes:
    blobs = [
        _pad(struct.pack("<ii", h, 0) + lps(name)) + b"".join(struct.pack("<f", v) for v in values)
        for h, name, values in entries
    ]
    table = b""
    off = 8 * len(blobs)
    for blob in blobs:
        table += struct.pack("<II", off, len(blob))
        off += len(blob)
    return struct.pack("<I", len(blobs)) + table + b"".join(blobs)


def container(sections: Sequence[Tuple[bytes, bytes]], *, slack: bytes = b"", trailing: bytes = b"") -> bytes:
    toc = struct.pack("<I", len(sections))
    for tag, body in sections:
        toc += tag + struct.pack("<I", len(body))
    toc += slack
    frames = b"".join(tag + struct.pack("<I", len(body)) + body for tag, body in sections)
    rest = b"BANKTOC " + struct.pack("<I", len(toc)) + toc + frames + trailing
    return b"NUS3" + struct.pack("<I", len(rest)) + rest


def payload(size: int, seed: int = 0) -> bytes:
    return bytes((seed + i * 7) & 0xFF for i in range(size))


def build_bank(
    tracks: Sequence[Tuple[bytes, bytes]] = (),
    *,
    extra_blocks: Sequence[bytes] = (),
    with_optional: bool = True,
    unknown: Optional[Tuple[bytes, bytes]] = None,
    slack: bytes = b"",
    trailing: bytes = b"",
    meta: Callable[..., bytes] = meta_block,
) -> bytes:
    """A canonical bank holding `tracks` (name, payload) in order.

    Metadata blocks come from `meta(name, offset, size)`. `extra_blocks` are
    appended to TONE as-is (for unrecognized metadata).
    """
    pack, offsets = pack_body([p for _, p in tracks])
    blocks = [meta(n, off, len(p)) for (n, p), off in zip(tracks, offsets)]
    blocks += list(extra_blocks)
    sections = []
    if with_optional:
        sections.append((b"PROP", prop_body()))
    sections.append((b"BINF", binf_body()))
    if with_optional:
        sections.append((b"GRP ", grp_body([b"grp_main"])))
        sections.append((b"DTON", dton_body([(0x1234, b"tone_a", [0.5, 1.0])])))
    sections.append((b"TONE", tone_body(blocks)))
    if unknown is not None:
        sections.append(unknown)
    if with_optional:
        sections.append((b"JUNK", b"\x00" * 4))
    sections.append((b"PACK", pack))
    return container(sections, slack=slack, trailing=trailing)


def three_track_bank() -> bytes:
    return build_bank([(b"t0", payload(100, 0)), (b"t1", payload(200, 1)), (b"t2", payload(300, 2))])
