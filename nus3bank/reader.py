from __future__ import annotations

from typing import List, Tuple

from .archive import Archive, Track
from .constants import (
    BANKTOC_MARKER,
    FILE_MAGIC,
    MAX_SECTION_COUNT,
    OUTER_HEADER_SIZE,
    REQUIRED_TAGS,
    TOC_ENTRY_SIZE,
    ZLIB_MAGICS,
)
from .cursor import ByteReader, padding_for
from .errors import (
    MalformedHeader,
    MissingSection,
    OutOfBounds,
    ParseError,
    SectionSizeMismatch,
    TrackOutOfBounds,
    UnsupportedCompression,
    UnsupportedContainerVariant,
)
from .sections import SECTION_TYPES, BankInfoSection, PackSection, PropSection, ToneSection, UnknownSection
from .tonemeta import decode_block, unrecognized_block


def parse_bank(data: bytes) -> Archive:
    """Parse a BANKTOC NUS3BANK container.

    Every structural error is fatal. Non-fatal findings (sections or
    metadata blocks kept as raw bytes) are collected in `Archive.diagnostics`.
    """
    data = bytes(data)
    if data[:2] in ZLIB_MAGICS:
        raise UnsupportedCompression(data[:2])

    r = ByteReader(data)
    r.assert_magic(FILE_MAGIC)
    total = r.read_u32()
    if OUTER_HEADER_SIZE + total > len(data):
        raise OutOfBounds(OUTER_HEADER_SIZE, total, len(data) - OUTER_HEADER_SIZE)
    r = ByteReader(data, OUTER_HEADER_SIZE, end=OUTER_HEADER_SIZE + total)

    marker = r.read_bytes(len(BANKTOC_MARKER))
    if marker != BANKTOC_MARKER:
        raise UnsupportedContainerVariant(marker)

    toc_size = r.read_u32()
    count = r.read_u32()
    if not 1 <= count <= MAX_SECTION_COUNT:
        raise MalformedHeader(f"TOC entry count {count} outside 1..{MAX_SECTION_COUNT}")
    if toc_size < 4 + TOC_ENTRY_SIZE * count:
        raise MalformedHeader(f"TOC size {toc_size} too small for {count} entries")
    entries = [(r.read_bytes(4), r.read_u32()) for _ in range(count)]
    toc_slack = r.read_bytes(toc_size - 4 - TOC_ENTRY_SIZE * count)

    diagnostics: List[str] = []
    sections = []
    for tag, size in entries:
        at = r.tell()
        r.assert_magic(tag)
        frame_size = r.read_u32()
        if frame_size != size:
            raise SectionSizeMismatch(tag, size, frame_size, at)
        sections.append(_decode_section(tag, r.read_bytes(size), diagnostics))
    trailing = r.read_bytes(r.remaining())

    for tag in REQUIRED_TAGS:
        found = sum(1 for s in sections if s.tag == tag)
        if found == 0:
            raise MissingSection(tag)
        if found > 1:
            raise MalformedHeader(f"Section {tag!r} appears {found} times")

    tone = next(s for s in sections if isinstance(s, ToneSection))
    pack = next(s for s in sections if isinstance(s, PackSection))
    tracks = _build_tracks(tone, pack, diagnostics)
    _check_canonical(tone, pack, tracks, diagnostics)
    return Archive(sections, tracks, toc_slack=toc_slack, trailing=trailing, diagnostics=diagnostics)


def _decode_section(tag: bytes, body: bytes, diagnostics: List[str]):
    cls = SECTION_TYPES.get(tag)
    if cls is None:
        return UnknownSection(tag, body)
    if cls in (PropSection, BankInfoSection):
        try:
            sec = cls.from_bytes(body)
        except ParseError as e:
            diagnostics.append(f"{tag.decode('latin-1')}: could not decode ({e}); kept as raw bytes")
            return cls.opaque(body)
        if sec.verbatim is not None:
            diagnostics.append(f"{tag.decode('latin-1')}: fields do not re-encode identically; kept as raw bytes")
        return sec
    return cls.from_bytes(body)


def _build_tracks(tone: ToneSection, pack: PackSection, diagnostics: List[str]) -> List[Track]:
    tracks: List[Track] = []
    for idx, (block, (_, declared)) in enumerate(zip(tone.blocks(), tone.pointers)):
        if len(block) < declared:
            dec = unrecognized_block(block, idx, f"declared size {declared} runs past the TONE section")
        else:
            dec = decode_block(block, idx)
        payload = None
        if dec.layout.recognized:
            if dec.offset + dec.size > len(pack.body):
                raise TrackOutOfBounds(idx, dec.offset, dec.size, len(pack.body))
            payload = pack.body[dec.offset : dec.offset + dec.size]
        else:
            diagnostics.append(dec.reason)
        tracks.append(
            Track(
                track_id=idx,
                name=dec.name,
                name_raw=dec.name_raw,
                payload=payload,
                size=dec.size,
                pack_offset=dec.offset,
                layout=dec.layout,
                metadata_size=declared,
            )
        )
    return tracks


def _check_canonical(tone: ToneSection, pack: PackSection, tracks: List[Track], diagnostics: List[str]) -> None:
    """Note TONE/PACK bodies that a save would not reproduce byte for byte."""
    if ToneSection.from_blocks(tone.blocks(), [s for _, s in tone.pointers]).body != tone.body:
        diagnostics.append("TONE: layout is not canonical and will be normalized on save")
    if any(not t.recognized for t in tracks):
        return
    expected: List[Tuple[int, int]] = []
    pos = 0
    for t in tracks:
        expected.append((pos, t.size))
        pos += t.size + padding_for(t.size)
    if expected != [(t.pack_offset, t.size) for t in tracks] or pos != len(pack.body):
        diagnostics.append("PACK: payloads are not stored contiguously and will be repacked on save")
