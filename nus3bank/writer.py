from __future__ import annotations

from typing import Dict, List, Tuple

from .archive import Archive
from .constants import BANKTOC_MARKER, FILE_MAGIC, TOC_ENTRY_SIZE
from .cursor import ByteWriter, padding_for
from .errors import UnrepresentableMutation, WriteError
from .sections import PackSection, ToneSection
from .tonemeta import encode_block


_U32_MAX = 0xFFFFFFFF


def serialize(archive: Archive) -> bytes:
    """Rebuild the container from the archive's sections and tracks.

    PACK and TONE are regenerated from the track list; every other section is
    emitted from its own `to_bytes()`. Nothing in the archive changes unless
    the whole build succeeds, after which the new offsets are committed.
    """
    for t in archive.tracks:
        if not t.recognized and t.dirty:
            raise UnrepresentableMutation(t.track_id, "its payload was replaced")

    if archive.has_unrecognized_tracks:
        pack_body, placements = _append_pack(archive)
    else:
        pack_body, placements = _rebuild_pack(archive)

    blocks: List[bytes] = []
    declared: List[int] = []
    for t in archive.tracks:
        if t.recognized:
            offset, size = placements[t.track_id]
            blocks.append(encode_block(t.name_raw, offset, size, t.layout))
            declared.append(len(blocks[-1]))
        else:
            blocks.append(t.layout.raw)
            declared.append(t.metadata_size)
    tone = ToneSection.from_blocks(blocks, declared)
    pack = PackSection(pack_body)

    bodies = []
    for sec in archive.sections:
        if isinstance(sec, ToneSection):
            sec = tone
        elif isinstance(sec, PackSection):
            sec = pack
        bodies.append((sec.tag, sec.to_bytes()))
    out = _assemble(bodies, archive.toc_slack, archive.trailing)

    archive.commit(tone, pack, placements)
    return out


def _rebuild_pack(archive: Archive) -> Tuple[bytes, Dict[int, Tuple[int, int]]]:
    body = bytearray()
    placements: Dict[int, Tuple[int, int]] = {}
    for t in archive.tracks:
        placements[t.track_id] = (len(body), len(t.payload))
        body += t.payload
        body += b"\x00" * padding_for(len(t.payload))
    _check_u32(len(body), "PACK size")
    return bytes(body), placements


def _append_pack(archive: Archive) -> Tuple[bytes, Dict[int, Tuple[int, int]]]:
    # Unrecognized blocks point into the current PACK at unknown places, so
    # the existing body stays put and new payloads go after it.
    body = bytearray(archive.pack.body)
    placements: Dict[int, Tuple[int, int]] = {}
    appended = False
    for t in archive.tracks:
        if not t.recognized:
            continue
        if not t.dirty:
            placements[t.track_id] = (t.pack_offset, t.size)
            continue
        body += b"\x00" * padding_for(len(body))
        placements[t.track_id] = (len(body), len(t.payload))
        body += t.payload
        appended = True
    if appended:
        body += b"\x00" * padding_for(len(body))
    _check_u32(len(body), "PACK size")
    return bytes(body), placements


def _assemble(bodies: List[Tuple[bytes, bytes]], toc_slack: bytes, trailing: bytes) -> bytes:
    w = ByteWriter()
    w.write_bytes(BANKTOC_MARKER)
    w.write_u32(4 + TOC_ENTRY_SIZE * len(bodies) + len(toc_slack))
    w.write_u32(len(bodies))
    for tag, body in bodies:
        _check_u32(len(body), f"section {tag!r} size")
        w.write_bytes(tag)
        w.write_u32(len(body))
    w.write_bytes(toc_slack)
    for tag, body in bodies:
        w.write_bytes(tag)
        w.write_u32(len(body))
        w.write_bytes(body)
    w.write_bytes(trailing)

    _check_u32(len(w), "container size")
    out = ByteWriter()
    out.write_bytes(FILE_MAGIC)
    out.write_u32(len(w))
    out.write_bytes(w.getvalue())
    return out.getvalue()


def _check_u32(value: int, what: str) -> None:
    if value > _U32_MAX:
        raise WriteError(f"{what} {value} does not fit in 32 bits")
