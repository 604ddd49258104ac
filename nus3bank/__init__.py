"""
nus3bank: read, edit and rebuild NUS3BANK (BANKTOC) game audio banks.

Features:

- Parses the BANKTOC container into typed sections (PROP, BINF, GRP, DTON, TONE,
  JUNK, PACK); anything unknown is carried through byte for byte.
- Decodes per-track TONE metadata in its known variants and keeps unrecognized
  blocks as raw bytes instead of guessing.
- Add, remove and replace track payloads; PACK and TONE are rebuilt on save with
  consistent offsets, and an unchanged bank rebuilds to identical bytes.
- Atomic saves, JSON/YAML structural dumps and a `nus3bank` command line tool.

Audio payloads are opaque: no decoding or transcoding happens here.
"""

__version__ = "0.1"

from .archive import Archive, PendingEdit, Track, TrackInfo
from .reader import parse_bank
from .writer import serialize

__all__ = [
    "constants",
    "errors",
    "reader",
    "writer",
    "archive",
    "fileio",
    "dump",
    "Archive",
    "Track",
    "TrackInfo",
    "PendingEdit",
    "open_bank",
    "parse_bank",
    "serialize",
]


def open_bank(data: bytes) -> Archive:
    """Parse bank bytes; file access lives in nus3bank.fileio."""
    return parse_bank(data)
