from __future__ import annotations

from typing import Optional


class Nus3bankError(Exception):
    """Base class for nus3bank-specific errors."""


# Parsing
class ParseError(Nus3bankError):
    pass


class BadMagic(ParseError):
    def __init__(self, expected: bytes, found: bytes, offset: int = 0):
        self.expected = bytes(expected)
        self.found = bytes(found)
        self.offset = offset
        super().__init__(f"Bad magic at 0x{offset:x}: expected {self.expected!r}, found {self.found!r}")


class OutOfBounds(ParseError):
    def __init__(self, offset: int, wanted: int, available: int):
        self.offset = offset
        self.wanted = wanted
        self.available = available
        super().__init__(f"Read of {wanted} byte(s) at 0x{offset:x} exceeds data ({available} byte(s) left)")


class UnsupportedContainerVariant(ParseError):
    def __init__(self, marker: bytes):
        self.marker = bytes(marker)
        super().__init__(f"Unsupported container variant {self.marker!r}; only BANKTOC banks are supported")


class UnsupportedCompression(ParseError):
    def __init__(self, header: bytes):
        self.header = bytes(header)
        super().__init__(f"Input looks zlib-compressed (header {self.header.hex()}); decompress it first")


class MalformedHeader(ParseError):
    pass


class SectionSizeMismatch(ParseError):
    def __init__(self, tag: bytes, toc_size: int, frame_size: int, offset: int):
        self.tag = bytes(tag)
        self.toc_size = toc_size
        self.frame_size = frame_size
        self.offset = offset
        super().__init__(
            f"Section {self.tag!r} at 0x{offset:x}: TOC declares {toc_size} byte(s), frame declares {frame_size}"
        )


class MissingSection(ParseError):
    def __init__(self, tag: bytes, reason: str = "not found"):
        self.tag = bytes(tag)
        super().__init__(f"Section {self.tag!r} {reason}")


class TrackOutOfBounds(ParseError):
    def __init__(self, track_id: int, offset: int, size: int, pack_size: int):
        self.track_id = track_id
        self.offset = offset
        self.size = size
        self.pack_size = pack_size
        super().__init__(
            f"Track 0x{track_id:x}: payload [0x{offset:x}, 0x{offset + size:x}) exceeds PACK ({pack_size} byte(s))"
        )


# Mutation / lookup
class TrackNotFound(Nus3bankError, KeyError):
    def __init__(self, track_id):
        self.track_id = track_id
        super().__init__(f"Track not found: {track_id}")

    def __str__(self) -> str:
        return str(self.args[0])


class InvalidInput(Nus3bankError, ValueError):
    pass


class PayloadUnavailable(Nus3bankError):
    def __init__(self, track_id: int):
        self.track_id = track_id
        super().__init__(f"Track 0x{track_id:x} has an unrecognized metadata layout; its payload location is unknown")


# Serialization
class WriteError(Nus3bankError):
    pass


class UnrepresentableMutation(WriteError):
    def __init__(self, track_id: int, reason: Optional[str] = None):
        self.track_id = track_id
        msg = f"Track 0x{track_id:x} cannot be written: its metadata layout is unrecognized"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)
