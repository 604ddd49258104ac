from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from .constants import DEFAULT_EXPORT_EXT, MAX_NAME_BYTES, TAG_BINF
from .errors import InvalidInput, PayloadUnavailable, TrackNotFound
from .sections import BankInfoSection, PackSection, ToneSection
from .tonemeta import MetadataLayout


TrackKey = Union[int, str]

EDIT_ADD = "add"
EDIT_REMOVE = "remove"
EDIT_REPLACE = "replace"


@dataclass
class Track:
    track_id: int
    name: str
    name_raw: bytes
    payload: Optional[bytes]
    size: Optional[int]
    pack_offset: Optional[int]
    layout: MetadataLayout
    metadata_size: int = 0
    # payload differs from what the current PACK body holds at pack_offset
    dirty: bool = False

    @property
    def hex_id(self) -> str:
        return f"0x{self.track_id:x}"

    @property
    def recognized(self) -> bool:
        return self.layout.recognized

    @property
    def audio_format(self) -> str:
        if self.payload is None:
            return "unknown"
        return "wav" if self.payload.startswith(b"RIFF") else "unknown"

    @property
    def filename(self) -> str:
        return f"{self.hex_id}-{self.name}{DEFAULT_EXPORT_EXT}"


@dataclass
class TrackInfo:
    id: int
    hex_id: str
    name: str
    size: Optional[int]


@dataclass
class PendingEdit:
    kind: str
    track_id: int


class Archive:
    """A parsed NUS3BANK container.

    Sections are kept in TOC order. Tracks are derived from TONE and PACK and
    are the only mutable part; the TONE and PACK bodies are regenerated from
    them by `to_bytes()`. Mutations are recorded as pending edits until the
    next successful serialization.
    """

    def __init__(
        self,
        sections: list,
        tracks: List[Track],
        toc_slack: bytes = b"",
        trailing: bytes = b"",
        diagnostics: Optional[List[str]] = None,
    ):
        self.sections = list(sections)
        self.tracks = list(tracks)
        self.toc_slack = bytes(toc_slack)
        self.trailing = bytes(trailing)
        self.diagnostics: List[str] = list(diagnostics or [])
        self._edits: List[PendingEdit] = []
        self._max_issued = max((t.track_id for t in self.tracks), default=0)
        self._snapshot = copy.deepcopy(self.tracks)

    # Sections

    def section(self, tag: bytes):
        for sec in self.sections:
            if sec.tag == tag:
                return sec
        return None

    @property
    def bank_info(self) -> BankInfoSection:
        return self.section(TAG_BINF)

    @property
    def tone(self) -> ToneSection:
        return next(s for s in self.sections if isinstance(s, ToneSection))

    @property
    def pack(self) -> PackSection:
        return next(s for s in self.sections if isinstance(s, PackSection))

    @property
    def has_unrecognized_tracks(self) -> bool:
        return any(not t.recognized for t in self.tracks)

    # Lookup

    def _find(self, key: TrackKey) -> Optional[Track]:
        if isinstance(key, str):
            try:
                key = int(key, 0)
            except ValueError:
                return None
        for t in self.tracks:
            if t.track_id == key:
                return t
        return None

    def get_track(self, key: TrackKey) -> Track:
        t = self._find(key)
        if t is None:
            raise TrackNotFound(key)
        return t

    def list_tracks(self) -> List[TrackInfo]:
        return [TrackInfo(t.track_id, t.hex_id, t.name, t.size) for t in self.tracks]

    def get_payload(self, key: TrackKey) -> bytes:
        t = self.get_track(key)
        if t.payload is None:
            raise PayloadUnavailable(t.track_id)
        return t.payload

    # Mutation

    def add_track(self, name: str, payload: bytes) -> int:
        """Append a track.

        The new track copies the metadata layout of the first recognized
        track, so it keeps the bank's block shape, prefix and extra fields;
        only name, offset and size differ. A bank without one gets the
        canonical layout. Names must be unique within the bank.

        Returns the new track id, one above every id issued so far.
        """
        if not name:
            raise InvalidInput("Track name must not be empty")
        name_raw = name.encode("utf-8")
        if len(name_raw) > MAX_NAME_BYTES or b"\x00" in name_raw:
            raise InvalidInput(f"Track name must be at most {MAX_NAME_BYTES} UTF-8 bytes without NUL")
        if any(t.name_raw == name_raw for t in self.tracks):
            raise InvalidInput(f"A track named {name!r} already exists")
        payload = _check_payload(payload)

        track_id = self._max_issued + 1
        self.tracks.append(
            Track(
                track_id=track_id,
                name=name,
                name_raw=name_raw,
                payload=payload,
                size=len(payload),
                pack_offset=0,
                layout=self._template_layout(),
                dirty=True,
            )
        )
        self._max_issued = track_id
        self._edits.append(PendingEdit(EDIT_ADD, track_id))
        return track_id

    def _template_layout(self) -> MetadataLayout:
        for t in self.tracks:
            if t.recognized:
                return copy.deepcopy(t.layout)
        return MetadataLayout.canonical()

    def remove_track(self, key: TrackKey) -> bool:
        t = self._find(key)
        if t is None:
            return False
        self.tracks.remove(t)
        self._edits.append(PendingEdit(EDIT_REMOVE, t.track_id))
        return True

    def replace_track_payload(self, key: TrackKey, payload: bytes) -> None:
        """Replace a track's payload bytes.

        Tracks with an unrecognized metadata layout accept the new payload,
        but serializing afterwards raises UnrepresentableMutation.
        """
        t = self.get_track(key)
        payload = _check_payload(payload)
        t.payload = payload
        t.size = len(payload)
        t.dirty = True
        self._edits.append(PendingEdit(EDIT_REPLACE, t.track_id))

    # Pending edits

    @property
    def pending_edits(self) -> List[PendingEdit]:
        return list(self._edits)

    @property
    def has_pending_edits(self) -> bool:
        return bool(self._edits)

    def discard_pending_edits(self) -> None:
        """Restore the tracks as of the last parse or successful save. Ids stay reserved."""
        self.tracks = copy.deepcopy(self._snapshot)
        self._edits.clear()

    def commit(self, tone: ToneSection, pack: PackSection, placements: Dict[int, Tuple[int, int]]) -> None:
        """Adopt freshly built TONE and PACK sections after a successful build."""
        self.sections = [
            tone if isinstance(s, ToneSection) else pack if isinstance(s, PackSection) else s for s in self.sections
        ]
        for t, (_, meta_size) in zip(self.tracks, tone.pointers):
            if t.track_id in placements:
                t.pack_offset, t.size = placements[t.track_id]
            t.metadata_size = meta_size
            t.dirty = False
        self._edits.clear()
        self._snapshot = copy.deepcopy(self.tracks)

    # Misc

    def clone(self) -> "Archive":
        return copy.deepcopy(self)

    def to_bytes(self) -> bytes:
        from .writer import serialize

        return serialize(self)


def _check_payload(payload) -> bytes:
    if not isinstance(payload, (bytes, bytearray, memoryview)):
        raise InvalidInput("Payload must be bytes")
    payload = bytes(payload)
    if not payload:
        raise InvalidInput("Payload must not be empty")
    return payload
