from __future__ import annotations

import base64
import json as _json
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import yaml

from .archive import Archive, Track
from .errors import InvalidInput, ParseError
from .sections import (
    BankInfoSection,
    DataToneSection,
    GroupSection,
    PackSection,
    PropSection,
    ToneSection,
    UnknownSection,
)
from .tonemeta import BlockShape


@dataclass
class DumpOptions:
    max_preview_bytes: int = 4096
    include_pack_preview: bool = False
    include_payload_preview: bool = False
    include_unknown_preview: bool = False


class FlowStyleList(list):
    pass


def _represent_flow_style_list(dumper, data):
    return dumper.represent_sequence("tag:yaml.org,2002:seq", data, flow_style=True)


yaml.add_representer(FlowStyleList, _represent_flow_style_list, Dumper=yaml.SafeDumper)


def _tag(tag: bytes) -> str:
    return tag.decode("latin-1")


def bytes_preview(data: bytes, max_bytes: int) -> Dict[str, Any]:
    take = data[:max_bytes]
    return {
        "len": len(data),
        "preview_len": len(take),
        "preview_base64": base64.b64encode(take).decode("ascii"),
        "truncated": len(take) < len(data),
    }


def _section_dict(sec, opts: DumpOptions) -> Dict[str, Any]:
    body = sec.to_bytes()
    out: Dict[str, Any] = {"tag": _tag(sec.tag), "size": len(body)}
    if isinstance(sec, PropSection):
        if sec.decoded:
            out.update(
                project=sec.project,
                timestamp=sec.timestamp,
                unk1=sec.unk1,
                unk2=sec.unk2,
                unk3=sec.unk3,
                layout="extended" if sec.extended else "minimal",
            )
        out["verbatim"] = sec.verbatim is not None
    elif isinstance(sec, BankInfoSection):
        if sec.decoded:
            out.update(bank_id=sec.bank_id, name=sec.name, flag=sec.flag)
        out["verbatim"] = sec.verbatim is not None
    elif isinstance(sec, GroupSection):
        try:
            out["names"] = sec.names()
        except ParseError as e:
            out["error"] = str(e)
    elif isinstance(sec, DataToneSection):
        try:
            out["entries"] = [
                {"hash": e.hash, "unk1": e.unk1, "name": e.name, "values": FlowStyleList(e.values)}
                for e in sec.entries()
            ]
        except ParseError as e:
            out["error"] = str(e)
    elif isinstance(sec, ToneSection):
        out["count"] = len(sec.pointers)
    elif isinstance(sec, PackSection):
        if opts.include_pack_preview:
            out["preview"] = bytes_preview(body, opts.max_preview_bytes)
    elif isinstance(sec, UnknownSection):
        if opts.include_unknown_preview:
            out["preview"] = bytes_preview(body, opts.max_preview_bytes)
    return out


def _track_dict(t: Track, opts: DumpOptions) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": t.hex_id,
        "name": t.name,
        "size": t.size,
        "pack_offset": t.pack_offset,
        "metadata_size": t.metadata_size,
        "format": t.audio_format,
        "filename": t.filename,
    }
    lay = t.layout
    if lay.recognized:
        out["layout"] = {
            "recognized": True,
            "shape": lay.shape,
            "prefix": lay.prefix.hex() if lay.prefix else None,
            "pair_order": lay.pair_order,
            "pairs": [FlowStyleList([idx, val]) for idx, val in lay.pairs],
        }
        if lay.shape == BlockShape.FULL:
            out["layout"].update(
                hash=lay.hash,
                unk1=lay.unk1,
                reserved0=lay.reserved0,
                params=FlowStyleList(lay.params),
                offsets=FlowStyleList(lay.offsets),
                unkending=FlowStyleList(lay.unkending),
                end=FlowStyleList(lay.end),
            )
        else:
            out["layout"]["reserved"] = lay.reserved.hex()
    else:
        out["layout"] = {"recognized": False, "raw": bytes_preview(lay.raw, opts.max_preview_bytes)}
    if opts.include_payload_preview and t.payload is not None:
        out["payload_preview"] = bytes_preview(t.payload, opts.max_preview_bytes)
    return out


def bank_to_dict(archive: Archive, options: Optional[DumpOptions] = None) -> Dict[str, Any]:
    """Structural view of a bank for inspection; not a serialization format."""
    opts = options or DumpOptions()
    sections: List[Dict[str, Any]] = [_section_dict(s, opts) for s in archive.sections]
    return {
        "toc": [{"tag": s["tag"], "size": s["size"]} for s in sections],
        "toc_slack": len(archive.toc_slack),
        "trailing": len(archive.trailing),
        "sections": sections,
        "tracks": [_track_dict(t, opts) for t in archive.tracks],
        "pending_edits": [{"kind": e.kind, "id": f"0x{e.track_id:x}"} for e in archive.pending_edits],
        "diagnostics": list(archive.diagnostics),
    }


def _strict_json(value):
    # JSON has no NaN or Infinity; spell non-finite floats out as strings
    if isinstance(value, float) and not math.isfinite(value):
        return "NaN" if math.isnan(value) else ("Infinity" if value > 0 else "-Infinity")
    if isinstance(value, dict):
        return {k: _strict_json(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_strict_json(v) for v in value]
    return value


def dumps(archive: Archive, fmt: str = "json", options: Optional[DumpOptions] = None) -> str:
    doc = bank_to_dict(archive, options)
    if fmt == "json":
        return _json.dumps(_strict_json(doc), indent=2, ensure_ascii=False, allow_nan=False)
    if fmt == "yaml":
        return yaml.safe_dump(doc, sort_keys=False, allow_unicode=True)
    raise InvalidInput(f"Unknown dump format: {fmt}")
