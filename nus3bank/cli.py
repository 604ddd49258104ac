from __future__ import annotations

import os
import sys
import argparse
import json as _json

from pathlib import Path
from typing import List, Optional

from nus3bank.archive import Archive
from nus3bank.dump import DumpOptions, dumps
from nus3bank.errors import Nus3bankError, PayloadUnavailable
from nus3bank.fileio import load_bank, save_bank
from nus3bank.pathutil import safe_filename
from nus3bank.reader import parse_bank
from nus3bank.writer import serialize


def _open(bank: str) -> Archive:
    """Load a bank and report non-fatal parse findings on stderr."""
    a = load_bank(bank)
    for msg in a.diagnostics:
        print(f"Warning: {msg}", file=sys.stderr)
    return a


def _save(a: Archive, bank: str, output: Optional[str], backup: bool) -> str:
    dst = output or bank
    backup_path = save_bank(a, dst, backup=backup)
    if backup_path is not None:
        print(f"Backup: {backup_path}")
    return dst


def _read_input(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def cmd_list(bank: str, *, as_json: bool = False) -> bool:
    """List tracks.

    Args:
        bank: Path to a .nus3bank file.
        as_json: Emit a JSON array instead of tab-separated lines.
    """
    a = _open(bank)
    if as_json:
        rows = [{"id": i.hex_id, "name": i.name, "size": i.size} for i in a.list_tracks()]
        print(_json.dumps(rows, indent=2, ensure_ascii=False))
        return True
    for info in a.list_tracks():
        size = "?" if info.size is None else str(info.size)
        print(f"{info.hex_id}\t{size}\t{info.name}")
    return True


def cmd_info(bank: str) -> bool:
    """Show bank information.

    Args:
        bank: Path to a .nus3bank file.
    """
    a = _open(bank)
    print(f"Bank: {bank}")
    binf = a.bank_info
    if binf.decoded:
        print(f"  Name: {binf.name}")
        print(f"  ID: {binf.bank_id}")
    print(f"  Sections: {' '.join(s.tag.decode('latin-1').strip() for s in a.sections)}")
    print(f"  Tracks: {len(a.tracks)}")
    unrecognized = sum(1 for t in a.tracks if not t.recognized)
    if unrecognized:
        print(f"    Unrecognized metadata: {unrecognized}")
    print(f"  PACK size: {len(a.pack.body)}")
    return True


def cmd_extract(bank: str, *, outdir: str = ".", ids: Optional[List[str]] = None, quiet: bool = False) -> bool:
    """Write track payloads to `<outdir>/<hex id>-<name>.wav`.

    Args:
        bank: Path to a .nus3bank file.
        outdir: Destination directory (created if missing).
        ids: Track ids to export (hex like 0x1f, or decimal). All tracks when empty.
        quiet: Only print the summary line.

    Returns:
        False if any track could not be exported.
    """
    a = _open(bank)
    tracks = [a.get_track(i) for i in ids] if ids else list(a.tracks)
    os.makedirs(outdir, exist_ok=True)
    ok = True
    written = 0
    for t in tracks:
        try:
            payload = a.get_payload(t.track_id)
        except PayloadUnavailable as e:
            print(f"Warning: {e}", file=sys.stderr)
            ok = False
            continue
        dst = Path(outdir) / safe_filename(t.filename)
        dst.write_bytes(payload)
        written += 1
        if not quiet:
            print(f"{t.hex_id}\t{dst}")
    print(f"Extracted {written}/{len(tracks)} track(s)")
    return ok


def cmd_replace(bank: str, track: str, source: str, *, output: Optional[str] = None, backup: bool = False) -> bool:
    """Replace one track's payload with the contents of `source`.

    Args:
        bank: Path to a .nus3bank file.
        track: Track id (hex like 0x1f, or decimal).
        source: File holding the new payload.
        output: Write the result here instead of updating `bank` in place.
        backup: Keep the previous file as `<path>.bak`.
    """
    a = _open(bank)
    a.replace_track_payload(track, _read_input(source))
    dst = _save(a, bank, output, backup)
    print(f"Replaced {a.get_track(track).hex_id} -> {dst}")
    return True


def cmd_add(bank: str, source: str, *, name: Optional[str] = None, output: Optional[str] = None, backup: bool = False) -> bool:
    """Append a new track.

    Args:
        bank: Path to a .nus3bank file.
        source: File holding the payload.
        name: Track name (defaults to the source file stem).
        output: Write the result here instead of updating `bank` in place.
        backup: Keep the previous file as `<path>.bak`.
    """
    a = _open(bank)
    track_id = a.add_track(name or Path(source).stem, _read_input(source))
    dst = _save(a, bank, output, backup)
    print(f"Added 0x{track_id:x} -> {dst}")
    return True


def cmd_remove(bank: str, track: str, *, output: Optional[str] = None, backup: bool = False) -> bool:
    """Remove a track. Returns False (and writes nothing) when the id does not exist."""
    a = _open(bank)
    if not a.remove_track(track):
        print(f"Error: Track not found: {track}", file=sys.stderr)
        return False
    dst = _save(a, bank, output, backup)
    print(f"Removed {track} -> {dst}")
    return True


def cmd_verify(bank: str) -> bool:
    """Rebuild the bank in memory and check that every track survives unchanged.

    Prints:
        "OK" on success (noting whether the rebuild is byte-identical), "FAIL" otherwise.
    """
    with open(bank, "rb") as f:
        data = f.read()
    a = parse_bank(data)
    for msg in a.diagnostics:
        print(f"Warning: {msg}", file=sys.stderr)
    before = [(t.name_raw, t.payload, t.layout.raw if not t.recognized else None) for t in a.tracks]
    rebuilt = serialize(a.clone())
    b = parse_bank(rebuilt)
    after = [(t.name_raw, t.payload, t.layout.raw if not t.recognized else None) for t in b.tracks]
    if before != after:
        print("FAIL")
        return False
    print("OK" if rebuilt == data else "OK (rebuild normalizes layout)")
    return True


def cmd_dump(bank: str, *, fmt: str = "json", output: Optional[str] = None, options: Optional[DumpOptions] = None) -> bool:
    """Print (or write) a structural dump of the bank as JSON or YAML."""
    a = _open(bank)
    text = dumps(a, fmt, options)
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(text)
    else:
        print(text)
    return True


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="nus3bank",
        description="NUS3BANK (BANKTOC) audio bank tool",
        epilog="Mutating commands write atomically; use --output to keep the input untouched.",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_list = sub.add_parser("list", help="List tracks")
    ap_list.add_argument("bank", help="Bank path")
    ap_list.add_argument("--json", action="store_true", help="Emit JSON")

    ap_info = sub.add_parser("info", help="Show bank information")
    ap_info.add_argument("bank", help="Bank path")

    ap_extract = sub.add_parser("extract", help="Export track payloads")
    ap_extract.add_argument("bank", help="Bank path")
    ap_extract.add_argument("ids", nargs="*", help="Track ids to export (default: all)")
    ap_extract.add_argument("--outdir", default=".", help="Output directory")
    ap_extract.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    def _mutating(p):
        p.add_argument("--output", "-o", help="Write the result to this path instead of in place")
        p.add_argument("--backup", action="store_true", help="Keep the previous file as <path>.bak")

    ap_replace = sub.add_parser("replace", help="Replace a track payload")
    ap_replace.add_argument("bank", help="Bank path")
    ap_replace.add_argument("id", help="Track id (e.g. 0x1f)")
    ap_replace.add_argument("source", help="File with the new payload")
    _mutating(ap_replace)

    ap_add = sub.add_parser("add", help="Add a track")
    ap_add.add_argument("bank", help="Bank path")
    ap_add.add_argument("source", help="File with the payload")
    ap_add.add_argument("--name", help="Track name (default: source file stem)")
    _mutating(ap_add)

    ap_remove = sub.add_parser("remove", help="Remove a track")
    ap_remove.add_argument("bank", help="Bank path")
    ap_remove.add_argument("id", help="Track id (e.g. 0x1f)")
    _mutating(ap_remove)

    ap_verify = sub.add_parser("verify", help="Check that the bank rebuilds without losing data")
    ap_verify.add_argument("bank", help="Bank path")

    ap_dump = sub.add_parser("dump", help="Dump bank structure as JSON or YAML")
    ap_dump.add_argument("bank", help="Bank path")
    ap_dump.add_argument("--format", choices=("json", "yaml"), default="json", help="Output format")
    ap_dump.add_argument("--output", "-o", help="Write to this file instead of stdout")
    ap_dump.add_argument("--max-preview", type=int, default=4096, help="Bytes per base64 preview (default 4096)")
    ap_dump.add_argument("--include-pack", action="store_true", help="Preview the PACK body")
    ap_dump.add_argument("--include-payloads", action="store_true", help="Preview each track payload")
    ap_dump.add_argument("--include-unknown", action="store_true", help="Preview unknown sections")

    args = ap.parse_args(argv)
    try:
        if args.cmd == "list":
            cmd_list(args.bank, as_json=args.json)
        elif args.cmd == "info":
            cmd_info(args.bank)
        elif args.cmd == "extract":
            ok = cmd_extract(args.bank, outdir=args.outdir, ids=args.ids, quiet=args.quiet)
            sys.exit(0 if ok else 1)
        elif args.cmd == "replace":
            cmd_replace(args.bank, args.id, args.source, output=args.output, backup=args.backup)
        elif args.cmd == "add":
            cmd_add(args.bank, args.source, name=args.name, output=args.output, backup=args.backup)
        elif args.cmd == "remove":
            if not cmd_remove(args.bank, args.id, output=args.output, backup=args.backup):
                sys.exit(2)
        elif args.cmd == "verify":
            sys.exit(0 if cmd_verify(args.bank) else 1)
        elif args.cmd == "dump":
            opts = DumpOptions(
                max_preview_bytes=args.max_preview,
                include_pack_preview=args.include_pack,
                include_payload_preview=args.include_payloads,
                include_unknown_preview=args.include_unknown,
            )
            cmd_dump(args.bank, fmt=args.format, output=args.output, options=opts)
        else:
            raise RuntimeError("Unknown command")
    except FileNotFoundError as e:
        print(f"Error: no such file or directory: {e.filename}", file=sys.stderr)
        sys.exit(2)
    except (Nus3bankError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
