from __future__ import annotations

import errno
import os
import sys
import tempfile
from pathlib import Path
from typing import Optional

from .archive import Archive
from .errors import Nus3bankError, WriteError
from .reader import parse_bank
from .writer import serialize


def load_bank(path: str) -> Archive:
    with open(path, "rb") as f:
        return parse_bank(f.read())


def save_bank(archive: Archive, path: str, *, backup: bool = False, backup_suffix: str = ".bak") -> Optional[Path]:
    """Serialize `archive` and atomically place it at `path`.

    The bank is built in memory, written to a temporary file next to the
    destination, re-parsed as a check, and then swapped in with os.replace.
    With `backup`, an existing destination is first renamed to
    `<path><backup_suffix>`.

    Returns:
        The backup path when one was made, otherwise None.
    """
    dst = Path(path)
    target_dir = dst.parent
    if not target_dir.is_dir():
        raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(target_dir))
    backup_path = dst.with_name(dst.name + backup_suffix) if backup and dst.exists() else None

    data = serialize(archive)

    fd, temp_bank = tempfile.mkstemp(prefix=".nus3bank-", suffix=".tmp", dir=str(target_dir))
    temp_path = Path(temp_bank)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        check = parse_bank(temp_path.read_bytes())
        if len(check.tracks) != len(archive.tracks):
            raise WriteError(f"Written bank lists {len(check.tracks)} tracks, expected {len(archive.tracks)}")
    except (Nus3bankError, OSError):
        temp_path.unlink(missing_ok=True)
        raise

    try:
        if backup_path is not None:
            os.replace(str(dst), str(backup_path))
        os.replace(str(temp_path), str(dst))
    except OSError:
        if backup_path is not None and not dst.exists() and backup_path.exists():
            try:
                os.replace(str(backup_path), str(dst))
            except OSError as exc:
                print(f"Warning: failed to restore {dst} from backup: {exc}", file=sys.stderr)
        temp_path.unlink(missing_ok=True)
        raise
    return backup_path
