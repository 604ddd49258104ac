from __future__ import annotations

import re


_UNSAFE = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def safe_filename(name: str) -> str:
    """Make a track export name usable as a single path component.

    Rules:
    - Replace path separators, control and reserved characters with '_'
    - Strip surrounding whitespace and dots
    - Reject names that end up empty or are '.'/'..'
    """
    name = _UNSAFE.sub("_", name).strip().strip(".")
    if name in ("", ".", ".."):
        raise ValueError("File name is empty after sanitizing")
    return name
