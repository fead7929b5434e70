from __future__ import annotations

import os
from pathlib import Path

from .errors import NoStoreError

STORE_DIR_NAME = ".tl"
STORE_DIR_ENV = "TL_DIR"


def _as_store_dir(path: Path) -> Path | None:
    candidate = path / STORE_DIR_NAME
    if candidate.exists():
        if not candidate.is_dir():
            raise NotADirectoryError(f"{candidate} exists but is not a directory")
        return candidate
    if path.name == STORE_DIR_NAME and path.is_dir():
        return path
    return None


def resolve_store_dir(start: Path | None = None) -> Path:
    """Return the ``.tl`` store directory that governs ``start``.

    Resolution order:
    1. explicit ``start`` (a ``.tl`` directory or a directory holding one)
       or TL_DIR when ``start`` is not given
    2. nearest existing .tl directory from the start upward
    Raises NoStoreError when nothing is found.
    """
    if start is None:
        raw = os.environ.get(STORE_DIR_ENV, "").strip()
        start = Path(raw).expanduser() if raw else Path.cwd()
    start = start.resolve()

    for base in (start, *start.parents):
        found = _as_store_dir(base)
        if found is not None:
            return found
    raise NoStoreError()
