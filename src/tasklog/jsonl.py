"""Low-level JSONL storage helpers."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

from .errors import CorruptionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RECORD_BYTES = 10 * 1024 * 1024
RECORD_SEPARATOR = b"\n"

# Exceptions a record parser may raise for a malformed record.
PARSE_ERRORS = (ValueError, TypeError, KeyError)

_TAIL_CHUNK = 64 * 1024


def ends_with_separator(path: Path) -> bool:
    with open(path, "rb") as f:
        f.seek(0, os.SEEK_END)
        if f.tell() == 0:
            return False
        f.seek(-1, os.SEEK_END)
        return f.read(1) == RECORD_SEPARATOR


def read_jsonl(path: Path, parse: Callable[[bytes], T]) -> list[T]:
    """Parse every record of ``path`` in order.

    The final record is held back one step so that a record left
    half-written by an interrupted append can be told apart from real
    corruption: it is dropped only when it fails to parse and the file does
    not end with a separator. Any other unparseable record, or a record
    longer than ``MAX_RECORD_BYTES``, raises ``CorruptionError``.
    """
    if not path.exists():
        return []

    complete_tail = ends_with_separator(path)
    rows: list[T] = []
    pending: bytes | None = None
    pending_no = 0

    def process(line_no: int, raw: bytes) -> None:
        record = raw.strip()
        if not record:
            return
        try:
            rows.append(parse(record))
        except PARSE_ERRORS as exc:
            raise CorruptionError(
                f"{path}:{line_no}: invalid JSON in events log: {exc}"
            ) from exc

    with open(path, "rb") as f:
        line_no = 0
        while True:
            raw = f.readline(MAX_RECORD_BYTES + 1)
            if not raw:
                break
            if len(raw) > MAX_RECORD_BYTES and not raw.endswith(RECORD_SEPARATOR):
                raise CorruptionError(
                    f"{path}: event line too long (> {MAX_RECORD_BYTES} bytes); "
                    "file may be corrupted"
                )
            line_no += 1
            if pending is not None:
                process(pending_no, pending)
            pending = raw
            pending_no = line_no

    if pending is not None:
        try:
            process(pending_no, pending)
        except CorruptionError:
            if complete_tail:
                raise
            logger.warning(
                "%s:%d: dropping truncated final record", path, pending_no
            )
    return rows


def _find_tail_start(fd: int, size: int) -> int:
    """Offset just past the last separator in the first ``size`` bytes."""
    end = size
    while end > 0:
        start = max(0, end - _TAIL_CHUNK)
        chunk = os.pread(fd, end - start, start)
        idx = chunk.rfind(RECORD_SEPARATOR)
        if idx >= 0:
            return start + idx + 1
        end = start
    return 0


def _write_all(fd: int, data: bytes) -> None:
    view = memoryview(data)
    while view:
        n = os.write(fd, view)
        if n <= 0:
            raise OSError("short write while appending event log")
        view = view[n:]


def append_jsonl(
    path: Path,
    lines: list[bytes],
    *,
    tail_is_valid: Callable[[bytes], bool] | None = None,
) -> None:
    """Append pre-encoded records, one ``os.write`` loop per record.

    A log left without a trailing separator is repaired first: a complete
    tail record gets its missing separator, an unparseable one (as judged by
    ``tail_is_valid``) is cut off. Callers must hold the store lock.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_RDWR | os.O_APPEND | os.O_CREAT, 0o644)
    try:
        size = os.fstat(fd).st_size
        if size > 0 and os.pread(fd, 1, size - 1) != RECORD_SEPARATOR:
            tail_start = _find_tail_start(fd, size)
            tail = os.pread(fd, size - tail_start, tail_start).strip()
            if not tail or tail_is_valid is None or tail_is_valid(tail):
                _write_all(fd, RECORD_SEPARATOR)
            else:
                logger.warning(
                    "%s: truncating partial record at offset %d before append",
                    path,
                    tail_start,
                )
                os.ftruncate(fd, tail_start)

        for line in lines:
            _write_all(fd, line + RECORD_SEPARATOR)
    finally:
        os.close(fd)
