from __future__ import annotations

import fcntl
import os
from pathlib import Path

import pytest

from tasklog.errors import LockBusyError
from tasklog.lock import exclusive_lock


def test_lock_is_exclusive_across_file_descriptions(tmp_path: Path) -> None:
    path = tmp_path / "lock"

    with exclusive_lock(path):
        with pytest.raises(LockBusyError, match="lock busy"):
            with exclusive_lock(path):
                pass


def test_lock_released_after_block(tmp_path: Path) -> None:
    path = tmp_path / "lock"

    with exclusive_lock(path):
        pass

    fd = os.open(path, os.O_WRONLY)
    try:
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)


def test_lock_released_when_body_raises(tmp_path: Path) -> None:
    path = tmp_path / "lock"

    with pytest.raises(RuntimeError):
        with exclusive_lock(path):
            raise RuntimeError("boom")

    with exclusive_lock(path):
        pass


def test_lock_file_is_created(tmp_path: Path) -> None:
    path = tmp_path / "lock"

    with exclusive_lock(path):
        assert path.exists()
