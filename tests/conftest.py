from __future__ import annotations

from pathlib import Path

import pytest

from tasklog.store import Store, init_store
from tasklog.tracker import Tracker


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("TL_DIR", "TL_ACTOR", "TL_OUTPUT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def store(tmp_path: Path) -> Store:
    return init_store(tmp_path)


@pytest.fixture
def tracker(store: Store) -> Tracker:
    return Tracker(store, actor="tester")
