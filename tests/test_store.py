from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from tasklog import store as store_mod
from tasklog.errors import LockBusyError, NoStoreError, StoreExistsError
from tasklog.events import create_event
from tasklog.lock import exclusive_lock
from tasklog.model import Graph
from tasklog.state import resolve_store_dir
from tasklog.store import Store, init_store

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_init_store_creates_layout(tmp_path: Path) -> None:
    store = init_store(tmp_path)

    assert store.root == tmp_path / ".tl"
    assert store.events_path.read_bytes() == b""
    assert store.lock_path.exists()


def test_init_store_refuses_existing(tmp_path: Path) -> None:
    init_store(tmp_path)

    with pytest.raises(StoreExistsError, match="already initialized"):
        init_store(tmp_path)


def test_resolve_walks_up_from_subdirectory(tmp_path: Path) -> None:
    init_store(tmp_path)
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)

    assert resolve_store_dir(nested) == (tmp_path / ".tl").resolve()


def test_resolve_accepts_store_dir_itself(tmp_path: Path) -> None:
    init_store(tmp_path)

    assert resolve_store_dir(tmp_path / ".tl") == (tmp_path / ".tl").resolve()


def test_resolve_uses_tl_dir_env(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    init_store(tmp_path / "elsewhere")
    monkeypatch.setenv("TL_DIR", str(tmp_path / "elsewhere"))
    monkeypatch.chdir(tmp_path)

    assert resolve_store_dir() == (tmp_path / "elsewhere" / ".tl").resolve()


def test_resolve_without_store_raises(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)

    with pytest.raises(NoStoreError, match="tl init"):
        Store.open()


def test_load_empty_store(store: Store) -> None:
    graph = store.load()

    assert isinstance(graph, Graph)
    assert graph.issues == {}


def test_mutate_appends_events_and_load_sees_them(store: Store) -> None:
    event = create_event("tl-0001", title="A", actor="t", ts=T0)

    appended = store.mutate(lambda graph: [event])

    assert appended == [event]
    assert list(store.load().issues) == ["tl-0001"]


def test_mutate_passes_fresh_graph(store: Store) -> None:
    store.mutate(lambda graph: [create_event("tl-1", title="A", actor="t", ts=T0)])
    seen: list[list[str]] = []

    def fn(graph: Graph) -> list:
        seen.append(sorted(graph.issues))
        return []

    assert store.mutate(fn) == []
    assert seen == [["tl-1"]]


def test_mutate_error_propagates_and_appends_nothing(store: Store) -> None:
    def fn(graph: Graph) -> list:
        raise ValueError("precondition failed")

    with pytest.raises(ValueError, match="precondition failed"):
        store.mutate(fn)

    assert store.events_path.read_bytes() == b""


def test_mutate_fails_fast_when_locked(store: Store) -> None:
    calls: list[Graph] = []

    def fn(graph: Graph) -> list:
        calls.append(graph)
        return [create_event("tl-1", title="A", actor="t", ts=T0)]

    with exclusive_lock(store.lock_path):
        with pytest.raises(LockBusyError):
            store.mutate(fn)
        # readers never take the lock
        assert store.load().issues == {}

    assert calls == []
    assert store.events_path.read_bytes() == b""


def test_module_level_load_and_mutate(tmp_path: Path) -> None:
    init_store(tmp_path)

    store_mod.mutate(
        tmp_path, lambda graph: [create_event("tl-1", title="A", actor="t", ts=T0)]
    )

    assert list(store_mod.load(tmp_path).issues) == ["tl-1"]
