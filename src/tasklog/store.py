"""Event store: layout, lock-free loads and locked read-modify-append."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from .errors import StoreExistsError
from .events import Event, EventLog
from .lock import exclusive_lock
from .model import Graph
from .replay import replay
from .state import STORE_DIR_NAME, resolve_store_dir

logger = logging.getLogger(__name__)

EVENTS_FILE_NAME = "events.jsonl"
LOCK_FILE_NAME = "lock"

MutateFn = Callable[[Graph], list[Event]]


@dataclass(frozen=True)
class Store:
    """One ``.tl`` directory: the event log plus its lock sentinel."""

    root: Path

    @classmethod
    def open(cls, start: Path | None = None) -> "Store":
        return cls(resolve_store_dir(start))

    @property
    def events_path(self) -> Path:
        return self.root / EVENTS_FILE_NAME

    @property
    def lock_path(self) -> Path:
        return self.root / LOCK_FILE_NAME

    @property
    def log(self) -> EventLog:
        return EventLog(self.events_path)

    def read_events(self) -> list[Event]:
        return self.log.read()

    def load(self) -> Graph:
        """Replay the whole log. Takes no lock; may see any committed prefix."""
        return replay(self.read_events())

    def mutate(self, fn: MutateFn) -> list[Event]:
        """Run ``fn`` against a freshly replayed graph and append its events.

        Raises ``LockBusyError`` without calling ``fn`` when another writer
        holds the lock. Any exception from ``fn`` propagates unchanged and
        nothing is appended. Returns the appended events.
        """
        with exclusive_lock(self.lock_path):
            graph = self.load()
            events = list(fn(graph))
            self.log.append(events)
        if events:
            logger.debug(
                "committed %d event(s) to %s: %s",
                len(events),
                self.events_path,
                ",".join(f"{ev.type}:{ev.id}" for ev in events),
            )
        return events


def init_store(path: Path) -> Store:
    """Create ``path/.tl`` with an empty log and lock sentinel."""
    root = path / STORE_DIR_NAME
    if root.exists():
        raise StoreExistsError(f"already initialized at {path}")
    root.mkdir(parents=True)
    (root / EVENTS_FILE_NAME).touch()
    (root / LOCK_FILE_NAME).touch()
    return Store(root)


def load(path: Path | None = None) -> Graph:
    return Store.open(path).load()


def mutate(path: Path | None, fn: MutateFn) -> list[Event]:
    return Store.open(path).mutate(fn)
