from __future__ import annotations

from typing import TYPE_CHECKING

__all__ = [
    "__version__",
    "Event",
    "Graph",
    "Issue",
    "Store",
    "Tracker",
    "load",
    "mutate",
    "replay",
]

__version__ = "0.1.0"

if TYPE_CHECKING:
    from .events import Event
    from .model import Graph, Issue
    from .replay import replay
    from .store import Store, load, mutate
    from .tracker import Tracker


def __getattr__(name: str):
    if name == "Event":
        from .events import Event

        return Event
    if name in {"Graph", "Issue"}:
        from .model import Graph, Issue

        return {"Graph": Graph, "Issue": Issue}[name]
    if name == "replay":
        from .replay import replay

        return replay
    if name in {"Store", "load", "mutate"}:
        from .store import Store, load, mutate

        return {"Store": Store, "load": load, "mutate": mutate}[name]
    if name == "Tracker":
        from .tracker import Tracker

        return Tracker
    raise AttributeError(f"module 'tasklog' has no attribute {name!r}")
