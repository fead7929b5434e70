"""Fold an ordered event sequence into a Graph.

Replay is a pure function of its input: no I/O, no clock, no validation of
workflow rules. Events naming issues that do not exist are skipped and
unknown event types are ignored, so any history that was valid when it was
written replays without error. Only a payload that cannot be decoded at all
raises ``CorruptionError``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from .errors import CorruptionError
from .events import (
    EVENT_CLAIM,
    EVENT_CLOSE,
    EVENT_CREATE,
    EVENT_DEP_ADD,
    EVENT_DEP_REMOVE,
    EVENT_REOPEN,
    EVENT_UPDATE,
    Event,
    parse_ts,
)
from .model import (
    DEFAULT_PRIORITY,
    STATUS_CLOSED,
    STATUS_IN_PROGRESS,
    STATUS_OPEN,
    Dependency,
    Graph,
    Issue,
)

_STR_FIELDS = (
    "description",
    "design",
    "acceptance_criteria",
    "notes",
    "spec_id",
    "issue_type",
    "assignee",
    "owner",
    "created_by",
)

# update field name -> (Issue attribute, expected type)
_UPDATE_FIELDS: dict[str, tuple[str, type]] = {
    "status": ("status", str),
    "title": ("title", str),
    "description": ("description", str),
    "priority": ("priority", int),
    "assignee": ("assignee", str),
    "close_reason": ("close_reason", str),
    "issue_type": ("issue_type", str),
}


def _bad_payload(event: Event, detail: str) -> CorruptionError:
    return CorruptionError(f"malformed {event.type} event for {event.id}: {detail}")


def _str(event: Event, key: str, default: str = "") -> str:
    value = event.data.get(key, default)
    if value is None:
        return default
    if not isinstance(value, str):
        raise _bad_payload(event, f"{key} must be a string")
    return value


def _int(event: Event, key: str, default: int) -> int:
    value = event.data.get(key, default)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise _bad_payload(event, f"{key} must be an integer")
    return value


def _apply_create(graph: Graph, event: Event) -> None:
    labels = event.data.get("labels") or []
    if not isinstance(labels, list) or not all(isinstance(v, str) for v in labels):
        raise _bad_payload(event, "labels must be a list of strings")
    metadata = event.data.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise _bad_payload(event, "metadata must be an object")
    defer_raw = event.data.get("defer_until")
    try:
        defer_until = parse_ts(defer_raw) if defer_raw else None
    except ValueError as exc:
        raise _bad_payload(event, str(exc)) from exc

    issue = Issue(
        id=event.id,
        title=_str(event, "title"),
        created_at=event.ts,
        updated_at=event.ts,
        status=_str(event, "status") or STATUS_OPEN,
        priority=_int(event, "priority", DEFAULT_PRIORITY),
        defer_until=defer_until,
        labels=list(labels),
        pinned=bool(event.data.get("pinned", False)),
        ephemeral=bool(event.data.get("ephemeral", False)),
        metadata=dict(metadata),
    )
    for key in _STR_FIELDS:
        setattr(issue, key, _str(event, key))

    previous = graph.issues.get(event.id)
    if previous is not None:
        issue.dependencies = previous.dependencies
    graph.issues[event.id] = issue


def _apply_update(graph: Graph, event: Event) -> None:
    issue = graph.issues.get(event.id)
    if issue is None:
        return
    fields = event.data.get("fields") or {}
    if not isinstance(fields, dict):
        raise _bad_payload(event, "fields must be an object")
    for name, value in fields.items():
        known = _UPDATE_FIELDS.get(name)
        if known is None:
            issue.metadata[name] = value
            continue
        attr, expected = known
        if value is None:
            value = expected()
        if isinstance(value, bool) or not isinstance(value, expected):
            raise _bad_payload(event, f"{name} must be {expected.__name__}")
        setattr(issue, attr, value)
    issue.updated_at = event.ts


def _apply_close(graph: Graph, event: Event) -> None:
    issue = graph.issues.get(event.id)
    if issue is None:
        return
    issue.status = STATUS_CLOSED
    issue.close_reason = _str(event, "reason")
    issue.closed_at = event.ts
    issue.updated_at = event.ts
    graph.detach_dependents(event.id)


def _apply_reopen(graph: Graph, event: Event) -> None:
    issue = graph.issues.get(event.id)
    if issue is None:
        return
    issue.status = STATUS_OPEN
    issue.closed_at = None
    issue.close_reason = ""
    issue.assignee = ""
    issue.updated_at = event.ts


def _apply_claim(graph: Graph, event: Event) -> None:
    agent = _str(event, "agent")
    issue = graph.issues.get(event.id)
    if issue is None:
        return
    issue.status = STATUS_IN_PROGRESS
    issue.assignee = agent
    issue.updated_at = event.ts


def _apply_dep_add(graph: Graph, event: Event) -> None:
    depends_on_id = _str(event, "depends_on_id")
    graph.add_edge(
        Dependency(
            issue_id=event.id,
            depends_on_id=depends_on_id,
            type=_str(event, "dep_type"),
            created_at=event.ts,
            created_by=event.actor,
        )
    )


def _apply_dep_remove(graph: Graph, event: Event) -> None:
    graph.remove_edge(event.id, _str(event, "depends_on_id"))


_HANDLERS: dict[str, Callable[[Graph, Event], Any]] = {
    EVENT_CREATE: _apply_create,
    EVENT_UPDATE: _apply_update,
    EVENT_CLOSE: _apply_close,
    EVENT_REOPEN: _apply_reopen,
    EVENT_CLAIM: _apply_claim,
    EVENT_DEP_ADD: _apply_dep_add,
    EVENT_DEP_REMOVE: _apply_dep_remove,
}


def apply_event(graph: Graph, event: Event) -> None:
    handler = _HANDLERS.get(event.type)
    if handler is not None:
        handler(graph, event)


def replay(events: Iterable[Event]) -> Graph:
    graph = Graph()
    for event in events:
        apply_event(graph, event)
    return graph
