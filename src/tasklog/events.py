"""Append-only JSONL event log for tasklog.

Every state change is one event line in ``.tl/events.jsonl``:
``{"type", "id", "ts", "actor", "data"}``. Events are the only persisted
entity; issues and edges are rebuilt from them by ``tasklog.replay``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .jsonl import PARSE_ERRORS, append_jsonl, read_jsonl
from .model import DEFAULT_ISSUE_TYPE, DEFAULT_PRIORITY, STATUS_OPEN, format_ts

EVENT_CREATE = "create"
EVENT_UPDATE = "update"
EVENT_CLOSE = "close"
EVENT_REOPEN = "reopen"
EVENT_DEP_ADD = "dep_add"
EVENT_DEP_REMOVE = "dep_remove"
EVENT_CLAIM = "claim"

EVENT_TYPES = (
    EVENT_CREATE,
    EVENT_UPDATE,
    EVENT_CLOSE,
    EVENT_REOPEN,
    EVENT_DEP_ADD,
    EVENT_DEP_REMOVE,
    EVENT_CLAIM,
)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_ts(value: object) -> datetime:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"invalid timestamp: {value!r}")
    return as_utc(datetime.fromisoformat(value.strip()))


@dataclass(frozen=True)
class Event:
    type: str
    id: str
    ts: datetime
    actor: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "id": self.id,
            "ts": format_ts(self.ts),
            "actor": self.actor,
            "data": self.data,
        }

    def encode(self) -> bytes:
        return json.dumps(
            self.to_dict(), separators=(",", ":"), ensure_ascii=False
        ).encode("utf-8")

    @classmethod
    def from_dict(cls, row: object) -> "Event":
        if not isinstance(row, dict):
            raise ValueError("event record must be a JSON object")
        event_type = row.get("type")
        issue_id = row.get("id")
        if not isinstance(event_type, str) or not event_type:
            raise ValueError("event record has no type")
        if not isinstance(issue_id, str):
            raise ValueError("event record has no id")
        actor = row.get("actor") or ""
        if not isinstance(actor, str):
            raise ValueError("event actor must be a string")
        data = row.get("data")
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError("event data must be a JSON object")
        return cls(
            type=event_type,
            id=issue_id,
            ts=parse_ts(row.get("ts")),
            actor=actor,
            data=data,
        )

    @classmethod
    def decode(cls, line: bytes) -> "Event":
        return cls.from_dict(json.loads(line.decode("utf-8")))


# ---------------------------------------------------------------------------
# Event constructors
# ---------------------------------------------------------------------------


def new_event(
    event_type: str,
    issue_id: str,
    data: dict[str, Any],
    *,
    actor: str,
    ts: datetime | None = None,
) -> Event:
    return Event(
        type=event_type,
        id=issue_id,
        ts=as_utc(ts) if ts is not None else now_utc(),
        actor=actor,
        data=data,
    )


def create_event(
    issue_id: str,
    *,
    title: str,
    actor: str,
    ts: datetime | None = None,
    description: str = "",
    status: str = STATUS_OPEN,
    priority: int = DEFAULT_PRIORITY,
    issue_type: str = DEFAULT_ISSUE_TYPE,
    labels: list[str] | None = None,
    metadata: dict[str, Any] | None = None,
    design: str = "",
    acceptance_criteria: str = "",
    notes: str = "",
    spec_id: str = "",
    assignee: str = "",
    owner: str = "",
    created_by: str = "",
    defer_until: datetime | None = None,
    pinned: bool = False,
    ephemeral: bool = False,
) -> Event:
    data: dict[str, Any] = {"title": title, "status": status, "priority": int(priority)}
    optional: dict[str, Any] = {
        "description": description,
        "issue_type": issue_type,
        "labels": list(labels or []),
        "metadata": dict(metadata or {}),
        "design": design,
        "acceptance_criteria": acceptance_criteria,
        "notes": notes,
        "spec_id": spec_id,
        "assignee": assignee,
        "owner": owner,
        "created_by": created_by,
        "pinned": pinned,
        "ephemeral": ephemeral,
    }
    for key, value in optional.items():
        if value:
            data[key] = value
    if defer_until is not None:
        data["defer_until"] = format_ts(as_utc(defer_until))
    return new_event(EVENT_CREATE, issue_id, data, actor=actor, ts=ts)


def update_event(
    issue_id: str,
    fields: dict[str, Any],
    *,
    actor: str,
    ts: datetime | None = None,
) -> Event:
    if not fields:
        raise ValueError("no fields to update")
    return new_event(
        EVENT_UPDATE, issue_id, {"fields": dict(fields)}, actor=actor, ts=ts
    )


def close_event(
    issue_id: str,
    reason: str = "",
    *,
    actor: str,
    ts: datetime | None = None,
) -> Event:
    data = {"reason": reason} if reason else {}
    return new_event(EVENT_CLOSE, issue_id, data, actor=actor, ts=ts)


def reopen_event(issue_id: str, *, actor: str, ts: datetime | None = None) -> Event:
    return new_event(EVENT_REOPEN, issue_id, {}, actor=actor, ts=ts)


def claim_event(
    issue_id: str,
    agent: str,
    *,
    actor: str,
    ts: datetime | None = None,
) -> Event:
    return new_event(EVENT_CLAIM, issue_id, {"agent": agent}, actor=actor, ts=ts)


def dep_add_event(
    issue_id: str,
    depends_on_id: str,
    dep_type: str,
    *,
    actor: str,
    ts: datetime | None = None,
) -> Event:
    return new_event(
        EVENT_DEP_ADD,
        issue_id,
        {"depends_on_id": depends_on_id, "dep_type": dep_type},
        actor=actor,
        ts=ts,
    )


def dep_remove_event(
    issue_id: str,
    depends_on_id: str,
    *,
    actor: str,
    ts: datetime | None = None,
) -> Event:
    return new_event(
        EVENT_DEP_REMOVE,
        issue_id,
        {"depends_on_id": depends_on_id},
        actor=actor,
        ts=ts,
    )


# ---------------------------------------------------------------------------
# EventLog
# ---------------------------------------------------------------------------


def _is_event(line: bytes) -> bool:
    try:
        Event.decode(line)
    except PARSE_ERRORS:
        return False
    return True


class EventLog:
    """Append-only JSONL event log."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def read(self) -> list[Event]:
        return read_jsonl(self.path, Event.decode)

    def append(self, events: list[Event]) -> None:
        if not events:
            return
        append_jsonl(
            self.path,
            [event.encode() for event in events],
            tail_is_valid=_is_event,
        )
