from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from tasklog.errors import CorruptionError
from tasklog.events import (
    Event,
    EventLog,
    claim_event,
    close_event,
    create_event,
    dep_add_event,
    parse_ts,
    update_event,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_event_encodes_as_compact_json_with_utc_z_suffix() -> None:
    event = create_event("tl-0001", title="A", actor="alice", ts=T0)

    assert event.encode() == (
        b'{"type":"create","id":"tl-0001","ts":"2024-01-01T00:00:00Z",'
        b'"actor":"alice","data":{"title":"A","status":"open","priority":2,'
        b'"issue_type":"task"}}'
    )


def test_create_payload_omits_empty_optional_fields() -> None:
    event = create_event(
        "tl-0001",
        title="A",
        actor="alice",
        ts=T0,
        labels=["x"],
        notes="",
        defer_until=T0 + timedelta(days=1),
    )

    assert event.data["labels"] == ["x"]
    assert event.data["defer_until"] == "2024-01-02T00:00:00Z"
    assert "notes" not in event.data
    assert "pinned" not in event.data


def test_naive_timestamps_are_treated_as_utc() -> None:
    event = claim_event("tl-1", "a1", actor="alice", ts=datetime(2024, 1, 1))

    assert event.ts == T0
    assert event.data == {"agent": "a1"}


def test_close_event_omits_empty_reason() -> None:
    assert close_event("tl-1", actor="a", ts=T0).data == {}
    assert close_event("tl-1", "done", actor="a", ts=T0).data == {"reason": "done"}


def test_update_event_requires_fields() -> None:
    with pytest.raises(ValueError):
        update_event("tl-1", {}, actor="a", ts=T0)


def test_parse_ts_accepts_z_and_offsets() -> None:
    assert parse_ts("2024-01-01T00:00:00Z") == T0
    assert parse_ts("2024-01-01T02:00:00+02:00") == T0


@pytest.mark.parametrize(
    "line",
    [
        b"[]",
        b'{"id":"tl-1","ts":"2024-01-01T00:00:00Z"}',
        b'{"type":"create","ts":"2024-01-01T00:00:00Z"}',
        b'{"type":"create","id":"tl-1"}',
        b'{"type":"create","id":"tl-1","ts":"yesterday"}',
        b'{"type":"create","id":"tl-1","ts":"2024-01-01T00:00:00Z","data":[]}',
    ],
)
def test_decode_rejects_malformed_records(line: bytes) -> None:
    with pytest.raises(ValueError):
        Event.decode(line)


def test_decode_defaults_missing_data_and_actor() -> None:
    event = Event.decode(b'{"type":"reopen","id":"tl-1","ts":"2024-01-01T00:00:00Z"}')

    assert event.data == {}
    assert event.actor == ""


def test_event_log_append_then_read(tmp_path: Path) -> None:
    log = EventLog(tmp_path / "events.jsonl")
    events = [
        create_event("tl-1", title="Ünïcode", actor="alice", ts=T0),
        dep_add_event("tl-1", "tl-2", "blocks", actor="alice", ts=T0),
    ]

    log.append(events)
    log.append([])

    assert log.read() == events
    lines = (tmp_path / "events.jsonl").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert json.loads(lines[0])["data"]["title"] == "Ünïcode"


def test_event_log_drops_unterminated_invalid_tail(tmp_path: Path) -> None:
    path = tmp_path / "events.jsonl"
    log = EventLog(path)
    log.append([create_event("tl-1", title="A", actor="a", ts=T0)])
    with open(path, "ab") as f:
        f.write(b'{"type":"close","id":"tl-1"')

    assert [ev.id for ev in log.read()] == ["tl-1"]

    log.append([close_event("tl-1", actor="a", ts=T0)])

    assert [ev.type for ev in log.read()] == ["create", "close"]


def test_event_log_rejects_terminated_invalid_tail(tmp_path: Path) -> None:
    path = tmp_path / "events.jsonl"
    path.write_bytes(
        create_event("tl-1", title="A", actor="a", ts=T0).encode()
        + b'\n{"type":"close","id":"tl-1"}\n'
    )

    with pytest.raises(CorruptionError):
        EventLog(path).read()
