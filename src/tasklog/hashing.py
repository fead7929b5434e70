"""Content hash used to spot duplicate issues during merge-import."""

from __future__ import annotations

import hashlib
import json

from .model import Issue

_SEP = b"\x00"


class _FieldWriter:
    """Writes each field followed by a NUL so adjacent fields cannot blur."""

    def __init__(self) -> None:
        self.h = hashlib.sha256()

    def raw(self, data: bytes) -> None:
        self.h.update(data)
        self.h.update(_SEP)

    def text(self, value: str) -> None:
        self.raw(value.encode("utf-8"))

    def number(self, value: int) -> None:
        self.raw(b"%d" % value)

    def flag(self, value: bool, label: str) -> None:
        self.raw(label.encode("utf-8") if value else b"")


def compute_content_hash(issue: Issue) -> str:
    """Hex SHA-256 over the substantive fields of ``issue``.

    Id, timestamps, labels and dependencies are excluded, so the same
    content hashes equal wherever the issue came from.
    """
    w = _FieldWriter()
    w.text(issue.title)
    w.text(issue.description)
    w.text(issue.design)
    w.text(issue.acceptance_criteria)
    w.text(issue.notes)
    w.text(issue.spec_id)
    w.text(issue.status)
    w.number(issue.priority)
    w.text(issue.issue_type)
    w.text(issue.assignee)
    w.text(issue.owner)
    w.text(issue.created_by)
    w.flag(issue.pinned, "pinned")
    if issue.metadata:
        w.raw(
            json.dumps(
                issue.metadata,
                sort_keys=True,
                separators=(",", ":"),
                ensure_ascii=False,
            ).encode("utf-8")
        )
    else:
        w.raw(b"")
    return w.h.hexdigest()
