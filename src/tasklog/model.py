"""Issue, dependency and graph types for the replayed task graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .errors import InvalidTransitionError

STATUS_OPEN = "open"
STATUS_IN_PROGRESS = "in_progress"
STATUS_BLOCKED = "blocked"
STATUS_DEFERRED = "deferred"
STATUS_CLOSED = "closed"
STATUS_PINNED = "pinned"
STATUS_HOOKED = "hooked"

ISSUE_STATUSES = (
    STATUS_OPEN,
    STATUS_IN_PROGRESS,
    STATUS_BLOCKED,
    STATUS_DEFERRED,
    STATUS_CLOSED,
    STATUS_PINNED,
    STATUS_HOOKED,
)

DEP_BLOCKS = "blocks"
DEP_PARENT_CHILD = "parent-child"
DEP_CONDITIONAL_BLOCKS = "conditional-blocks"
DEP_WAITS_FOR = "waits-for"
DEP_RELATED = "related"
DEP_DISCOVERED_FROM = "discovered-from"

DEPENDENCY_TYPES = (
    DEP_BLOCKS,
    DEP_PARENT_CHILD,
    DEP_CONDITIONAL_BLOCKS,
    DEP_WAITS_FOR,
    DEP_RELATED,
    DEP_DISCOVERED_FROM,
)
READY_AFFECTING_DEP_TYPES = frozenset(
    {DEP_BLOCKS, DEP_PARENT_CHILD, DEP_CONDITIONAL_BLOCKS, DEP_WAITS_FOR}
)

ISSUE_TYPES = ("bug", "feature", "task", "epic", "chore", "decision")

DEFAULT_PRIORITY = 2
DEFAULT_ISSUE_TYPE = "task"

# Statuses of a dependency target that keep the dependent from being ready.
_READY_BLOCKING_STATUSES = frozenset({STATUS_OPEN, STATUS_IN_PROGRESS, STATUS_BLOCKED})

# pinned and hooked are manual-only states with no outgoing transitions.
_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_OPEN: frozenset(
        {STATUS_IN_PROGRESS, STATUS_BLOCKED, STATUS_DEFERRED, STATUS_CLOSED}
    ),
    STATUS_IN_PROGRESS: frozenset({STATUS_OPEN, STATUS_BLOCKED, STATUS_CLOSED}),
    STATUS_BLOCKED: frozenset({STATUS_OPEN, STATUS_IN_PROGRESS, STATUS_CLOSED}),
    STATUS_DEFERRED: frozenset({STATUS_OPEN}),
    STATUS_CLOSED: frozenset({STATUS_OPEN}),
    STATUS_PINNED: frozenset(),
    STATUS_HOOKED: frozenset(),
}


def is_known_status(status: str) -> bool:
    return status in ISSUE_STATUSES


def affects_ready_work(dep_type: str) -> bool:
    return dep_type in READY_AFFECTING_DEP_TYPES


def status_blocks_ready(status: str) -> bool:
    return status in _READY_BLOCKING_STATUSES


def validate_transition(current: str, target: str) -> None:
    """Raise InvalidTransitionError unless ``current -> target`` is allowed."""
    if current == target:
        return
    allowed = _TRANSITIONS.get(current)
    if allowed is None:
        raise InvalidTransitionError(f"unknown status: {current}")
    if target not in allowed:
        raise InvalidTransitionError(f"invalid transition: {current} → {target}")


def format_ts(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


@dataclass
class Dependency:
    issue_id: str
    depends_on_id: str
    type: str
    created_at: datetime
    created_by: str = ""

    def to_dict(self) -> dict[str, Any]:
        row: dict[str, Any] = {
            "issue_id": self.issue_id,
            "depends_on_id": self.depends_on_id,
            "type": self.type,
            "created_at": format_ts(self.created_at),
        }
        if self.created_by:
            row["created_by"] = self.created_by
        return row


@dataclass
class Issue:
    id: str
    title: str
    created_at: datetime
    updated_at: datetime
    description: str = ""
    design: str = ""
    acceptance_criteria: str = ""
    notes: str = ""
    spec_id: str = ""
    status: str = STATUS_OPEN
    priority: int = DEFAULT_PRIORITY
    issue_type: str = ""
    assignee: str = ""
    owner: str = ""
    created_by: str = ""
    closed_at: datetime | None = None
    close_reason: str = ""
    defer_until: datetime | None = None
    labels: list[str] = field(default_factory=list)
    dependencies: list[Dependency] = field(default_factory=list)
    pinned: bool = False
    ephemeral: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready view; empty optional fields are omitted."""
        row: dict[str, Any] = {"id": self.id, "title": self.title}
        for key in (
            "description",
            "design",
            "acceptance_criteria",
            "notes",
            "spec_id",
        ):
            value = getattr(self, key)
            if value:
                row[key] = value
        row["status"] = self.status
        row["priority"] = self.priority
        for key in ("issue_type", "assignee", "owner", "created_by"):
            value = getattr(self, key)
            if value:
                row[key] = value
        row["created_at"] = format_ts(self.created_at)
        row["updated_at"] = format_ts(self.updated_at)
        if self.closed_at is not None:
            row["closed_at"] = format_ts(self.closed_at)
        if self.close_reason:
            row["close_reason"] = self.close_reason
        if self.defer_until is not None:
            row["defer_until"] = format_ts(self.defer_until)
        if self.labels:
            row["labels"] = list(self.labels)
        if self.dependencies:
            row["dependencies"] = [dep.to_dict() for dep in self.dependencies]
        if self.pinned:
            row["pinned"] = True
        if self.ephemeral:
            row["ephemeral"] = True
        if self.metadata:
            row["metadata"] = dict(self.metadata)
        return row


@dataclass
class Graph:
    """Replayed state: issues plus forward and reverse adjacency.

    ``deps`` maps an issue id to the ids it depends on, ``rdeps`` maps a
    target id to its dependents. Both mirror the per-issue ``dependencies``
    lists; only the edge methods below may change any of the three.
    """

    issues: dict[str, Issue] = field(default_factory=dict)
    deps: dict[str, list[str]] = field(default_factory=dict)
    rdeps: dict[str, list[str]] = field(default_factory=dict)

    def get(self, issue_id: str) -> Issue | None:
        return self.issues.get(issue_id)

    def has_edge(self, issue_id: str, depends_on_id: str) -> bool:
        return depends_on_id in self.deps.get(issue_id, ())

    def add_edge(self, dep: Dependency) -> bool:
        issue = self.issues.get(dep.issue_id)
        if issue is None or self.has_edge(dep.issue_id, dep.depends_on_id):
            return False
        self.deps.setdefault(dep.issue_id, []).append(dep.depends_on_id)
        self.rdeps.setdefault(dep.depends_on_id, []).append(dep.issue_id)
        issue.dependencies.append(dep)
        return True

    def remove_edge(self, issue_id: str, depends_on_id: str) -> bool:
        removed = self.has_edge(issue_id, depends_on_id)
        _discard(self.deps, issue_id, depends_on_id)
        _discard(self.rdeps, depends_on_id, issue_id)
        issue = self.issues.get(issue_id)
        if issue is not None:
            issue.dependencies = [
                dep for dep in issue.dependencies if dep.depends_on_id != depends_on_id
            ]
        return removed

    def detach_dependents(self, target_id: str) -> list[str]:
        """Drop every edge that points at ``target_id``. Returns the dependents."""
        dependents = list(self.rdeps.get(target_id, ()))
        for dependent_id in dependents:
            self.remove_edge(dependent_id, target_id)
        self.rdeps.pop(target_id, None)
        return dependents


def _discard(index: dict[str, list[str]], key: str, value: str) -> None:
    values = index.get(key)
    if values is None:
        return
    kept = [item for item in values if item != value]
    if kept:
        index[key] = kept
    else:
        del index[key]
