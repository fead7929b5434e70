"""Cycle checks, blocked-set propagation and ready-queue selection."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .events import as_utc, now_utc
from .model import (
    DEP_PARENT_CHILD,
    STATUS_CLOSED,
    STATUS_DEFERRED,
    STATUS_IN_PROGRESS,
    STATUS_OPEN,
    Graph,
    Issue,
    affects_ready_work,
    status_blocks_ready,
)


def would_cycle(graph: Graph, issue_id: str, depends_on_id: str) -> bool:
    """True if adding ``issue_id -> depends_on_id`` closes a cycle.

    Self-edges always count as a cycle; otherwise this is a depth-first
    search over forward edges from ``depends_on_id`` looking for ``issue_id``.
    """
    if issue_id == depends_on_id:
        return True

    visited: set[str] = set()
    stack = [depends_on_id]
    while stack:
        current = stack.pop()
        if current == issue_id:
            return True
        if current in visited:
            continue
        visited.add(current)
        for nxt in graph.deps.get(current, ()):
            if nxt not in visited:
                stack.append(nxt)
    return False


def _blocking_targets(
    graph: Graph, issue: Issue, blocked: set[str]
) -> list[str]:
    targets: list[str] = []
    for dep in issue.dependencies:
        if not affects_ready_work(dep.type):
            continue
        target = graph.issues.get(dep.depends_on_id)
        if target is None:
            continue
        if status_blocks_ready(target.status) or (
            dep.type == DEP_PARENT_CHILD and dep.depends_on_id in blocked
        ):
            targets.append(dep.depends_on_id)
    return targets


def compute_blocked_set(graph: Graph) -> set[str]:
    """Ids of issues that cannot be worked on yet.

    An issue is blocked by a ready-affecting edge to an open, in-progress or
    blocked target, or by a parent-child edge to a target that is itself
    blocked. The second rule is transitive, so passes repeat until one adds
    nothing; the set only grows and is bounded by the issue count.
    """
    blocked: set[str] = set()
    changed = True
    while changed:
        changed = False
        for issue_id, issue in graph.issues.items():
            if issue_id in blocked:
                continue
            if _blocking_targets(graph, issue, blocked):
                blocked.add(issue_id)
                changed = True
    return blocked


def _queue_key(issue: Issue) -> tuple[int, datetime, str]:
    return (issue.priority, issue.created_at, issue.id)


def collect_ready(
    graph: Graph,
    blocked: set[str] | None = None,
    now: datetime | None = None,
) -> list[Issue]:
    """Open, unblocked, unpinned, not-deferred issues in work order."""
    if blocked is None:
        blocked = compute_blocked_set(graph)
    now = as_utc(now) if now is not None else now_utc()

    ready = [
        issue
        for issue in graph.issues.values()
        if issue.status == STATUS_OPEN
        and issue.id not in blocked
        and not issue.pinned
        and (issue.defer_until is None or issue.defer_until < now)
    ]
    ready.sort(key=_queue_key)
    return ready


def blockers_for(graph: Graph, issue: Issue, blocked: set[str]) -> list[str]:
    """Sorted ids of the direct dependencies that keep ``issue`` blocked."""
    return sorted(set(_blocking_targets(graph, issue, blocked)))


@dataclass(frozen=True)
class BlockedIssue:
    id: str
    title: str
    status: str
    blockers: list[str]

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "blockers": list(self.blockers),
        }


def collect_blocked(
    graph: Graph, blocked: set[str] | None = None
) -> list[BlockedIssue]:
    if blocked is None:
        blocked = compute_blocked_set(graph)
    issues = [
        issue
        for issue in graph.issues.values()
        if issue.id in blocked and issue.status != STATUS_CLOSED
    ]
    issues.sort(key=_queue_key)
    return [
        BlockedIssue(
            id=issue.id,
            title=issue.title,
            status=issue.status,
            blockers=blockers_for(graph, issue, blocked),
        )
        for issue in issues
    ]


@dataclass(frozen=True)
class Stats:
    open: int = 0
    in_progress: int = 0
    blocked: int = 0
    closed: int = 0
    deferred: int = 0
    total: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "open": self.open,
            "in_progress": self.in_progress,
            "blocked": self.blocked,
            "closed": self.closed,
            "deferred": self.deferred,
            "total": self.total,
        }


def compute_stats(graph: Graph) -> Stats:
    counts = {
        STATUS_OPEN: 0,
        STATUS_IN_PROGRESS: 0,
        STATUS_CLOSED: 0,
        STATUS_DEFERRED: 0,
    }
    for issue in graph.issues.values():
        if issue.status in counts:
            counts[issue.status] += 1
    return Stats(
        open=counts[STATUS_OPEN],
        in_progress=counts[STATUS_IN_PROGRESS],
        blocked=len(compute_blocked_set(graph)),
        closed=counts[STATUS_CLOSED],
        deferred=counts[STATUS_DEFERRED],
        total=len(graph.issues),
    )
