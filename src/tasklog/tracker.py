"""Issue operations built on ``Store.mutate``.

Each write builds its events against the freshly replayed graph inside the
store lock and validates preconditions there, so a rejected operation never
appends anything. The returned issue is the graph state after the new
events have been applied with the same reducer that replays the log.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from .actor import resolve_actor
from .dag import (
    BlockedIssue,
    Stats,
    collect_blocked,
    collect_ready,
    compute_blocked_set,
    compute_stats,
    would_cycle,
)
from .errors import CycleError, InvalidTransitionError, NotFoundError
from .events import (
    Event,
    claim_event,
    close_event,
    create_event,
    dep_add_event,
    dep_remove_event,
    now_utc,
    reopen_event,
    update_event,
)
from .model import (
    DEFAULT_ISSUE_TYPE,
    DEFAULT_PRIORITY,
    DEP_BLOCKS,
    STATUS_CLOSED,
    STATUS_OPEN,
    Graph,
    Issue,
    validate_transition,
)
from .replay import apply_event
from .store import Store, init_store

ID_PREFIX = "tl-"

UPDATABLE_FIELDS = (
    "status",
    "title",
    "description",
    "priority",
    "assignee",
    "issue_type",
)


def new_issue_id() -> str:
    return ID_PREFIX + secrets.token_hex(2)


def _require(graph: Graph, issue_id: str) -> Issue:
    issue = graph.issues.get(issue_id)
    if issue is None:
        raise NotFoundError(f"issue {issue_id!r}: not found")
    return issue


def _sort_key(issue: Issue) -> tuple[int, datetime, str]:
    return (issue.priority, issue.created_at, issue.id)


@dataclass
class Tracker:
    store: Store
    actor: str = field(default_factory=resolve_actor)
    clock: Callable[[], datetime] = now_utc

    @classmethod
    def from_workdir(
        cls, cwd: Path | None = None, *, actor: str | None = None
    ) -> "Tracker":
        store = Store.open(cwd)
        if actor:
            return cls(store, actor=actor)
        return cls(store)

    @classmethod
    def init(cls, path: Path, *, actor: str | None = None) -> "Tracker":
        store = init_store(path)
        if actor:
            return cls(store, actor=actor)
        return cls(store)

    # -- write helpers ------------------------------------------------------

    def _commit(
        self, build: Callable[[Graph, datetime], list[Event]]
    ) -> tuple[Graph, list[Event]]:
        seen: dict[str, Graph] = {}

        def fn(graph: Graph) -> list[Event]:
            seen["graph"] = graph
            return build(graph, self.clock())

        events = self.store.mutate(fn)
        graph = seen["graph"]
        for event in events:
            apply_event(graph, event)
        return graph, events

    # -- reads --------------------------------------------------------------

    def load(self) -> Graph:
        return self.store.load()

    def get(self, issue_id: str) -> Issue:
        return _require(self.load(), issue_id)

    def list(
        self,
        *,
        status: str | None = None,
        issue_type: str | None = None,
        assignee: str | None = None,
        priority: int | None = None,
        limit: int = 0,
    ) -> list[Issue]:
        rows = [
            issue
            for issue in self.load().issues.values()
            if (not status or issue.status == status)
            and (not issue_type or issue.issue_type == issue_type)
            and (not assignee or issue.assignee == assignee)
            and (priority is None or priority < 0 or issue.priority == priority)
        ]
        rows.sort(key=_sort_key)
        if limit > 0:
            rows = rows[:limit]
        return rows

    def ready(self, *, now: datetime | None = None) -> list[Issue]:
        return collect_ready(self.load(), now=now or self.clock())

    def blocked(self) -> list[BlockedIssue]:
        graph = self.load()
        return collect_blocked(graph, compute_blocked_set(graph))

    def stats(self) -> Stats:
        return compute_stats(self.load())

    # -- writes -------------------------------------------------------------

    def create(
        self,
        title: str,
        *,
        description: str = "",
        priority: int = DEFAULT_PRIORITY,
        issue_type: str = DEFAULT_ISSUE_TYPE,
        labels: list[str] | None = None,
        metadata: dict[str, Any] | None = None,
        **extra: Any,
    ) -> Issue:
        issue_title = title.strip()
        if not issue_title:
            raise ValueError("title is required")

        created: dict[str, str] = {}

        def build(graph: Graph, now: datetime) -> list[Event]:
            issue_id = new_issue_id()
            while issue_id in graph.issues:
                issue_id = new_issue_id()
            created["id"] = issue_id
            return [
                create_event(
                    issue_id,
                    title=issue_title,
                    actor=self.actor,
                    ts=now,
                    description=description,
                    priority=priority,
                    issue_type=issue_type,
                    labels=labels,
                    metadata=metadata,
                    **extra,
                )
            ]

        graph, _ = self._commit(build)
        return graph.issues[created["id"]]

    def update(self, issue_id: str, **fields: Any) -> Issue:
        changes = {key: value for key, value in fields.items() if value is not None}
        if not changes:
            raise ValueError("no fields to update")
        unknown = sorted(set(changes) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValueError(f"cannot update field(s): {', '.join(unknown)}")

        def build(graph: Graph, now: datetime) -> list[Event]:
            issue = _require(graph, issue_id)
            if "status" in changes:
                validate_transition(issue.status, changes["status"])
            return [update_event(issue_id, changes, actor=self.actor, ts=now)]

        graph, _ = self._commit(build)
        return graph.issues[issue_id]

    def close(self, issue_id: str, reason: str = "") -> Issue:
        def build(graph: Graph, now: datetime) -> list[Event]:
            issue = _require(graph, issue_id)
            validate_transition(issue.status, STATUS_CLOSED)
            return [close_event(issue_id, reason, actor=self.actor, ts=now)]

        graph, _ = self._commit(build)
        return graph.issues[issue_id]

    def reopen(self, issue_id: str) -> Issue:
        def build(graph: Graph, now: datetime) -> list[Event]:
            issue = _require(graph, issue_id)
            validate_transition(issue.status, STATUS_OPEN)
            return [reopen_event(issue_id, actor=self.actor, ts=now)]

        graph, _ = self._commit(build)
        return graph.issues[issue_id]

    def claim(self, issue_id: str, agent: str | None = None) -> Issue:
        claimant = agent or self.actor

        def build(graph: Graph, now: datetime) -> list[Event]:
            issue = _require(graph, issue_id)
            if issue.status != STATUS_OPEN:
                raise InvalidTransitionError(
                    f"issue {issue_id} is not open (status: {issue.status})"
                )
            return [claim_event(issue_id, claimant, actor=self.actor, ts=now)]

        graph, _ = self._commit(build)
        return graph.issues[issue_id]

    def add_dep(
        self, issue_id: str, depends_on_id: str, dep_type: str = DEP_BLOCKS
    ) -> Issue:
        def build(graph: Graph, now: datetime) -> list[Event]:
            if issue_id == depends_on_id:
                raise CycleError("cannot depend on self")
            _require(graph, issue_id)
            _require(graph, depends_on_id)
            if graph.has_edge(issue_id, depends_on_id):
                return []
            if would_cycle(graph, issue_id, depends_on_id):
                raise CycleError(
                    f"dependency would create a cycle: {issue_id} -> {depends_on_id}"
                )
            return [
                dep_add_event(
                    issue_id, depends_on_id, dep_type, actor=self.actor, ts=now
                )
            ]

        graph, _ = self._commit(build)
        return graph.issues[issue_id]

    def remove_dep(self, issue_id: str, depends_on_id: str) -> Issue:
        def build(graph: Graph, now: datetime) -> list[Event]:
            _require(graph, issue_id)
            if not graph.has_edge(issue_id, depends_on_id):
                raise NotFoundError(
                    f"dependency {issue_id!r} -> {depends_on_id!r}: not found"
                )
            return [
                dep_remove_event(issue_id, depends_on_id, actor=self.actor, ts=now)
            ]

        graph, _ = self._commit(build)
        return graph.issues[issue_id]
