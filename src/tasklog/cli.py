from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from . import __version__
from .dag import BlockedIssue, Stats
from .errors import LockBusyError, TasklogError
from .hashing import compute_content_hash
from .model import (
    DEFAULT_PRIORITY,
    DEFAULT_ISSUE_TYPE,
    DEP_BLOCKS,
    DEPENDENCY_TYPES,
    ISSUE_STATUSES,
    ISSUE_TYPES,
    Issue,
    format_ts,
)
from .tracker import Tracker
from .ui import (
    add_output_mode_argument,
    configure_logging,
    make_console,
    render_panel,
    render_table,
    resolve_output_mode,
)

EXIT_ERROR = 1
# EX_TEMPFAIL from sysexits.h: the caller may retry.
EXIT_LOCK_BUSY = 75

_READ_COMMANDS = {"list", "show", "ready", "blocked", "stats"}
_ISSUE_HEADERS = ("ID", "STATUS", "PR", "TYPE", "ASSIGNEE", "TITLE")
_BLOCKED_HEADERS = ("ID", "STATUS", "BLOCKED BY", "TITLE")


def _emit_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _truncate(value: object, limit: int) -> str:
    text = str(value or "")
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def _issue_columns(issue: Issue) -> tuple[str, str, str, str, str, str]:
    return (
        issue.id,
        issue.status,
        f"P{issue.priority}",
        issue.issue_type or "-",
        issue.assignee or "-",
        _truncate(issue.title, 72),
    )


def _print_issue(issue: Issue) -> None:
    row = _issue_columns(issue)
    print(f"{row[0]}  {row[1]:<11}  {row[2]}  {row[3]:<8}  {row[4]}  {row[5]}")


def _print_issue_table(rows: list[Issue]) -> None:
    cols = [_issue_columns(issue) for issue in rows]
    widths = [
        max(len(_ISSUE_HEADERS[idx]), *(len(col[idx]) for col in cols))
        for idx in range(len(_ISSUE_HEADERS))
    ]
    print("  ".join(h.ljust(widths[idx]) for idx, h in enumerate(_ISSUE_HEADERS)))
    print("  ".join("-" * widths[idx] for idx in range(len(_ISSUE_HEADERS))))
    for col in cols:
        print("  ".join(col[idx].ljust(widths[idx]) for idx in range(len(col))).rstrip())


def _print_issues(rows: list[Issue], *, mode: str, title: str, empty: str) -> None:
    if not rows:
        if mode == "rich":
            render_panel(make_console("rich"), empty, title=title)
        else:
            print(empty)
        return
    if mode == "rich":
        render_table(
            make_console("rich"),
            headers=_ISSUE_HEADERS,
            rows=[_issue_columns(issue) for issue in rows],
            title=title,
            no_wrap_columns=(0, 1, 2),
        )
    else:
        _print_issue_table(rows)


def _detail_lines(issue: Issue) -> list[str]:
    lines = [
        f"status:   {issue.status}",
        f"priority: P{issue.priority}",
        f"type:     {issue.issue_type or '-'}",
        f"assignee: {issue.assignee or '-'}",
        f"created:  {format_ts(issue.created_at)}",
        f"updated:  {format_ts(issue.updated_at)}",
    ]
    if issue.closed_at is not None:
        lines.append(f"closed:   {format_ts(issue.closed_at)}")
    if issue.close_reason:
        lines.append(f"reason:   {issue.close_reason}")
    if issue.labels:
        lines.append(f"labels:   {', '.join(issue.labels)}")
    if issue.description:
        lines.extend(["", issue.description])
    lines.extend(["", "dependencies:"])
    if not issue.dependencies:
        lines.append("  (none)")
    for dep in issue.dependencies:
        lines.append(f"  {dep.type} -> {dep.depends_on_id}")
    return lines


def _print_issue_details(issue: Issue, *, mode: str) -> None:
    if mode == "rich":
        render_panel(
            make_console("rich"),
            "\n".join(_detail_lines(issue)),
            title=f"{issue.id}  {issue.title}",
        )
        return
    print(f"{issue.id}  {issue.title}")
    for line in _detail_lines(issue):
        print(line)


def _print_blocked(rows: list[BlockedIssue], *, mode: str) -> None:
    cols = [
        (row.id, row.status, ", ".join(row.blockers), _truncate(row.title, 60))
        for row in rows
    ]
    if not cols:
        if mode == "rich":
            render_panel(make_console("rich"), "(no blocked issues)", title="Blocked")
        else:
            print("(no blocked issues)")
        return
    if mode == "rich":
        render_table(
            make_console("rich"),
            headers=_BLOCKED_HEADERS,
            rows=cols,
            title="Blocked",
            no_wrap_columns=(0, 1),
        )
        return
    for col in cols:
        print(f"{col[0]}  {col[1]:<11}  [{col[2]}]  {col[3]}")


def _print_stats(stats: Stats, *, mode: str) -> None:
    rows = list(stats.to_dict().items())
    if mode == "rich":
        render_table(
            make_console("rich"),
            headers=("STATUS", "COUNT"),
            rows=rows,
            title="Stats",
        )
        return
    for name, count in rows:
        print(f"{name:<12} {count}")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="tl",
        description="Event-sourced local issue tracker.",
    )
    p.add_argument("--version", action="version", version=f"tl {__version__}")
    p.add_argument("--dir", help="Store directory (or a directory holding .tl). Env: TL_DIR")
    p.add_argument("--actor", help="Actor recorded on new events. Env: TL_ACTOR")
    p.add_argument("-v", "--verbose", action="store_true", help="Log to stderr")
    sub = p.add_subparsers(dest="command", required=True, metavar="command")

    sub.add_parser("init", help="Create a .tl store in the current directory")

    create = sub.add_parser("create", help="Create a new issue")
    create.add_argument("title", help="Issue title")
    create.add_argument("-d", "--description", default="", help="Issue description")
    create.add_argument(
        "-p",
        "--priority",
        type=int,
        default=DEFAULT_PRIORITY,
        help=f"Priority 0-4 (default: {DEFAULT_PRIORITY})",
    )
    create.add_argument(
        "-t",
        "--type",
        dest="issue_type",
        default=DEFAULT_ISSUE_TYPE,
        choices=ISSUE_TYPES,
        help=f"Issue type (default: {DEFAULT_ISSUE_TYPE})",
    )
    create.add_argument(
        "-l", "--label", action="append", default=[], help="Label (repeatable)"
    )
    create.add_argument("--json", action="store_true", help="Output JSON")

    ls = sub.add_parser("list", help="List issues")
    ls.add_argument("--status", choices=ISSUE_STATUSES, help="Filter by status")
    ls.add_argument("--type", dest="issue_type", choices=ISSUE_TYPES, help="Filter by type")
    ls.add_argument("--assignee", help="Filter by assignee")
    ls.add_argument("--priority", type=int, help="Filter by priority")
    ls.add_argument("--limit", type=int, default=0, help="Max rows (default: all)")
    ls.add_argument("--json", action="store_true", help="Output JSON")
    add_output_mode_argument(ls)

    show = sub.add_parser("show", help="Show one issue with details")
    show.add_argument("id", help="Issue id")
    show.add_argument("--json", action="store_true", help="Output JSON")
    add_output_mode_argument(show)

    update = sub.add_parser("update", help="Update issue fields")
    update.add_argument("id", help="Issue id")
    update.add_argument("--status", choices=ISSUE_STATUSES, help="New status")
    update.add_argument("--title", help="New title")
    update.add_argument("-d", "--description", help="New description")
    update.add_argument("-p", "--priority", type=int, help="New priority")
    update.add_argument("--assignee", help="New assignee")
    update.add_argument("--type", dest="issue_type", choices=ISSUE_TYPES, help="New type")
    update.add_argument("--json", action="store_true", help="Output JSON")

    close = sub.add_parser("close", help="Close issue(s)")
    close.add_argument("id", nargs="+", help="Issue id(s)")
    close.add_argument("-r", "--reason", default="", help="Close reason")
    close.add_argument("--json", action="store_true", help="Output JSON")

    reopen = sub.add_parser("reopen", help="Reopen issue(s)")
    reopen.add_argument("id", nargs="+", help="Issue id(s)")
    reopen.add_argument("--json", action="store_true", help="Output JSON")

    claim = sub.add_parser("claim", help="Claim an open issue and start it")
    claim.add_argument("id", help="Issue id")
    claim.add_argument("--agent", help="Claimant (default: actor)")
    claim.add_argument("--json", action="store_true", help="Output JSON")

    ready = sub.add_parser("ready", help="List ready-to-work issues")
    ready.add_argument("--limit", type=int, default=0, help="Max rows (default: all)")
    ready.add_argument("--json", action="store_true", help="Output JSON")
    add_output_mode_argument(ready)

    blocked = sub.add_parser("blocked", help="List blocked issues and their blockers")
    blocked.add_argument("--json", action="store_true", help="Output JSON")
    add_output_mode_argument(blocked)

    stats = sub.add_parser("stats", help="Show issue counts")
    stats.add_argument("--json", action="store_true", help="Output JSON")
    add_output_mode_argument(stats)

    dep = sub.add_parser("dep", help="Dependency operations")
    dep_sub = dep.add_subparsers(dest="dep_cmd", required=True, metavar="dep_cmd")
    dep_add = dep_sub.add_parser("add", help="Make ISSUE depend on DEPENDS_ON")
    dep_add.add_argument("id", help="Dependent issue id")
    dep_add.add_argument("depends_on", help="Issue it depends on")
    dep_add.add_argument(
        "-t",
        "--type",
        dest="dep_type",
        default=DEP_BLOCKS,
        choices=DEPENDENCY_TYPES,
        help=f"Dependency type (default: {DEP_BLOCKS})",
    )
    dep_add.add_argument("--json", action="store_true", help="Output JSON")
    dep_rm = dep_sub.add_parser("remove", help="Remove a dependency")
    dep_rm.add_argument("id", help="Dependent issue id")
    dep_rm.add_argument("depends_on", help="Issue it depends on")
    dep_rm.add_argument("--json", action="store_true", help="Output JSON")

    return p


def _open_tracker(args: argparse.Namespace) -> Tracker:
    start = Path(args.dir).expanduser() if args.dir else None
    return Tracker.from_workdir(start, actor=args.actor)


def _emit_issue(issue: Issue, *, as_json: bool) -> None:
    if as_json:
        _emit_json(issue.to_dict())
    else:
        _print_issue(issue)


def _run(args: argparse.Namespace, output_mode: str) -> None:
    if args.command == "init":
        base = Path(args.dir).expanduser() if args.dir else Path.cwd()
        tracker = Tracker.init(base, actor=args.actor)
        print(f"initialized {tracker.store.root}")
        return

    tracker = _open_tracker(args)

    if args.command == "create":
        issue = tracker.create(
            args.title,
            description=args.description,
            priority=args.priority,
            issue_type=args.issue_type,
            labels=list(args.label),
        )
        if args.json:
            _emit_json(issue.to_dict())
        else:
            print(issue.id)
        return

    if args.command == "list":
        rows = tracker.list(
            status=args.status,
            issue_type=args.issue_type,
            assignee=args.assignee,
            priority=args.priority,
            limit=args.limit,
        )
        if args.json:
            _emit_json([issue.to_dict() for issue in rows])
        else:
            filtered = any(
                value is not None and value != ""
                for value in (args.status, args.issue_type, args.assignee, args.priority)
            )
            _print_issues(
                rows,
                mode=output_mode,
                title="Issues",
                empty="(no matching issues)" if filtered else "(no issues)",
            )
        return

    if args.command == "show":
        issue = tracker.get(args.id)
        if args.json:
            payload = issue.to_dict()
            payload["content_hash"] = compute_content_hash(issue)
            _emit_json(payload)
        else:
            _print_issue_details(issue, mode=output_mode)
        return

    if args.command == "update":
        issue = tracker.update(
            args.id,
            status=args.status,
            title=args.title,
            description=args.description,
            priority=args.priority,
            assignee=args.assignee,
            issue_type=args.issue_type,
        )
        _emit_issue(issue, as_json=args.json)
        return

    if args.command in {"close", "reopen"}:
        rows = []
        for issue_id in args.id:
            if args.command == "close":
                rows.append(tracker.close(issue_id, args.reason))
            else:
                rows.append(tracker.reopen(issue_id))
        if args.json:
            _emit_json([issue.to_dict() for issue in rows])
        else:
            for issue in rows:
                _print_issue(issue)
        return

    if args.command == "claim":
        issue = tracker.claim(args.id, args.agent)
        _emit_issue(issue, as_json=args.json)
        return

    if args.command == "ready":
        rows = tracker.ready()
        if args.limit > 0:
            rows = rows[: args.limit]
        if args.json:
            _emit_json([issue.to_dict() for issue in rows])
        else:
            _print_issues(rows, mode=output_mode, title="Ready", empty="(no ready issues)")
        return

    if args.command == "blocked":
        blocked = tracker.blocked()
        if args.json:
            _emit_json([row.to_dict() for row in blocked])
        else:
            _print_blocked(blocked, mode=output_mode)
        return

    if args.command == "stats":
        stats = tracker.stats()
        if args.json:
            _emit_json(stats.to_dict())
        else:
            _print_stats(stats, mode=output_mode)
        return

    if args.command == "dep" and args.dep_cmd == "add":
        issue = tracker.add_dep(args.id, args.depends_on, args.dep_type)
        if args.json:
            _emit_json(issue.to_dict())
        else:
            print(f"{args.id} {args.dep_type} {args.depends_on}")
        return

    if args.command == "dep" and args.dep_cmd == "remove":
        issue = tracker.remove_dep(args.id, args.depends_on)
        if args.json:
            _emit_json(issue.to_dict())
        else:
            print(f"removed {args.id} -> {args.depends_on}")
        return


def main(argv: list[str] | None = None) -> None:
    raw_argv = list(argv) if argv is not None else sys.argv[1:]
    args = _build_parser().parse_args(raw_argv)
    configure_logging(args.verbose)

    output_mode = "plain"
    if args.command in _READ_COMMANDS:
        try:
            output_mode = resolve_output_mode(getattr(args, "output", None))
        except ValueError as exc:
            print(f"error: {exc}", file=sys.stderr)
            raise SystemExit(2) from exc

    try:
        _run(args, output_mode)
    except LockBusyError as exc:
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(EXIT_LOCK_BUSY) from exc
    except (TasklogError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(EXIT_ERROR) from exc


if __name__ == "__main__":
    main()
