"""Higher-level workflows built from store and deletion-log operations."""

import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import timedelta, timezone
from typing import Any

import structlog

from synap.deletion_log import DeletionLog
from synap.errors import EntryNotFound, InvalidArgument
from synap.models import DeletionRecord, Entry
from synap.query import Query
from synap.store import EntryStore, Stats

logger = structlog.get_logger()

LOG_TITLE_MAX_LENGTH = 40
STALE_AFTER = timedelta(days=7)
OPEN_STATUSES = "raw,active"
REVIEW_SCOPES = ("daily", "weekly")


@dataclass
class ProjectProgress:
    """An active project and how many of its children are done."""

    project: Entry
    total: int
    done: int

    @property
    def percent(self) -> int:
        if not self.total:
            return 0
        return math.floor(self.done / self.total * 100 + 0.5)

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.project.to_dict(),
            "progress": {"total": self.total, "done": self.done, "percent": self.percent},
        }


@dataclass
class FocusReport:
    p1_todos: list[Entry] = field(default_factory=list)
    overdue: list[Entry] = field(default_factory=list)
    active_projects: list[ProjectProgress] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "p1Todos": [e.to_dict() for e in self.p1_todos],
            "overdueItems": [e.to_dict() for e in self.overdue],
            "activeProjects": [p.to_dict() for p in self.active_projects],
        }


@dataclass
class DailyReview:
    stats: Stats
    raw_count: int
    p1_items: list[Entry]
    stale_items: list[Entry]

    def to_dict(self) -> dict[str, Any]:
        return {
            "scope": "daily",
            "stats": self.stats.to_dict(),
            "rawCount": self.raw_count,
            "p1Items": [e.to_dict() for e in self.p1_items],
            "staleItems": [e.to_dict() for e in self.stale_items],
        }


@dataclass
class WeeklyReview:
    completed_this_week: list[Entry]
    project_progress: list[ProjectProgress]

    def to_dict(self) -> dict[str, Any]:
        return {
            "scope": "weekly",
            "completedThisWeek": [e.to_dict() for e in self.completed_this_week],
            "projectProgress": [p.to_dict() for p in self.project_progress],
        }


@dataclass
class LogResult:
    entry: Entry
    parent: Entry


def start(store: EntryStore, ids: Iterable[str]) -> list[Entry]:
    """Mark entries as work in progress; entries already in ``wip`` are skipped."""
    started = []
    for entry in store.get_many(ids):
        if entry.status == "wip":
            continue
        started.append(store.update(entry.id, status="wip"))
    logger.info("Entries started", count=len(started))
    return started


def stop(store: EntryStore, ids: Iterable[str] | None = None, all_wip: bool = False) -> list[Entry]:
    """Move ``wip`` entries back to ``active``, either the given ones or all of them."""
    ids = list(ids or [])
    if ids:
        entries = [e for e in store.get_many(ids) if e.status == "wip"]
    elif all_wip:
        entries = store.list_entries(Query(status="wip")).entries
    else:
        raise InvalidArgument("Provide entry ids or stop all WIP entries")

    stopped = [store.update(e.id, status="active", started_at=None) for e in entries]
    logger.info("Entries stopped", count=len(stopped))
    return stopped


def mark_done(store: EntryStore, ids: Iterable[str]) -> list[Entry]:
    done = [store.update(e.id, status="done") for e in store.get_many(ids)]
    logger.info("Entries marked done", count=len(done))
    return done


def link(
    store: EntryStore,
    id1: str,
    id2: str,
    as_parent: bool = False,
    as_child: bool = False,
    unlink: bool = False,
) -> Entry:
    """Relate two entries.

    By default ``id2`` is added to the related ids of ``id1``. With
    ``as_parent`` the second entry becomes the parent of the first, with
    ``as_child`` the reverse, and ``unlink`` removes related ids starting
    with ``id2``.

    Returns:
        The entry that was modified

    Raises:
        EntryNotFound: If either id does not resolve
        InvalidParent: If the parent assignment would create a cycle
    """
    first = store.get(id1)
    if first is None:
        raise EntryNotFound(id1)
    second = store.get(id2)
    if second is None:
        raise EntryNotFound(id2)

    if as_parent:
        return store.update(first.id, parent=second.id)
    if as_child:
        return store.update(second.id, parent=first.id)
    if unlink:
        return store.update(first.id, related=[r for r in first.related if not r.startswith(id2)])
    return store.update(first.id, related=[*first.related, second.id])


def log_entry(store: EntryStore, parent_id: str, message: str, inherit_tags: bool = False) -> LogResult:
    """Add a timestamped ``note`` under a parent entry.

    The content is ``[YYYY-MM-DD HH:MM] message`` (UTC) and the title is the
    message cut to 40 characters.
    """
    if not message or not message.strip():
        raise InvalidArgument("Log message is required")
    parent = store.get(parent_id)
    if parent is None:
        raise EntryNotFound(parent_id)

    stamp = store.clock().astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M")
    if len(message) <= LOG_TITLE_MAX_LENGTH:
        title = message
    else:
        title = message[: LOG_TITLE_MAX_LENGTH - 3] + "..."

    entry = store.add(
        content=f"[{stamp}] {message}",
        title=title,
        type="note",
        tags=list(parent.tags) if inherit_tags else [],
        parent=parent.id,
    )
    return LogResult(entry=entry, parent=parent)


def project_progress(store: EntryStore) -> list[ProjectProgress]:
    """Active projects with counts of their children and of those that are done."""
    projects = store.list_entries(Query(type="project", status="active", limit=50)).entries
    progress = []
    for project in projects:
        children = store.get_children(project.id)
        done = sum(1 for child in children if child.status == "done")
        progress.append(ProjectProgress(project=project, total=len(children), done=done))
    return progress


def focus(store: EntryStore) -> FocusReport:
    """What to work on now: open P1 todos, other overdue entries and active projects."""
    p1_todos = store.list_entries(Query(type="todo", priority=1, status=OPEN_STATUSES, limit=100)).entries
    listed = {e.id for e in p1_todos}
    overdue = store.list_entries(Query(overdue=True, status=OPEN_STATUSES, limit=100)).entries
    return FocusReport(
        p1_todos=p1_todos,
        overdue=[e for e in overdue if e.id not in listed],
        active_projects=project_progress(store),
    )


def review(store: EntryStore, scope: str = "daily") -> DailyReview | WeeklyReview:
    """Build a daily or weekly review.

    Raises:
        InvalidArgument: For any scope other than ``daily`` or ``weekly``
    """
    week_ago = store.clock() - STALE_AFTER

    if scope == "daily":
        raw = store.list_entries(Query(status="raw"))
        p1_items = store.list_entries(Query(priority=1, status=OPEN_STATUSES, limit=100)).entries
        active = store.list_entries(Query(status="active")).entries
        stale = [e for e in active if e.updated_at and e.updated_at < week_ago]
        return DailyReview(stats=store.get_stats(), raw_count=raw.total, p1_items=p1_items, stale_items=stale)

    if scope == "weekly":
        done = store.list_entries(Query(status="done", include_done=True)).entries
        completed = [e for e in done if e.updated_at and e.updated_at >= week_ago]
        return WeeklyReview(completed_this_week=completed, project_progress=project_progress(store))

    raise InvalidArgument(f"Unknown scope: {scope}. Use 'daily' or 'weekly'")


def delete_entries(
    store: EntryStore,
    log: DeletionLog,
    ids: Iterable[str],
    force: bool = False,
) -> list[Entry]:
    """Delete entries after recording them in the deletion log.

    Entries that still have children are refused unless ``force`` is set.
    """
    entries = store.get_many(ids)
    if not entries:
        return []

    if not force:
        parents = [e.id for e in entries if store.get_children(e.id)]
        if parents:
            raise InvalidArgument(f"Entries have children (use force to delete): {', '.join(parents)}")

    log.log_deletions(entries)
    return store.delete(e.id for e in entries)


def restore_entries(
    store: EntryStore,
    log: DeletionLog,
    last: int | None = None,
    ids: Iterable[str] | None = None,
) -> list[Entry]:
    """Restore the ``last`` N deletions or the logged entries matching ``ids``.

    Restored records are removed from the log.
    """
    records: list[DeletionRecord]
    if last is not None:
        if last < 1:
            raise InvalidArgument("last must be a positive number")
        records = log.get_log()[:last]
    elif ids:
        wanted = [i.strip() for i in ids if i and i.strip()]
        records = [r for r in log.get_log() if any(r.id.startswith(i) for i in wanted)]
    else:
        raise InvalidArgument("Provide last or ids to restore")

    if not records:
        return []

    restored = store.restore(records)
    log.remove_from_log(r.id for r in records)
    return restored
