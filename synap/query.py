"""Filter, sort and limit pipeline over a loaded entry collection."""

from dataclasses import dataclass, field
from datetime import datetime

import structlog

from synap.dates import end_of_day, local_now, parse_date, parse_duration, parse_iso_date, start_of_day
from synap.models import Entry

logger = structlog.get_logger()

SORT_FIELDS = ["created", "updated", "priority", "due"]
NO_PRIORITY = 99
CLOSED_STATUSES = {"done", "archived"}


@dataclass
class Query:
    """Structured list request. Every filter is optional and they combine with AND."""

    type: str | None = None
    not_type: str | None = None
    status: str | list[str] | None = None
    tags: list[str] | None = None
    any_tags: list[str] | None = None
    not_tags: list[str] | None = None
    priority: int | None = None
    parent: str | None = None
    orphans: bool = False
    since: str | None = None
    before: str | None = None
    between: tuple[str, str] | None = None
    due_before: str | None = None
    due_after: str | None = None
    overdue: bool = False
    has_due: bool | None = None
    include_done: bool = False
    sort: str = "created"
    reverse: bool = False
    limit: int | None = None

    @property
    def statuses(self) -> list[str]:
        """The status filter as a list (accepts ``"raw,active"`` or a list)."""
        if not self.status:
            return []
        if isinstance(self.status, str):
            return [s.strip() for s in self.status.split(",") if s.strip()]
        return [s.strip() for s in self.status]

    @property
    def wants_archive(self) -> bool:
        """True when the query targets the archive collection instead of the primary one."""
        return self.statuses == ["archived"]


@dataclass
class QueryResult:
    entries: list[Entry] = field(default_factory=list)
    # Number of matches before the limit was applied
    total: int = 0


def _cutoff(token: str, now: datetime, name: str) -> datetime | None:
    duration = parse_duration(token)
    if duration is None:
        logger.warning("Ignoring unparsable duration filter", filter=name, value=token)
        return None
    return now - duration


def _resolve(expression: str, now: datetime, name: str) -> datetime | None:
    resolved = parse_date(expression, now=now)
    if resolved is None:
        logger.warning("Ignoring unparsable date filter", filter=name, value=expression)
    return resolved


def _between(bounds: tuple[str, str]) -> tuple[datetime, datetime] | None:
    start, end = (parse_iso_date(b) for b in bounds)
    if start is None or end is None:
        logger.warning("Ignoring unparsable date range", value=bounds)
        return None
    return start_of_day(start), end_of_day(end)


def apply_filters(entries: list[Entry], query: Query, now: datetime) -> list[Entry]:
    """Apply every filter of ``query`` in order."""
    result = list(entries)

    if query.type:
        result = [e for e in result if e.type == query.type]
    if query.not_type:
        result = [e for e in result if e.type != query.not_type]

    statuses = query.statuses
    if statuses and not query.wants_archive:
        result = [e for e in result if e.status in statuses]

    if query.tags:
        result = [e for e in result if all(tag in e.tags for tag in query.tags)]
    if query.any_tags:
        result = [e for e in result if any(tag in e.tags for tag in query.any_tags)]
    if query.not_tags:
        result = [e for e in result if not any(tag in e.tags for tag in query.not_tags)]

    if query.priority is not None:
        result = [e for e in result if e.priority == query.priority]

    if query.parent:
        result = [e for e in result if e.parent and e.parent.startswith(query.parent)]
    if query.orphans:
        result = [e for e in result if not e.parent]

    if query.since:
        cutoff = _cutoff(query.since, now, "since")
        if cutoff is not None:
            result = [e for e in result if e.created_at and e.created_at >= cutoff]
    if query.before:
        cutoff = _cutoff(query.before, now, "before")
        if cutoff is not None:
            result = [e for e in result if e.created_at and e.created_at < cutoff]
    if query.between:
        bounds = _between(query.between)
        if bounds is not None:
            low, high = bounds
            result = [e for e in result if e.created_at and low <= e.created_at <= high]

    if query.due_before:
        limit = _resolve(query.due_before, now, "due_before")
        if limit is not None:
            result = [e for e in result if e.due and e.due <= limit]
    if query.due_after:
        limit = _resolve(query.due_after, now, "due_after")
        if limit is not None:
            result = [e for e in result if e.due and e.due >= limit]
    if query.overdue:
        result = [e for e in result if e.due and e.due < now and e.status not in CLOSED_STATUSES]
    if query.has_due is True:
        result = [e for e in result if e.due]
    elif query.has_due is False:
        result = [e for e in result if not e.due]

    if not query.include_done and "done" not in statuses:
        result = [e for e in result if e.status != "done"]

    return result


def sort_entries(entries: list[Entry], sort: str = "created") -> list[Entry]:
    """Sort entries by one of :data:`SORT_FIELDS` (unknown values sort by created)."""
    if sort == "priority":
        return sorted(entries, key=lambda e: e.priority or NO_PRIORITY)
    if sort == "due":
        # Entries without a due date go last
        return sorted(entries, key=lambda e: (e.due is None, e.due.timestamp() if e.due else 0.0))
    if sort == "updated":
        return sorted(entries, key=lambda e: _ts(e.updated_at), reverse=True)
    return sorted(entries, key=lambda e: _ts(e.created_at), reverse=True)


def _ts(value: datetime | None) -> float:
    return value.timestamp() if value else float("-inf")


def run_query(entries: list[Entry], query: Query | None = None, now: datetime | None = None) -> QueryResult:
    """Filter, sort, optionally reverse, count, then truncate.

    Args:
        entries: Collection to query
        query: Filters and ordering (defaults to an empty query)
        now: Reference time for relative filters

    Returns:
        QueryResult with the limited entries and the total before limiting
    """
    query = query or Query()
    current = local_now(now)

    matched = apply_filters(entries, query, current)
    matched = sort_entries(matched, query.sort)
    if query.reverse:
        matched.reverse()

    total = len(matched)
    if query.limit is not None and query.limit >= 0:
        matched = matched[: query.limit]

    logger.debug("Query executed", total=total, returned=len(matched), sort=query.sort)
    return QueryResult(entries=matched, total=total)

