"""Tests for the query pipeline."""

from datetime import date, datetime, timedelta

import pytest

from synap.dates import end_of_day
from synap.models import Entry
from synap.query import Query, run_query


@pytest.fixture
def entries(now: datetime) -> list[Entry]:
    """A small collection with varied ages, statuses, tags and due dates."""

    def make(entry_id: str, age_days: float, **fields) -> Entry:
        created = now - timedelta(days=age_days)
        return Entry(id=entry_id, content=entry_id, title=entry_id, created_at=created, updated_at=created, **fields)

    return [
        make("new-todo", 0.5, type="todo", priority=1, tags=["work", "urgent"], due=now - timedelta(hours=1)),
        make("old-idea", 20, tags=["home"]),
        make("mid-note", 3, type="note", status="active", tags=["work"], parent="old-idea"),
        make("done-todo", 1, type="todo", status="done", priority=2, due=now - timedelta(days=2)),
        make("later", 2, type="todo", priority=3, due=end_of_day(date(2025, 1, 10))),
    ]


def ids(entries: list[Entry]) -> list[str]:
    return [e.id for e in entries]


def test_default_excludes_done_and_sorts_newest_first(entries: list[Entry], now: datetime) -> None:
    """Test the default query."""
    result = run_query(entries, now=now)
    assert ids(result.entries) == ["new-todo", "later", "mid-note", "old-idea"]
    assert result.total == 4


def test_done_included_on_request(entries: list[Entry], now: datetime) -> None:
    """Test include_done and an explicit done status."""
    assert "done-todo" in ids(run_query(entries, Query(include_done=True), now).entries)
    assert ids(run_query(entries, Query(status="done"), now).entries) == ["done-todo"]


def test_status_list(entries: list[Entry], now: datetime) -> None:
    """Test comma-separated status filters."""
    result = run_query(entries, Query(status="active"), now)
    assert ids(result.entries) == ["mid-note"]
    result = run_query(entries, Query(status=["raw", "active"]), now)
    assert result.total == 4


def test_tag_filters(entries: list[Entry], now: datetime) -> None:
    """Test AND, OR and exclusion tag filters."""
    assert ids(run_query(entries, Query(tags=["work", "urgent"]), now).entries) == ["new-todo"]
    assert ids(run_query(entries, Query(any_tags=["home", "urgent"]), now).entries) == ["new-todo", "old-idea"]
    assert "new-todo" not in ids(run_query(entries, Query(not_tags=["work"]), now).entries)


def test_type_filters(entries: list[Entry], now: datetime) -> None:
    """Test type and not_type."""
    assert ids(run_query(entries, Query(type="todo"), now).entries) == ["new-todo", "later"]
    assert ids(run_query(entries, Query(not_type="todo"), now).entries) == ["mid-note", "old-idea"]


def test_parent_and_orphans(entries: list[Entry], now: datetime) -> None:
    """Test parent prefix and orphan filters."""
    assert ids(run_query(entries, Query(parent="old"), now).entries) == ["mid-note"]
    assert "mid-note" not in ids(run_query(entries, Query(orphans=True), now).entries)


def test_since_and_before(entries: list[Entry], now: datetime) -> None:
    """Test created-at windows from duration tokens."""
    assert ids(run_query(entries, Query(since="7d"), now).entries) == ["new-todo", "later", "mid-note"]
    assert ids(run_query(entries, Query(before="7d"), now).entries) == ["old-idea"]


def test_unparsable_filters_are_ignored(entries: list[Entry], now: datetime) -> None:
    """Test that a bad duration or date leaves the result unfiltered."""
    assert run_query(entries, Query(since="last week"), now).total == 4
    assert run_query(entries, Query(due_before="whenever"), now).total == 4


def test_between_is_inclusive(entries: list[Entry], now: datetime) -> None:
    """Test the between range covers whole days at both ends."""
    result = run_query(entries, Query(between=("2025-01-03", "2025-01-04")), now)
    assert ids(result.entries) == ["later", "mid-note"]


def test_due_filters(entries: list[Entry], now: datetime) -> None:
    """Test due_before, due_after, overdue and has_due."""
    assert ids(run_query(entries, Query(due_before="2025-01-09"), now).entries) == ["new-todo"]
    assert ids(run_query(entries, Query(due_after="tomorrow"), now).entries) == ["later"]
    assert ids(run_query(entries, Query(overdue=True, include_done=True), now).entries) == ["new-todo"]
    assert ids(run_query(entries, Query(has_due=True), now).entries) == ["new-todo", "later"]
    assert ids(run_query(entries, Query(has_due=False), now).entries) == ["mid-note", "old-idea"]


def test_sort_by_priority_and_due(entries: list[Entry], now: datetime) -> None:
    """Test priority ascending (missing last, ties in collection order) and due ascending."""
    by_priority = run_query(entries, Query(sort="priority"), now)
    assert ids(by_priority.entries) == ["new-todo", "later", "old-idea", "mid-note"]
    by_due = run_query(entries, Query(sort="due"), now)
    assert ids(by_due.entries) == ["new-todo", "later", "old-idea", "mid-note"]


def test_sort_by_due_puts_undated_last(now: datetime) -> None:
    """Test due ascending with entries lacking a due date at the end."""

    def make(entry_id: str, due: datetime | None) -> Entry:
        return Entry(id=entry_id, content=entry_id, due=due, created_at=now, updated_at=now)

    entries = [
        make("jan-20", end_of_day(date(2025, 1, 20))),
        make("jan-05", end_of_day(date(2025, 1, 5))),
        make("undated", None),
    ]
    assert ids(run_query(entries, Query(sort="due"), now).entries) == ["jan-05", "jan-20", "undated"]
    assert ids(run_query(entries, Query(sort="due", reverse=True), now).entries) == ["undated", "jan-20", "jan-05"]


def test_reverse_then_limit(entries: list[Entry], now: datetime) -> None:
    """Test that limit applies after reversing and total counts all matches."""
    result = run_query(entries, Query(reverse=True, limit=2), now)
    assert ids(result.entries) == ["old-idea", "mid-note"]
    assert result.total == 4


def test_archive_query_flag() -> None:
    """Test only a bare archived status targets the archive."""
    assert Query(status="archived").wants_archive
    assert not Query(status="archived,raw").wants_archive
    assert not Query().wants_archive
