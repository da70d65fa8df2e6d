"""Tests for workflow operations."""

import pytest

from synap import workflow
from synap.deletion_log import DeletionLog
from synap.errors import EntryNotFound, InvalidArgument, InvalidParent
from synap.query import Query
from synap.store import EntryStore


def test_start_and_stop(store: EntryStore) -> None:
    """Test start marks wip once and stop returns entries to active."""
    a = store.add("A")
    b = store.add("B")

    started = workflow.start(store, [a.id, b.id[:8]])
    assert [e.status for e in started] == ["wip", "wip"]
    assert all(e.started_at is not None for e in started)
    assert workflow.start(store, [a.id]) == []

    stopped = workflow.stop(store, [a.id])
    assert [(e.id, e.status, e.started_at) for e in stopped] == [(a.id, "active", None)]

    remaining = workflow.stop(store, all_wip=True)
    assert [e.id for e in remaining] == [b.id]


def test_stop_requires_a_selection(store: EntryStore) -> None:
    """Test stop without ids or all_wip is rejected."""
    with pytest.raises(InvalidArgument):
        workflow.stop(store)


def test_mark_done(store: EntryStore) -> None:
    """Test done entries drop out of the default listing."""
    entry = store.add("Finish")
    assert [e.status for e in workflow.mark_done(store, [entry.id, "missing"])] == ["done"]
    assert store.list_entries().total == 0


def test_link_related(store: EntryStore) -> None:
    """Test linking adds a related id once and unlink removes it."""
    a = store.add("A")
    b = store.add("B")
    workflow.link(store, a.id, b.id[:8])
    linked = workflow.link(store, a.id, b.id)
    assert linked.related == [b.id]

    unlinked = workflow.link(store, a.id, b.id[:8], unlink=True)
    assert unlinked.related == []


def test_link_parent_and_child(store: EntryStore) -> None:
    """Test parent assignment in both directions and the cycle guard."""
    a = store.add("A")
    b = store.add("B")
    assert workflow.link(store, a.id, b.id, as_parent=True).parent == b.id
    with pytest.raises(InvalidParent):
        workflow.link(store, a.id, b.id, as_child=True)


def test_link_missing_entry(store: EntryStore) -> None:
    """Test linking to an unknown id raises."""
    a = store.add("A")
    with pytest.raises(EntryNotFound) as excinfo:
        workflow.link(store, a.id, "missing")
    assert excinfo.value.code == "ENTRY_NOT_FOUND"


def test_log_entry(store: EntryStore) -> None:
    """Test log entries are timestamped notes under the parent."""
    parent = store.add("Project", type="project", tags=["work"])
    message = "Talked to the vendor about the renewal and the new pricing tiers"

    result = workflow.log_entry(store, parent.id[:8], message, inherit_tags=True)
    entry = result.entry
    assert result.parent.id == parent.id
    assert entry.type == "note"
    assert entry.parent == parent.id
    assert entry.tags == ["work"]
    assert entry.content.startswith("[") and entry.content.endswith("] " + message)
    assert len(entry.content.split("]")[0]) == len("[YYYY-MM-DD HH:MM")
    assert entry.title == message[:37] + "..."

    short = workflow.log_entry(store, parent.id, "Short note").entry
    assert short.title == "Short note"
    assert short.tags == []


def test_log_entry_errors(store: EntryStore) -> None:
    """Test missing parents and empty messages."""
    with pytest.raises(EntryNotFound):
        workflow.log_entry(store, "missing", "hello")
    parent = store.add("Parent")
    with pytest.raises(InvalidArgument):
        workflow.log_entry(store, parent.id, "  ")


def test_focus(store: EntryStore) -> None:
    """Test focus lists P1 todos, other overdue items and project progress."""
    p1 = store.add("Urgent", type="todo", priority=1, due="yesterday")
    late = store.add("Late idea", due="yesterday")
    store.add("Someday", type="todo", priority=2)
    project = store.add("Launch", type="project")
    store.update(project.id, status="active")
    done_child = store.add("Step 1", parent=project.id)
    store.update(done_child.id, status="done")
    store.add("Step 2", parent=project.id)
    store.add("Step 3", parent=project.id)

    report = workflow.focus(store)
    assert [e.id for e in report.p1_todos] == [p1.id]
    assert [e.id for e in report.overdue] == [late.id]
    assert len(report.active_projects) == 1
    progress = report.active_projects[0]
    assert (progress.total, progress.done, progress.percent) == (3, 1, 33)
    assert report.to_dict()["activeProjects"][0]["progress"] == {"total": 3, "done": 1, "percent": 33}


def test_daily_review(store: EntryStore, clock) -> None:
    """Test the daily review counts raw entries and finds stale active ones."""
    stale = store.add("Old active")
    store.update(stale.id, status="active")
    clock.advance(days=8)
    store.add("Fresh raw", priority=1)
    fresh = store.add("Fresh active")
    store.update(fresh.id, status="active")

    review = workflow.review(store, "daily")
    assert review.raw_count == 1
    assert [e.title for e in review.p1_items] == ["Fresh raw"]
    assert [e.id for e in review.stale_items] == [stale.id]
    assert review.to_dict()["stats"]["total"] == 3


def test_weekly_review(store: EntryStore, clock) -> None:
    """Test the weekly review lists recently completed entries."""
    old = store.add("Done long ago")
    store.update(old.id, status="done")
    clock.advance(days=10)
    recent = store.add("Done recently")
    store.update(recent.id, status="done")

    review = workflow.review(store, "weekly")
    assert [e.id for e in review.completed_this_week] == [recent.id]
    assert review.project_progress == []


def test_review_rejects_unknown_scope(store: EntryStore) -> None:
    """Test scopes other than daily and weekly."""
    with pytest.raises(InvalidArgument):
        workflow.review(store, "monthly")


def test_delete_and_restore(store: EntryStore, deletion_log: DeletionLog) -> None:
    """Test deletions are logged and can be undone."""
    a = store.add("A", type="todo")
    b = store.add("B")

    removed = workflow.delete_entries(store, deletion_log, [a.id, b.id[:8]])
    assert sorted(e.id for e in removed) == sorted([a.id, b.id])
    assert store.list_entries().total == 0
    assert len(deletion_log.get_log()) == 2

    restored = workflow.restore_entries(store, deletion_log, last=1)
    assert [e.id for e in restored] == [b.id]
    assert deletion_log.get_log()[0].id == a.id

    restored = workflow.restore_entries(store, deletion_log, ids=[a.id[:8]])
    assert [e.id for e in restored] == [a.id]
    assert store.get(a.id).type == "todo"
    assert deletion_log.get_log() == []


def test_delete_refuses_parents_without_force(store: EntryStore, deletion_log: DeletionLog) -> None:
    """Test entries with children need force."""
    parent = store.add("Parent")
    store.add("Child", parent=parent.id)
    with pytest.raises(InvalidArgument):
        workflow.delete_entries(store, deletion_log, [parent.id])
    assert deletion_log.get_log() == []

    assert len(workflow.delete_entries(store, deletion_log, [parent.id], force=True)) == 1
    assert store.list_entries(Query(orphans=True)).total == 0


def test_restore_requires_selection(store: EntryStore, deletion_log: DeletionLog) -> None:
    """Test restore needs last or ids."""
    with pytest.raises(InvalidArgument):
        workflow.restore_entries(store, deletion_log)
    assert workflow.restore_entries(store, deletion_log, ids=["nothing"]) == []
