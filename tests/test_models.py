"""Tests for data models."""

from datetime import datetime, timezone

from synap.models import Ambiguous, DeletionRecord, Entry, Found, NotFound, extract_title, resolve_id


def test_entry_creation() -> None:
    """Test entry creation with defaults."""
    entry = Entry(id="a1", content="Buy milk")
    assert entry.type == "idea"
    assert entry.status == "raw"
    assert entry.tags == []
    assert entry.related == []
    assert entry.priority is None
    assert entry.source == "cli"


def test_extract_title() -> None:
    """Test titles come from the first line and are capped at 60 characters."""
    assert extract_title("First line\nsecond line") == "First line"
    assert extract_title("  padded  ") == "padded"
    long_line = "x" * 80
    title = extract_title(long_line)
    assert len(title) == 60
    assert title.endswith("...")
    assert extract_title("y" * 60) == "y" * 60


def test_to_dict_uses_camel_case_and_omits_absent_fields() -> None:
    """Test the persisted form."""
    created = datetime(2025, 1, 6, 10, 0, tzinfo=timezone.utc)
    entry = Entry(id="a1", content="Text", title="Text", created_at=created, updated_at=created)
    data = entry.to_dict()
    assert data["createdAt"] == "2025-01-06T10:00:00.000Z"
    assert data["updatedAt"] == "2025-01-06T10:00:00.000Z"
    assert "priority" not in data
    assert "parent" not in data
    assert "due" not in data
    assert "startedAt" not in data
    assert data["tags"] == []


def test_from_dict_round_trips_unknown_fields() -> None:
    """Test that fields this version does not know about survive a load and save."""
    data = {
        "id": "a1",
        "content": "Text",
        "type": "todo",
        "tags": ["x", "x", "y"],
        "due": "2025-01-10T23:59:59.999Z",
        "customField": {"nested": True},
    }
    entry = Entry.from_dict(data)
    assert entry.type == "todo"
    assert entry.tags == ["x", "y"]
    assert entry.title == "Text"
    assert entry.due == datetime(2025, 1, 10, 23, 59, 59, 999000, tzinfo=timezone.utc)
    assert entry.to_dict()["customField"] == {"nested": True}


def test_deletion_record() -> None:
    """Test deletion records carry deletedAt alongside the entry fields."""
    deleted = datetime(2025, 1, 6, 10, 0, tzinfo=timezone.utc)
    record = DeletionRecord(entry=Entry(id="a1", content="Text"), deleted_at=deleted)
    data = record.to_dict()
    assert data["id"] == "a1"
    assert data["deletedAt"] == "2025-01-06T10:00:00.000Z"

    loaded = DeletionRecord.from_dict(data)
    assert loaded.id == "a1"
    assert loaded.deleted_at == deleted
    assert "deletedAt" not in loaded.entry.extra


def test_resolve_id() -> None:
    """Test exact, prefix, ambiguous and missing lookups."""
    entries = [Entry(id="abc1", content="a"), Entry(id="abc2", content="b"), Entry(id="abc", content="c")]
    assert resolve_id(entries, "abc") == Found(entries[2])
    assert resolve_id(entries, "abc1") == Found(entries[0])
    assert resolve_id(entries[:2], "abc") == Ambiguous(["abc1", "abc2"])
    assert resolve_id(entries, "zzz") == NotFound()
    assert resolve_id(entries, "") == NotFound()


def test_from_dict_coerces_wrong_types() -> None:
    """Test hand-edited records with wrong JSON types still load."""
    entry = Entry.from_dict(
        {
            "id": 42,
            "content": 5,
            "title": ["not", "text"],
            "priority": "3",
            "tags": "work",
            "related": ["a", {"b": 1}, "a"],
            "parent": 7,
            "createdAt": 12345,
        }
    )
    assert entry.id == "42"
    assert entry.content == "5"
    assert entry.title == "5"
    assert entry.priority == 3
    assert entry.tags == []
    assert entry.related == ["a"]
    assert entry.parent == "7"
    assert entry.created_at is None


def test_from_dict_drops_invalid_priority() -> None:
    """Test priorities outside 1-3 are dropped."""
    for value in (0, 4, True, "urgent", 2.5, None):
        assert Entry.from_dict({"id": "a", "content": "x", "priority": value}).priority is None
    assert Entry.from_dict({"id": "a", "content": "x", "priority": 2}).priority == 2
