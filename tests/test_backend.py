"""Tests for backend interface and the JSON file backend."""

import json
from pathlib import Path
from typing import Any

import pytest

from synap.backend import ENTRIES, PREFERENCES, Backend
from synap.backends import JsonFileBackend, json_file
from synap.models import Entry


class MemoryBackend(Backend):
    """In-memory backend for testing."""

    def __init__(self) -> None:
        """Initialize memory backend."""
        self.documents: dict[str, Any] = {}
        self.texts: dict[str, str] = {}

    def load_json(self, name: str, default: Any) -> Any:
        """Load a JSON document."""
        return json.loads(json.dumps(self.documents[name])) if name in self.documents else default

    def save_json(self, name: str, data: Any) -> None:
        """Save a JSON document."""
        self.documents[name] = json.loads(json.dumps(data))

    def load_text(self, name: str) -> str | None:
        """Load a text document."""
        return self.texts.get(name)

    def save_text(self, name: str, content: str) -> None:
        """Save a text document."""
        self.texts[name] = content


def test_collection_round_trip() -> None:
    """Test collections are stored as a versioned document."""
    backend = MemoryBackend()
    backend.save_collection(ENTRIES, [Entry(id="a1", content="Text", title="Text")])
    assert backend.documents[ENTRIES]["version"] == 1
    assert [e.id for e in backend.load_collection(ENTRIES)] == ["a1"]


def test_missing_collection_is_empty() -> None:
    """Test a collection that was never written loads as empty."""
    assert MemoryBackend().load_collection(ENTRIES) == []


def test_malformed_collection_is_empty() -> None:
    """Test malformed documents and entries are skipped."""
    backend = MemoryBackend()
    backend.save_json(ENTRIES, ["not", "a", "mapping"])
    assert backend.load_collection(ENTRIES) == []

    backend.save_json(ENTRIES, {"version": 1, "entries": [{"content": "no id"}, {"id": "ok", "content": "x"}]})
    assert [e.id for e in backend.load_collection(ENTRIES)] == ["ok"]


def test_file_paths(tmp_path: Path) -> None:
    """Test JSON documents get a .json suffix and named files keep their name."""
    backend = JsonFileBackend(tmp_path)
    assert backend.path_for(ENTRIES) == tmp_path / "entries.json"
    assert backend.path_for(PREFERENCES) == tmp_path / "user-preferences.md"


def test_atomic_write_leaves_no_temp_file(tmp_path: Path) -> None:
    """Test saving creates the directory and renames the temp file into place."""
    backend = JsonFileBackend(tmp_path / "nested" / "data")
    backend.save_json(ENTRIES, {"version": 1, "entries": []})
    files = sorted(p.name for p in (tmp_path / "nested" / "data").iterdir())
    assert files == ["entries.json"]
    assert json.loads((tmp_path / "nested" / "data" / "entries.json").read_text()) == {"version": 1, "entries": []}


def test_corrupt_json_returns_default(tmp_path: Path) -> None:
    """Test an unreadable document falls back to the default."""
    backend = JsonFileBackend(tmp_path)
    (tmp_path / "entries.json").write_text("{broken", encoding="utf-8")
    assert backend.load_json(ENTRIES, {"fallback": True}) == {"fallback": True}
    assert backend.load_collection(ENTRIES) == []


def test_text_documents_keep_line_endings(tmp_path: Path) -> None:
    """Test text documents are stored verbatim."""
    backend = JsonFileBackend(tmp_path)
    assert backend.load_text(PREFERENCES) is None
    backend.save_text(PREFERENCES, "# Title\r\nline\n")
    assert backend.load_text(PREFERENCES) == "# Title\r\nline\n"


def test_collection_with_wrong_field_types_loads() -> None:
    """Test stored entries with wrong field types are coerced instead of failing the read."""
    backend = MemoryBackend()
    backend.save_json(ENTRIES, {"version": 1, "entries": [{"id": "x", "content": 5, "tags": 5}]})
    [entry] = backend.load_collection(ENTRIES)
    assert (entry.content, entry.tags) == ("5", [])


def test_failed_write_removes_temp_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test a write that fails before the rename leaves the old document and no temp file."""
    backend = JsonFileBackend(tmp_path)
    backend.save_json(ENTRIES, {"version": 1, "entries": []})

    def fail_replace(src: str, dst: str) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(json_file.os, "replace", fail_replace)
    with pytest.raises(OSError):
        backend.save_json(ENTRIES, {"version": 1, "entries": [{"id": "a"}]})
    assert sorted(p.name for p in tmp_path.iterdir()) == ["entries.json"]
    assert backend.load_json(ENTRIES, None) == {"version": 1, "entries": []}


def test_invalid_utf8_text_is_replaced_not_raised(tmp_path: Path) -> None:
    """Test a text document with undecodable bytes still loads."""
    backend = JsonFileBackend(tmp_path)
    backend.path_for(PREFERENCES).write_bytes(b"## About Me\n\xff\xfe ok\n")
    content = backend.load_text(PREFERENCES)
    assert content.startswith("## About Me\n")
    assert "\ufffd" in content
    assert content.endswith(" ok\n")
