"""Data models for synap."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from synap.dates import format_timestamp, parse_timestamp

VALID_TYPES = ["idea", "project", "feature", "todo", "question", "reference", "note"]
VALID_STATUSES = ["raw", "active", "wip", "someday", "done", "archived"]
VALID_PRIORITIES = [1, 2, 3]

TITLE_MAX_LENGTH = 60

# Persisted (camelCase) key for each timestamp field
_TIMESTAMP_KEYS = {
    "due": "due",
    "started_at": "startedAt",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
}
_PLAIN_KEYS = ["id", "content", "title", "type", "status", "priority", "tags", "parent", "related"]
_KNOWN_KEYS = set(_PLAIN_KEYS) | set(_TIMESTAMP_KEYS.values()) | {"source"}


def extract_title(content: str) -> str:
    """Derive a title from the first line of content, capped at 60 characters."""
    first_line = content.split("\n", 1)[0].strip()
    if len(first_line) <= TITLE_MAX_LENGTH:
        return first_line
    return first_line[: TITLE_MAX_LENGTH - 3] + "..."


def unique_tags(tags: list[str] | None) -> list[str]:
    """Drop duplicate tags, keeping first-seen order."""
    return list(dict.fromkeys(tags or []))


def coerce_priority(value: Any) -> int | None:
    """Stored priority as 1, 2 or 3; numeric strings are accepted, anything else is dropped."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    return value if value in VALID_PRIORITIES else None


def _text(value: Any) -> str | None:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return None


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in (_text(v) for v in value) if item]


@dataclass
class Entry:
    """A captured item: idea, todo, question, note and so on."""

    id: str
    content: str
    title: str = ""
    type: str = "idea"
    status: str = "raw"
    priority: int | None = None
    tags: list[str] = field(default_factory=list)
    parent: str | None = None
    related: list[str] = field(default_factory=list)
    due: datetime | None = None
    started_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    source: str | None = "cli"
    # Unknown keys found in the stored document, kept for round-tripping
    extra: dict[str, Any] = field(default_factory=dict)

    def matches(self, id_or_prefix: str) -> bool:
        """True if the id equals or starts with ``id_or_prefix``."""
        return self.id == id_or_prefix or self.id.startswith(id_or_prefix)

    def copy(self) -> "Entry":
        return replace(self, tags=list(self.tags), related=list(self.related), extra=dict(self.extra))

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the persisted camelCase form, omitting absent fields."""
        data: dict[str, Any] = {}
        for key in _PLAIN_KEYS:
            value = getattr(self, key)
            if value is not None:
                data[key] = list(value) if isinstance(value, list) else value
        for attr, key in _TIMESTAMP_KEYS.items():
            value = getattr(self, attr)
            if value is not None:
                data[key] = format_timestamp(value)
        if self.source is not None:
            data["source"] = self.source
        for key, value in self.extra.items():
            data.setdefault(key, value)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Entry":
        """Build an entry from its persisted form.

        Fields with the wrong JSON type are coerced (or dropped) so a hand-edited
        or imported document cannot break later reads.
        """
        content = _text(data.get("content")) or ""
        entry = cls(
            id=str(data["id"]),
            content=content,
            title=_text(data.get("title")) or extract_title(content),
            type=_text(data.get("type")) or "idea",
            status=_text(data.get("status")) or "raw",
            priority=coerce_priority(data.get("priority")),
            tags=unique_tags(_string_list(data.get("tags"))),
            parent=_text(data.get("parent")) or None,
            related=list(dict.fromkeys(_string_list(data.get("related")))),
            source=_text(data.get("source")),
            extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
        )
        for attr, key in _TIMESTAMP_KEYS.items():
            setattr(entry, attr, parse_timestamp(data.get(key)))
        return entry


@dataclass
class DeletionRecord:
    """Snapshot of a deleted entry, kept for audit and restore."""

    entry: Entry
    deleted_at: datetime | None

    @property
    def id(self) -> str:
        return self.entry.id

    def to_dict(self) -> dict[str, Any]:
        data = self.entry.to_dict()
        if self.deleted_at is not None:
            data["deletedAt"] = format_timestamp(self.deleted_at)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeletionRecord":
        data = dict(data)
        deleted_at = parse_timestamp(data.pop("deletedAt", None))
        entry = Entry.from_dict(data)
        return cls(entry=entry, deleted_at=deleted_at or entry.updated_at or entry.created_at)


@dataclass
class Found:
    """Lookup resolved to exactly one entry."""

    entry: Entry
    archived: bool = False


@dataclass
class NotFound:
    """No entry matched the id or prefix."""


@dataclass
class Ambiguous:
    """The prefix matched more than one entry."""

    candidates: list[str]


LookupResult = Found | NotFound | Ambiguous


def resolve_id(entries: list[Entry], id_or_prefix: str) -> LookupResult:
    """Resolve an id or a unique id prefix within one collection."""
    if not id_or_prefix:
        return NotFound()
    for entry in entries:
        if entry.id == id_or_prefix:
            return Found(entry)
    matches = [e for e in entries if e.id.startswith(id_or_prefix)]
    if len(matches) == 1:
        return Found(matches[0])
    if matches:
        return Ambiguous([e.id for e in matches])
    return NotFound()
