"""Entry store: CRUD, archive, deletion, import/export and aggregate views."""

import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from synap import tags as tag_index
from synap import tree as tree_builder
from synap.backend import ARCHIVE, ENTRIES, Backend
from synap.dates import format_timestamp, local_now, parse_date, parse_timestamp, start_of_day, truncate_to_millis
from synap.errors import InvalidArgument, InvalidDueDate, InvalidParent, InvalidPriority, InvalidStatus, InvalidType
from synap.models import (
    VALID_PRIORITIES,
    VALID_STATUSES,
    VALID_TYPES,
    Ambiguous,
    DeletionRecord,
    Entry,
    Found,
    LookupResult,
    NotFound,
    extract_title,
    resolve_id,
    unique_tags,
)
from synap.query import Query, QueryResult, apply_filters, run_query

logger = structlog.get_logger()

UPDATABLE_FIELDS = {
    "content",
    "title",
    "type",
    "status",
    "priority",
    "tags",
    "parent",
    "related",
    "due",
    "started_at",
    "source",
}
# Fields where an explicit None removes the value
CLEARABLE_FIELDS = {"priority", "parent", "due", "started_at"}

ACTIVE_STATUSES = {"raw", "active"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _valid_priority(value: Any) -> bool:
    return not isinstance(value, bool) and value in VALID_PRIORITIES


def _select(ids: Iterable[str]) -> Callable[[Entry], bool]:
    """Predicate matching entries whose id equals or starts with any of ``ids``."""
    wanted = [i for i in ids if i]
    return lambda entry: any(entry.matches(i) for i in wanted)


@dataclass
class Stats:
    total: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    by_type: dict[str, int] = field(default_factory=dict)
    high_priority: int = 0
    high_priority_active: int = 0
    created_this_week: int = 0
    updated_today: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "byStatus": self.by_status,
            "byType": self.by_type,
            "highPriority": self.high_priority,
            "highPriorityActive": self.high_priority_active,
            "createdThisWeek": self.created_this_week,
            "updatedToday": self.updated_today,
        }


@dataclass
class ImportResult:
    added: int = 0
    updated: int = 0


@dataclass
class TagRename:
    old_tag: str
    new_tag: str
    entries_updated: int


class EntryStore:
    """Durable entry collection backed by a :class:`Backend`.

    Every operation loads the primary collection (and the archive when it
    needs it) in full, works in memory and writes the result back. Lookups
    accept a full id or a unique id prefix.
    """

    def __init__(
        self,
        backend: Backend,
        clock: Callable[[], datetime] | None = None,
        default_type: str = "idea",
    ) -> None:
        """Initialize the store.

        Args:
            backend: Persistence backend for the entry and archive documents
            clock: Returns the current time (defaults to UTC wall clock)
            default_type: Type used by ``add`` when none is given
        """
        self.backend = backend
        self.clock = clock or _utcnow
        self.default_type = default_type if default_type in VALID_TYPES else "idea"

    def _now(self) -> datetime:
        return truncate_to_millis(self.clock())

    def _load_primary(self) -> list[Entry]:
        return self.backend.load_collection(ENTRIES)

    def _load_archive(self) -> list[Entry]:
        return self.backend.load_collection(ARCHIVE)

    def _resolve_due(self, value: str | datetime | None, now: datetime) -> datetime | None:
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            return truncate_to_millis(value if value.tzinfo else value.astimezone())
        resolved = parse_date(value, now=now)
        if resolved is None:
            raise InvalidDueDate(value)
        return truncate_to_millis(resolved)

    @staticmethod
    def _resolve_parent(entries: list[Entry], parent: str) -> str:
        # Unresolved or ambiguous references are kept as given
        result = resolve_id(entries, parent)
        return result.entry.id if isinstance(result, Found) else parent

    @staticmethod
    def _lookup_in(primary: list[Entry], archive: list[Entry], id_or_prefix: str) -> LookupResult:
        result = resolve_id(primary, id_or_prefix)
        if isinstance(result, Found):
            return result

        archived = resolve_id(archive, id_or_prefix)
        if isinstance(archived, Found):
            return Found(archived.entry, archived=True)

        candidates = [
            candidate for r in (result, archived) if isinstance(r, Ambiguous) for candidate in r.candidates
        ]
        return Ambiguous(candidates) if candidates else NotFound()

    def add(
        self,
        content: str,
        title: str | None = None,
        type: str | None = None,
        priority: int | None = None,
        tags: list[str] | None = None,
        parent: str | None = None,
        due: str | datetime | None = None,
        source: str = "cli",
        status: str | None = None,
    ) -> Entry:
        """Create an entry with status ``raw`` (or an explicit initial status).

        Args:
            content: Entry text (required)
            title: Short label, derived from the first content line when omitted
            type: Entry type; unknown types fall back to ``idea``
            priority: 1, 2 or 3; anything else is dropped
            tags: Tags, duplicates removed
            parent: Parent id or unique prefix; unresolved values are kept verbatim
            due: Date expression understood by :func:`synap.dates.parse_date`
            source: Provenance tag
            status: Initial status other than ``archived``

        Returns:
            The stored entry

        Raises:
            InvalidDueDate: If ``due`` is non-empty and cannot be parsed
            InvalidStatus: If ``status`` is unknown or ``archived``
        """
        if not content or not content.strip():
            raise InvalidArgument("Entry content is required")
        if status is not None and (status not in VALID_STATUSES or status == "archived"):
            raise InvalidStatus(status)

        now = self._now()
        due_at = self._resolve_due(due, now)
        entries = self._load_primary()

        entry_type = self.default_type if type is None else type
        if entry_type not in VALID_TYPES:
            logger.debug("Unknown entry type, falling back to idea", type=type)
            entry_type = "idea"

        entry = Entry(
            id=str(uuid.uuid4()),
            content=content,
            title=title or extract_title(content),
            type=entry_type,
            status=status or "raw",
            priority=priority if _valid_priority(priority) else None,
            tags=unique_tags(tags),
            parent=self._resolve_parent(entries, parent) if parent else None,
            due=due_at,
            started_at=now if status == "wip" else None,
            created_at=now,
            updated_at=now,
            source=source,
        )

        entries.append(entry)
        self.backend.save_collection(ENTRIES, entries)
        logger.info("Entry added", entry_id=entry.id, type=entry.type, parent=entry.parent)
        return entry

    def lookup(self, id_or_prefix: str) -> LookupResult:
        """Resolve an id or prefix, distinguishing not-found from ambiguous.

        Order: exact id in the primary collection, unique prefix there, then the
        same two rules against the archive.
        """
        result = self._lookup_in(self._load_primary(), self._load_archive(), id_or_prefix)
        logger.debug("Entry lookup", id=id_or_prefix, result=type(result).__name__)
        return result

    def get(self, id_or_prefix: str) -> Entry | None:
        """Return the entry for an id or unique prefix; None when missing or ambiguous."""
        result = self.lookup(id_or_prefix)
        return result.entry if isinstance(result, Found) else None

    def get_many(self, ids: Iterable[str]) -> list[Entry]:
        """Return the entries found for ``ids``, silently skipping misses."""
        primary, archive = self._load_primary(), self._load_archive()
        found = []
        for entry_id in ids:
            result = self._lookup_in(primary, archive, entry_id)
            if isinstance(result, Found):
                found.append(result.entry)
        return found

    def get_children(self, parent_id: str) -> list[Entry]:
        """Primary entries whose parent starts with ``parent_id`` or is a prefix of it."""
        return [
            e
            for e in self._load_primary()
            if e.parent and (e.parent.startswith(parent_id) or parent_id.startswith(e.parent))
        ]

    def update(self, id_or_prefix: str, **patch: Any) -> Entry | None:
        """Apply a partial update to an entry.

        Explicit ``None`` for ``priority``, ``parent``, ``due`` or ``started_at``
        clears that field. Entering ``wip`` stamps ``started_at``; leaving it
        clears the stamp. Setting ``archived`` moves a primary entry into the
        archive, and any other status moves an archived entry back.

        Returns:
            Updated entry, or None if the id does not resolve

        Raises:
            InvalidType, InvalidStatus, InvalidPriority, InvalidDueDate, InvalidParent:
                On invalid values; nothing is written
        """
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidArgument(f"Cannot update field(s): {', '.join(sorted(unknown))}")

        primary, archive = self._load_primary(), self._load_archive()
        result = self._lookup_in(primary, archive, id_or_prefix)
        if not isinstance(result, Found):
            logger.debug("Update target not found", id=id_or_prefix)
            return None
        entry, in_archive = result.entry, result.archived

        if patch.get("type") is not None and patch["type"] not in VALID_TYPES:
            raise InvalidType(patch["type"])
        if patch.get("status") is not None and patch["status"] not in VALID_STATUSES:
            raise InvalidStatus(patch["status"])
        if patch.get("priority") is not None and not _valid_priority(patch["priority"]):
            raise InvalidPriority(patch["priority"])

        now = self._now()
        changes: dict[str, Any] = {}
        if "due" in patch:
            changes["due"] = self._resolve_due(patch["due"], now)
        if patch.get("parent") is not None:
            parent = self._resolve_parent(primary, patch["parent"])
            if tree_builder.creates_cycle(primary + archive, entry.id, parent):
                raise InvalidParent(f"Entry {entry.id} cannot be a descendant of itself")
            changes["parent"] = parent
        if "started_at" in patch:
            changes["started_at"] = parse_timestamp(patch["started_at"])

        old_status = entry.status
        for key, value in patch.items():
            if key in changes:
                continue
            if value is None and key not in CLEARABLE_FIELDS:
                continue
            if key == "tags":
                value = unique_tags(value)
            elif key == "related":
                value = list(dict.fromkeys(value))
            changes[key] = value

        for key, value in changes.items():
            setattr(entry, key, value)

        if entry.status == "wip" and old_status != "wip" and "started_at" not in patch:
            entry.started_at = now
        elif old_status == "wip" and entry.status != "wip":
            entry.started_at = None
        entry.updated_at = now

        if not in_archive and entry.status == "archived":
            primary.remove(entry)
            archive.append(entry)
            self._save_both(primary, archive)
        elif in_archive and entry.status != "archived":
            archive.remove(entry)
            primary.append(entry)
            self._save_both(primary, archive)
        else:
            self.backend.save_collection(ARCHIVE if in_archive else ENTRIES, archive if in_archive else primary)

        logger.info("Entry updated", entry_id=entry.id, fields=sorted(patch))
        return entry

    def _save_both(self, primary: list[Entry], archive: list[Entry]) -> None:
        self.backend.save_collection(ENTRIES, primary)
        self.backend.save_collection(ARCHIVE, archive)

    def archive(self, ids: Iterable[str]) -> list[Entry]:
        """Move every primary entry matching any id (exact or prefix) into the archive."""
        selected = _select(ids)
        primary, archive = self._load_primary(), self._load_archive()
        now = self._now()

        moved, remaining = [], []
        for entry in primary:
            if selected(entry):
                entry.status = "archived"
                entry.updated_at = now
                moved.append(entry)
            else:
                remaining.append(entry)

        if moved:
            self._save_both(remaining, archive + moved)
        logger.info("Entries archived", count=len(moved))
        return moved

    def delete(self, ids: Iterable[str]) -> list[Entry]:
        """Permanently remove matching entries from both collections.

        No audit record is written here; callers log the entries first.
        """
        selected = _select(list(ids))
        primary, archive = self._load_primary(), self._load_archive()

        removed = [e for e in primary + archive if selected(e)]
        if removed:
            self._save_both([e for e in primary if not selected(e)], [e for e in archive if not selected(e)])
        logger.info("Entries deleted", count=len(removed))
        return removed

    def restore(self, records: Iterable[Entry | DeletionRecord]) -> list[Entry]:
        """Re-insert snapshots into the primary collection.

        Archived snapshots come back as ``raw`` and any ``deletedAt`` marker is
        dropped. A copy with the same id already stored is replaced.
        """
        primary, archive = self._load_primary(), self._load_archive()
        restored = []
        for record in records:
            entry = (record.entry if isinstance(record, DeletionRecord) else record).copy()
            entry.extra.pop("deletedAt", None)
            if entry.status == "archived":
                entry.status = "raw"
            primary = [e for e in primary if e.id != entry.id]
            archive = [e for e in archive if e.id != entry.id]
            primary.append(entry)
            restored.append(entry)

        if restored:
            self._save_both(primary, archive)
        logger.info("Entries restored", count=len(restored))
        return restored

    def import_entries(
        self,
        entries: Iterable[Entry | dict[str, Any]],
        merge: bool = False,
        skip_existing: bool = False,
    ) -> ImportResult:
        """Import entries into the primary collection.

        An incoming entry whose id already exists overwrites the stored fields
        when ``merge`` is set (and ``skip_existing`` is not); otherwise the
        stored entry is left alone. New ids are appended.
        """
        primary = self._load_primary()
        position = {e.id: i for i, e in enumerate(primary)}
        result = ImportResult()

        for item in entries:
            if not isinstance(item, (Entry, dict)):
                logger.warning("Skipping imported entry that is not an object")
                continue
            incoming = item.to_dict() if isinstance(item, Entry) else dict(item)
            if "id" not in incoming:
                logger.warning("Skipping imported entry without id")
                continue
            index = position.get(str(incoming["id"]))
            if index is None:
                position[str(incoming["id"])] = len(primary)
                primary.append(Entry.from_dict(incoming))
                result.added += 1
            elif merge and not skip_existing:
                primary[index] = Entry.from_dict({**primary[index].to_dict(), **incoming})
                result.updated += 1

        self.backend.save_collection(ENTRIES, primary)
        logger.info("Entries imported", added=result.added, updated=result.updated)
        return result

    def export_entries(self, type: str | None = None, status: str | None = None) -> dict[str, Any]:
        """Export both collections as a ``{version, entries, exportedAt}`` document."""
        entries = self._load_primary() + self._load_archive()
        if type:
            entries = [e for e in entries if e.type == type]
        if status:
            entries = [e for e in entries if e.status == status]
        return {
            "version": 1,
            "entries": [e.to_dict() for e in entries],
            "exportedAt": format_timestamp(self._now()),
        }

    def list_entries(self, query: Query | None = None) -> QueryResult:
        """Run a query against the primary collection, or the archive for status ``archived``."""
        query = query or Query()
        entries = self._load_archive() if query.wants_archive else self._load_primary()
        return run_query(entries, query, now=self._now())

    def search(
        self,
        text: str,
        type: str | None = None,
        status: str | None = None,
        since: str | None = None,
        limit: int | None = None,
    ) -> QueryResult:
        """Case-insensitive substring search over titles and content.

        Exact title or content matches rank first, then newest first.
        """
        needle = text.lower()
        hits = [e for e in self._load_primary() if needle in e.content.lower() or needle in (e.title or "").lower()]
        hits = apply_filters(
            hits, Query(type=type, status=status, since=since, include_done=True), local_now(self._now())
        )

        def exact(entry: Entry) -> bool:
            return (entry.title or "").lower() == needle or entry.content.lower() == needle

        hits.sort(key=lambda e: e.created_at.timestamp() if e.created_at else 0.0, reverse=True)
        hits.sort(key=lambda e: not exact(e))

        total = len(hits)
        if limit is not None:
            hits = hits[:limit]
        return QueryResult(entries=hits, total=total)

    def get_stats(self) -> Stats:
        """Aggregate counts across the primary collection and the archive."""
        now = self._now()
        week_ago = now - timedelta(days=7)
        midnight = start_of_day(local_now(now).date())

        stats = Stats()
        for entry in self._load_primary() + self._load_archive():
            stats.total += 1
            stats.by_status[entry.status] = stats.by_status.get(entry.status, 0) + 1
            stats.by_type[entry.type] = stats.by_type.get(entry.type, 0) + 1
            if entry.priority == 1:
                stats.high_priority += 1
                if entry.status in ACTIVE_STATUSES:
                    stats.high_priority_active += 1
            if entry.created_at and entry.created_at >= week_ago:
                stats.created_this_week += 1
            if entry.updated_at and entry.updated_at >= midnight:
                stats.updated_today += 1
        return stats

    def get_all_tags(self) -> list[tuple[str, int]]:
        """Tag usage counts across both collections, most used first."""
        return tag_index.count_tags(self._load_primary() + self._load_archive())

    def rename_tag(self, old_tag: str, new_tag: str) -> TagRename:
        """Rename a tag on every entry in both collections."""
        if not old_tag or not new_tag:
            raise InvalidArgument("Both the old and the new tag are required")

        primary, archive = self._load_primary(), self._load_archive()
        if old_tag == new_tag:
            count = sum(1 for e in primary + archive if old_tag in e.tags)
            return TagRename(old_tag=old_tag, new_tag=new_tag, entries_updated=count)

        now = self._now()
        touched_primary = tag_index.rename_tag(primary, old_tag, new_tag, now)
        touched_archive = tag_index.rename_tag(archive, old_tag, new_tag, now)
        if touched_primary:
            self.backend.save_collection(ENTRIES, primary)
        if touched_archive:
            self.backend.save_collection(ARCHIVE, archive)

        count = len(touched_primary) + len(touched_archive)
        logger.info("Tag renamed", old_tag=old_tag, new_tag=new_tag, entries_updated=count)
        return TagRename(old_tag=old_tag, new_tag=new_tag, entries_updated=count)

    def build_tree(self, root_ids: list[str] | None = None, max_depth: int = tree_builder.DEFAULT_MAX_DEPTH) -> list[dict]:
        """Hierarchy of the primary collection; see :func:`synap.tree.build_tree`."""
        return tree_builder.build_tree(self._load_primary(), root_ids, max_depth)

    def find_cycles(self) -> list[list[str]]:
        """Parent cycles present in the primary collection."""
        return tree_builder.find_cycles(self._load_primary())
