"""Audit trail of deleted entries, used to undo deletes."""

from collections.abc import Callable, Iterable
from datetime import datetime, timezone

import structlog

from synap.backend import DELETION_LOG, Backend
from synap.dates import truncate_to_millis
from synap.models import DeletionRecord, Entry

logger = structlog.get_logger()

MAX_RECORDS = 1000


class DeletionLog:
    """Most-recent-first list of deleted entry snapshots, capped at 1000 records.

    The log is a blind snapshot store: it does not validate entries and is
    not consulted by lookups.
    """

    def __init__(
        self,
        backend: Backend,
        clock: Callable[[], datetime] | None = None,
        max_records: int = MAX_RECORDS,
    ) -> None:
        self.backend = backend
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.max_records = max_records

    def _load(self) -> list[DeletionRecord]:
        data = self.backend.load_json(DELETION_LOG, [])
        if not isinstance(data, list):
            logger.warning("Malformed deletion log, using empty log")
            return []
        records = []
        for item in data:
            if not isinstance(item, dict) or "id" not in item:
                logger.warning("Skipping malformed deletion record")
                continue
            try:
                records.append(DeletionRecord.from_dict(item))
            except (TypeError, ValueError) as e:
                logger.warning("Skipping unreadable deletion record", entry_id=item.get("id"), error=str(e))
        return records

    def _save(self, records: list[DeletionRecord]) -> None:
        self.backend.save_json(DELETION_LOG, [r.to_dict() for r in records])

    def log_deletions(self, entries: Iterable[Entry]) -> list[DeletionRecord]:
        """Prepend a ``deletedAt``-stamped snapshot of each entry and trim the log."""
        records = self._load()
        now = truncate_to_millis(self.clock())
        added = []
        for entry in entries:
            record = DeletionRecord(entry=entry.copy(), deleted_at=now)
            records.insert(0, record)
            added.append(record)

        dropped = len(records) - self.max_records
        if dropped > 0:
            del records[self.max_records :]
            logger.debug("Deletion log trimmed", dropped=dropped)

        self._save(records)
        logger.info("Deletions logged", count=len(added))
        return added

    def get_log(self) -> list[DeletionRecord]:
        return self._load()

    def remove_from_log(self, ids: Iterable[str]) -> int:
        """Drop records whose id equals or starts with any of ``ids``; returns how many."""
        wanted = [i for i in ids if i]
        records = self._load()
        kept = [r for r in records if not any(r.entry.matches(i) for i in wanted)]
        self._save(kept)
        removed = len(records) - len(kept)
        logger.info("Removed from deletion log", count=removed)
        return removed

    def clear_log(self) -> None:
        self._save([])
        logger.info("Deletion log cleared")

    def unused_tags(self, current_tags: Iterable[str]) -> list[str]:
        """Tags that only survive on deleted entries."""
        current = set(current_tags)
        seen: dict[str, None] = {}
        for record in self._load():
            for tag in record.entry.tags:
                if tag not in current:
                    seen.setdefault(tag)
        return list(seen)
