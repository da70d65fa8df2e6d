"""Tag bookkeeping derived from entry collections."""

from datetime import datetime

from synap.models import Entry


def count_tags(entries: list[Entry]) -> list[tuple[str, int]]:
    """Count tag usage, most used first (ties keep first-seen order)."""
    counts: dict[str, int] = {}
    for entry in entries:
        for tag in entry.tags:
            counts[tag] = counts.get(tag, 0) + 1
    return sorted(counts.items(), key=lambda item: -item[1])


def rename_tag(entries: list[Entry], old_tag: str, new_tag: str, now: datetime) -> list[Entry]:
    """Replace ``old_tag`` with ``new_tag`` in place and return the touched entries."""
    touched = []
    for entry in entries:
        if old_tag not in entry.tags:
            continue
        renamed = [new_tag if tag == old_tag else tag for tag in entry.tags]
        entry.tags = list(dict.fromkeys(renamed))
        entry.updated_at = now
        touched.append(entry)
    return touched
