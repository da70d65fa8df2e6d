"""Persistence interface for synap documents."""

from abc import ABC, abstractmethod
from typing import Any

import structlog

from synap.models import Entry

logger = structlog.get_logger()

ENTRIES = "entries"
ARCHIVE = "archive"
DELETION_LOG = "deletion-log"
PREFERENCES = "user-preferences.md"

COLLECTION_VERSION = 1


class Backend(ABC):
    """Abstract base class for document storage backends.

    A backend stores named JSON documents (entry collections, the deletion
    log) and named text documents (the preferences file). Reads of missing or
    corrupt documents return the caller's default instead of raising.
    """

    @abstractmethod
    def load_json(self, name: str, default: Any) -> Any:
        """Load a JSON document, or return ``default`` if missing or unreadable."""
        pass

    @abstractmethod
    def save_json(self, name: str, data: Any) -> None:
        """Replace a JSON document atomically."""
        pass

    @abstractmethod
    def load_text(self, name: str) -> str | None:
        """Load a text document, or None if it does not exist."""
        pass

    @abstractmethod
    def save_text(self, name: str, content: str) -> None:
        """Replace a text document atomically."""
        pass

    def load_collection(self, name: str) -> list[Entry]:
        """Load an entry collection stored as ``{version: 1, entries: [...]}``."""
        data = self.load_json(name, None)
        if data is None:
            return []
        if not isinstance(data, dict) or not isinstance(data.get("entries"), list):
            logger.warning("Malformed entry collection, using empty collection", name=name)
            return []

        entries = []
        for raw in data["entries"]:
            if not isinstance(raw, dict) or "id" not in raw:
                logger.warning("Skipping malformed stored entry", name=name)
                continue
            try:
                entries.append(Entry.from_dict(raw))
            except (TypeError, ValueError) as e:
                logger.warning("Skipping unreadable stored entry", name=name, entry_id=raw.get("id"), error=str(e))
        logger.debug("Collection loaded", name=name, count=len(entries))
        return entries

    def save_collection(self, name: str, entries: list[Entry]) -> None:
        """Persist an entry collection."""
        self.save_json(name, {"version": COLLECTION_VERSION, "entries": [e.to_dict() for e in entries]})
        logger.debug("Collection saved", name=name, count=len(entries))
