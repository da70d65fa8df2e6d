"""Directory-of-files backend with atomic writes."""

import json
import os
from pathlib import Path
from typing import Any

import structlog

from synap.backend import Backend

logger = structlog.get_logger()


class JsonFileBackend(Backend):
    """Stores each document as a file in one data directory.

    JSON documents live in ``<name>.json``; text documents use their name as
    the file name. Writes go to ``<file>.tmp`` first and are then renamed
    into place, so a crash never leaves a half-written document behind.
    There is no locking between processes: concurrent writers are
    last-write-wins.
    """

    def __init__(self, data_dir: Path | str) -> None:
        """Initialize the backend.

        Args:
            data_dir: Directory holding the documents (created on first write)
        """
        self.data_dir = Path(data_dir).expanduser()
        logger.debug("JSON file backend initialized", data_dir=str(self.data_dir))

    def path_for(self, name: str) -> Path:
        """Return the file path used for a document name."""
        if "." in name:
            return self.data_dir / name
        return self.data_dir / f"{name}.json"

    def _atomic_write(self, path: Path, content: str) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            os.replace(tmp_path, path)
        finally:
            tmp_path.unlink(missing_ok=True)

    def load_json(self, name: str, default: Any) -> Any:
        path = self.path_for(name)
        if not path.exists():
            logger.debug("Document does not exist, using default", path=str(path))
            return default

        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Failed to read document, using default", path=str(path), error=str(e))
            return default

    def save_json(self, name: str, data: Any) -> None:
        path = self.path_for(name)
        self._atomic_write(path, json.dumps(data, indent=2, ensure_ascii=False))
        logger.debug("Document saved", path=str(path))

    def load_text(self, name: str) -> str | None:
        path = self.path_for(name)
        if not path.exists():
            return None
        raw = path.read_bytes()
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            # Undecodable bytes become U+FFFD; the document is not replaced
            logger.warning("Text document is not valid UTF-8", path=str(path), error=str(e))
            return raw.decode("utf-8", errors="replace")

    def save_text(self, name: str, content: str) -> None:
        path = self.path_for(name)
        self._atomic_write(path, content)
        logger.debug("Text document saved", path=str(path))
