"""Backend implementations."""

from synap.backends.json_file import JsonFileBackend

__all__ = ["JsonFileBackend"]
