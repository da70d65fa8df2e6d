"""Shared fixtures for synap tests."""

from datetime import datetime, timedelta
from pathlib import Path

import pytest

from synap.backends import JsonFileBackend
from synap.deletion_log import DeletionLog
from synap.store import EntryStore

# Monday 2025-01-06, noon local time
MONDAY_NOON = datetime(2025, 1, 6, 12, 0).astimezone()


class TickingClock:
    """Clock that advances one second every time it is read."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock() -> TickingClock:
    """Deterministic clock starting at Monday 2025-01-06 12:00 local."""
    return TickingClock(MONDAY_NOON)


@pytest.fixture
def backend(tmp_path: Path) -> JsonFileBackend:
    """JSON file backend in a temporary directory."""
    return JsonFileBackend(tmp_path / "data")


@pytest.fixture
def store(backend: JsonFileBackend, clock: TickingClock) -> EntryStore:
    """Entry store using the temporary backend and the ticking clock."""
    return EntryStore(backend, clock=clock)


@pytest.fixture
def deletion_log(backend: JsonFileBackend, clock: TickingClock) -> DeletionLog:
    """Deletion log sharing the store's backend."""
    return DeletionLog(backend, clock=clock)


@pytest.fixture
def now() -> datetime:
    """Fixed reference time: Monday 2025-01-06 12:00 local."""
    return MONDAY_NOON
