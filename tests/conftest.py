"""Global pytest configuration and fixtures."""

from __future__ import annotations

import pytest

from forgetful.storage.memory import InMemoryStore
from forgetful.sync.broadcast import BroadcastHub


class ManualClock:
    """Clock advanced explicitly by tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store() -> InMemoryStore:
    """Store shared by every context in a test."""
    return InMemoryStore(item_quota_bytes=8192, total_quota_bytes=102400)


@pytest.fixture
def hub() -> BroadcastHub:
    return BroadcastHub()
