"""テスト共通のフィクスチャ"""

import pytest

from doubles import StepClock

from hitchit_location.features.storage.repositories.location_history_repository import (
    InMemoryLocationHistoryStore,
)


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def store(clock: StepClock) -> InMemoryLocationHistoryStore:
    return InMemoryLocationHistoryStore(clock=clock)
