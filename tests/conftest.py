"""Pytest configuration for all tests."""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import pytest

from src.flowboard.stages.models import BoardConfig
from src.flowboard.state.models import WorkItem


NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FixedClock:
    """Deterministic clock for engine tests."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> datetime:
        self.now = self.now + delta
        return self.now


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def board_config() -> BoardConfig:
    """The product's Delivery Flow board."""
    return BoardConfig.default()


@pytest.fixture
def make_item() -> Callable[..., WorkItem]:
    """Factory for work items with sensible defaults."""

    def _make_item(
        item_id: str,
        stage_id: str = "ready",
        rank: float = 1000.0,
        entered_stage_at: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
        blocked: bool = False,
    ) -> WorkItem:
        return WorkItem(
            id=item_id,
            stage_id=stage_id,
            rank=rank,
            entered_stage_at=entered_stage_at or NOW - timedelta(hours=1),
            created_at=created_at or NOW - timedelta(days=10),
            blocked=blocked,
        )

    return _make_item
