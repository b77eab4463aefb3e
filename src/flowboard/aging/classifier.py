"""Aging classification for work items.

An item is aging when it has stayed in a non-excluded stage longer than
the configured threshold. Items in excluded stages (by convention the
"ready" backlog, where work may legitimately wait) are always fresh.

The classifier is a pure O(1) function of the item, the current time,
the threshold and the exclusion set. Only a stage-changing move resets
an item's aging clock (entered_stage_at); reordering never does.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import AbstractSet

from pydantic import BaseModel, ConfigDict

from src.flowboard.state.models import WorkItem, ensure_utc


class AgingStatus(str, Enum):
    """Staleness of a work item."""

    FRESH = "fresh"
    AGING = "aging"


class AgingEntry(BaseModel):
    """One row of an aging report.

    Attributes:
        item: The classified item.
        status: FRESH or AGING.
        age: Time spent in the current stage at report time.
    """

    model_config = ConfigDict(frozen=True)

    item: WorkItem

    status: AgingStatus

    age: timedelta

    @property
    def aging(self) -> bool:
        return self.status == AgingStatus.AGING


def age_of(item: WorkItem, now: datetime) -> timedelta:
    """Return how long the item has been in its current stage."""
    return ensure_utc(now) - item.entered_stage_at


def classify(
    item: WorkItem,
    now: datetime,
    threshold: timedelta,
    excluded_stages: AbstractSet[str] = frozenset(),
) -> AgingStatus:
    """Classify an item as FRESH or AGING.

    Args:
        item: The item to classify.
        now: The reference time.
        threshold: Maximum time in a stage before the item ages.
        excluded_stages: Stages whose items never age.

    Returns:
        AGING iff the item's stage is not excluded and it has been in the
        stage strictly longer than the threshold.

    Example:
        >>> classify(item_entered_4_days_ago, now, timedelta(days=3))
        <AgingStatus.AGING: 'aging'>
    """
    if item.stage_id in excluded_stages:
        return AgingStatus.FRESH
    if age_of(item, now) > threshold:
        return AgingStatus.AGING
    return AgingStatus.FRESH
