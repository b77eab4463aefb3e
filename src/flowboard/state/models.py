"""Work item and board snapshot models.

This module defines the data models for items flowing through a board:
- WorkItem: One unit of work, its stage, rank and timestamps
- WorkItemInit: The input for placing a brand-new item on the board
- BoardSnapshot: Immutable view of the whole board at one revision

Items are frozen Pydantic models. The engine never mutates an item in
place; every transition produces a new copy via model_copy().
"""

from datetime import datetime, timezone
from typing import Dict, Iterator, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so timestamps stay comparable."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class WorkItem(BaseModel):
    """One unit of work on the board.

    Identifiers and display metadata are passed through opaquely from the
    task storage collaborator. Only the engine changes stage_id, rank and
    entered_stage_at.

    Attributes:
        id: Stable, externally assigned identifier.
        stage_id: The stage currently holding the item.
        rank: Sort key within the stage (ascending; ties broken by id).
        entered_stage_at: When the item last changed stage (UTC).
        created_at: When the item was first placed on the board (UTC).
        blocked: Display-only flag, never consulted by the validator.
        blocked_reason: Optional explanation shown with the blocked flag.
        title: Display title.
        priority: Display priority (e.g., "high").
        assignee: Display assignee.
        tags: Display tags.
        phase_id: Project phase the item belongs to (display filter).
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Stable, externally assigned identifier",
    )

    stage_id: str = Field(
        ...,
        min_length=1,
        description="The stage currently holding the item",
    )

    rank: float = Field(
        ...,
        allow_inf_nan=False,
        description="Sort key within the stage",
    )

    entered_stage_at: datetime = Field(
        ...,
        description="When the item last changed stage (UTC)",
    )

    created_at: datetime = Field(
        ...,
        description="When the item was placed on the board (UTC)",
    )

    blocked: bool = False

    blocked_reason: Optional[str] = None

    title: str = ""

    priority: Optional[str] = None

    assignee: Optional[str] = None

    tags: Tuple[str, ...] = ()
    phase_id: Optional[str] = None

    @field_validator("entered_stage_at", "created_at")
    @classmethod
    def validate_timezone(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def sort_key(self) -> Tuple[float, str]:
        """Total order of items within a stage."""
        return (self.rank, self.id)


class WorkItemInit(BaseModel):
    """A brand-new item to place on the board.

    The rank is not part of the input; it is resolved from the position
    hint passed to FlowEngine.add_item(). Timestamps default to the
    engine clock when omitted.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    stage_id: str = Field(..., min_length=1)
    created_at: Optional[datetime] = None
    entered_stage_at: Optional[datetime] = None
    blocked: bool = False
    blocked_reason: Optional[str] = None
    title: str = ""
    priority: Optional[str] = None
    assignee: Optional[str] = None
    tags: Tuple[str, ...] = ()
    phase_id: Optional[str] = None

    @field_validator("entered_stage_at", "created_at")
    @classmethod
    def validate_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None

    def to_work_item(self, rank: float, now: datetime) -> WorkItem:
        """Materialize the item at a resolved rank."""
        return WorkItem(
            id=self.id,
            stage_id=self.stage_id,
            rank=rank,
            entered_stage_at=self.entered_stage_at or now,
            created_at=self.created_at or now,
            blocked=self.blocked,
            blocked_reason=self.blocked_reason,
            title=self.title,
            priority=self.priority,
            assignee=self.assignee,
            tags=self.tags,
            phase_id=self.phase_id,
        )


class BoardSnapshot(BaseModel):
    """Immutable view of a board at one revision.

    Attributes:
        revision: Number of accepted mutations applied to the board.
        stage_ids: Stage ids in pipeline order.
        items_by_stage: Items of each stage, ordered by rank.
    """

    model_config = ConfigDict(frozen=True)

    revision: int = Field(default=0, ge=0)

    stage_ids: Tuple[str, ...] = ()

    items_by_stage: Dict[str, Tuple[WorkItem, ...]] = Field(default_factory=dict)

    def items(self) -> Iterator[WorkItem]:
        """Iterate over all items in pipeline order, then rank order."""
        for stage_id in self.stage_ids:
            yield from self.items_by_stage.get(stage_id, ())

    def stage(self, stage_id: str) -> Tuple[WorkItem, ...]:
        return self.items_by_stage.get(stage_id, ())

    def count(self, stage_id: str) -> int:
        return len(self.items_by_stage.get(stage_id, ()))

    def get(self, item_id: str) -> Optional[WorkItem]:
        for item in self.items():
            if item.id == item_id:
                return item
        return None

    def for_phase(self, phase_id: Optional[str]) -> "BoardSnapshot":
        """Return the board restricted to one project phase.

        None selects every item, matching the "all phases" board view.
        """
        if phase_id is None:
            return self
        return self.model_copy(
            update={
                "items_by_stage": {
                    stage_id: tuple(
                        item for item in items if item.phase_id == phase_id
                    )
                    for stage_id, items in self.items_by_stage.items()
                }
            }
        )

    def __len__(self) -> int:
        return sum(len(items) for items in self.items_by_stage.values())
