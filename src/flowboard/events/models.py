"""Flow event models for change notifications.

This module defines the data models for events emitted by the engine:
- EventType: Enum of all event types emitted by FlowEngine
- FlowEvent: Structured event with the affected board, item and stage

The presentation layer subscribes to these events to re-render the
board; logging and metrics sinks consume the same events.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events emitted by the flow engine.

    Attributes:
        ITEM_ADDED: A new item was placed on the board.
        ITEM_MOVED: An item changed stage (its aging clock was reset).
        ITEM_REORDERED: An item changed rank within its stage.
        ITEM_REMOVED: An item was taken off the board.
        STAGE_RENORMALIZED: Every rank in a stage was reassigned.
        BOARD_LOADED: A board was (re)loaded from storage; details carry
            the item count of every stage.
        TRANSITION_REJECTED: A move or add was rejected; details carry
            the reason code.
    """

    ITEM_ADDED = "item_added"
    ITEM_MOVED = "item_moved"
    ITEM_REORDERED = "item_reordered"
    ITEM_REMOVED = "item_removed"
    STAGE_RENORMALIZED = "stage_renormalized"
    BOARD_LOADED = "board_loaded"
    TRANSITION_REJECTED = "transition_rejected"


class FlowEvent(BaseModel):
    """Structured event emitted by the flow engine.

    Attributes:
        event_type: The category of event.
        board_id: The board the event belongs to.
        item_id: The affected item (None for stage-wide events).
        stage_id: The stage the item ended up in, or the target stage of
            a rejected transition.
        revision: Board revision after the event (unchanged on rejection).
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.

    Details Field Conventions:
        For ITEM_MOVED events:
            - from_stage: Previous stage
            - to_stage: New stage
            - rank: Resolved rank in the new stage

        For ITEM_REORDERED / ITEM_ADDED events:
            - rank: Resolved rank

        For STAGE_RENORMALIZED events:
            - item_count: Number of items re-ranked

        For BOARD_LOADED events:
            - stage_counts: Mapping of stage id to item count

        For TRANSITION_REJECTED events:
            - reason: RejectReason value
            - detail: Human-readable explanation
            - count / limit: Stage occupancy for WIP rejections
    """

    event_type: EventType = Field(
        ...,
        description="The category of event being emitted",
    )

    board_id: str = Field(
        ...,
        min_length=1,
        description="The board the event belongs to",
    )

    item_id: Optional[str] = Field(
        default=None,
        description="The affected item, if the event concerns one item",
    )

    stage_id: Optional[str] = Field(
        default=None,
        description="The stage the event concerns",
    )

    revision: int = Field(
        default=0,
        ge=0,
        description="Board revision after the event",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context specific to the event type",
    )

    def to_log_dict(self) -> Dict[str, Any]:
        """Convert event to a flat dictionary suitable for structured logging.

        Returns:
            Dict[str, Any]: Flat dictionary representation of the event.

        Example:
            >>> event = FlowEvent(
            ...     event_type=EventType.ITEM_REMOVED,
            ...     board_id="project-1",
            ...     item_id="task-9",
            ... )
            >>> event.to_log_dict()["event_type"]
            'item_removed'
        """
        return {
            "event_type": self.event_type.value,
            "board_id": self.board_id,
            "item_id": self.item_id,
            "stage_id": self.stage_id,
            "revision": self.revision,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
