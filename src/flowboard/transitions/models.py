"""Transition decision models.

This module defines the inputs and outputs of the transition validator:
- RejectReason: Typed reason codes for rejected transitions
- HintKind / PositionHint: Where the caller wants an item placed
- Accept: Legal transition carrying the resolved rank
- Reject: Illegal transition carrying a specific, presentable reason

Rejections are expected, recoverable outcomes returned as values. They
are never raised across the engine boundary.
"""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RejectReason(str, Enum):
    """Why a transition was rejected.

    Attributes:
        ITEM_NOT_FOUND: The moving item (or the sibling named in the
            position hint) is not on the board / in the target stage.
        UNKNOWN_STAGE: The target stage is not configured.
        WIP_LIMIT_EXCEEDED: The target stage is full; finish something
            first.
        RANK_COLLISION: No free rank exists at the requested position;
            renormalize the stage and retry.
        DUPLICATE_ITEM: An item with the same id is already on the board.
    """

    ITEM_NOT_FOUND = "item_not_found"
    UNKNOWN_STAGE = "unknown_stage"
    WIP_LIMIT_EXCEEDED = "wip_limit_exceeded"
    RANK_COLLISION = "rank_collision"
    DUPLICATE_ITEM = "duplicate_item"


class HintKind(str, Enum):
    """How a position hint places an item within its target stage."""

    END = "end"
    START = "start"
    BEFORE = "before"
    AFTER = "after"
    RANK = "rank"


class PositionHint(BaseModel):
    """Requested position of an item within its target stage.

    Drag-and-drop gestures usually end next to a sibling card, so the
    common hints are "before X" and "after X". Callers that manage ranks
    themselves may pass an explicit rank.

    Example:
        >>> PositionHint.after("task-7")
        PositionHint(kind=<HintKind.AFTER: 'after'>, sibling_id='task-7', rank=None)
    """

    model_config = ConfigDict(frozen=True)

    kind: HintKind = HintKind.END

    sibling_id: Optional[str] = Field(
        default=None,
        description="Sibling the item is placed next to (BEFORE/AFTER)",
    )

    rank: Optional[float] = Field(
        default=None,
        allow_inf_nan=False,
        description="Explicit rank (RANK)",
    )

    @model_validator(mode="after")
    def validate_fields(self) -> "PositionHint":
        """Validate that each hint kind carries exactly what it needs."""
        if self.kind in (HintKind.BEFORE, HintKind.AFTER):
            if not self.sibling_id:
                raise ValueError(f"{self.kind.value} hint requires sibling_id")
        elif self.sibling_id is not None:
            raise ValueError(f"{self.kind.value} hint does not take sibling_id")
        if self.kind == HintKind.RANK:
            if self.rank is None:
                raise ValueError("rank hint requires rank")
        elif self.rank is not None:
            raise ValueError(f"{self.kind.value} hint does not take rank")
        return self

    @classmethod
    def end(cls) -> "PositionHint":
        return cls(kind=HintKind.END)

    @classmethod
    def start(cls) -> "PositionHint":
        return cls(kind=HintKind.START)

    @classmethod
    def before(cls, sibling_id: str) -> "PositionHint":
        return cls(kind=HintKind.BEFORE, sibling_id=sibling_id)

    @classmethod
    def after(cls, sibling_id: str) -> "PositionHint":
        return cls(kind=HintKind.AFTER, sibling_id=sibling_id)

    @classmethod
    def at_rank(cls, rank: float) -> "PositionHint":
        return cls(kind=HintKind.RANK, rank=rank)


class Accept(BaseModel):
    """A legal transition with its resolved rank."""

    model_config = ConfigDict(frozen=True)

    rank: float

    @property
    def accepted(self) -> bool:
        return True


class Reject(BaseModel):
    """An illegal transition.

    Attributes:
        reason: The typed reason code.
        item_id: The item the transition concerned.
        stage_id: The target stage of the transition.
        message: Human-readable explanation.
        count: Current item count of the target stage (WIP rejections).
        limit: WIP limit of the target stage (WIP rejections).
    """

    model_config = ConfigDict(frozen=True)

    reason: RejectReason

    item_id: str

    stage_id: str

    message: str = ""

    count: Optional[int] = None

    limit: Optional[int] = None

    @property
    def accepted(self) -> bool:
        return False

    @property
    def needs_renormalization(self) -> bool:
        """Whether renormalizing the target stage and retrying can help."""
        return self.reason == RejectReason.RANK_COLLISION


Decision = Union[Accept, Reject]
