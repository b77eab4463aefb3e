"""Transition validation and rank allocation.

The functions in this module are pure: they read a FlowState and a
StageRegistry and decide whether a proposed transition is legal, without
mutating anything. The checks run in a fixed order:

1. The moving item must exist (ITEM_NOT_FOUND)
2. The target stage must be configured (UNKNOWN_STAGE)
3. A stage change must not push the target over its WIP limit
   (WIP_LIMIT_EXCEEDED). Reordering inside a stage never checks capacity,
   even when the stage is already over its limit.
4. The position hint must resolve to a free rank (ITEM_NOT_FOUND for a
   missing sibling, RANK_COLLISION when midpoint precision is exhausted)

Ranks are allocated by midpoint between neighbours, or one spacing
beyond the first/last rank. When no free rank exists the caller
renormalizes the stage (renormalize_ranks) and retries.
"""

from typing import Optional, Sequence, Tuple

from src.flowboard.stages.models import DEFAULT_RANK_SPACING
from src.flowboard.stages.registry import StageRegistry
from src.flowboard.state.board import FlowState
from src.flowboard.state.models import WorkItem
from src.flowboard.transitions.models import (
    Accept,
    Decision,
    HintKind,
    PositionHint,
    Reject,
    RejectReason,
)


def validate(
    state: FlowState,
    registry: StageRegistry,
    item_id: str,
    target_stage_id: str,
    hint: Optional[PositionHint] = None,
    spacing: float = DEFAULT_RANK_SPACING,
) -> Decision:
    """Decide whether moving an item is legal.

    Args:
        state: The current board aggregate.
        registry: The configured stages.
        item_id: The item to move.
        target_stage_id: The destination stage (may equal the current one).
        hint: Requested position in the destination; defaults to the end.
        spacing: Rank gap used beyond the first/last item.

    Returns:
        Accept with the resolved rank, or Reject with the reason.

    Example:
        >>> decision = validate(state, registry, "task-4", "in_progress")
        >>> decision.reason
        <RejectReason.WIP_LIMIT_EXCEEDED: 'wip_limit_exceeded'>
    """
    hint = hint or PositionHint.end()

    item = state.get(item_id)
    if item is None:
        return Reject(
            reason=RejectReason.ITEM_NOT_FOUND,
            item_id=item_id,
            stage_id=target_stage_id,
            message=f"Item {item_id} is no longer on the board",
        )

    if target_stage_id not in registry:
        return _unknown_stage(item_id, target_stage_id)

    if target_stage_id != item.stage_id:
        rejection = check_capacity(state, registry, item_id, target_stage_id)
        if rejection is not None:
            return rejection
        return resolve_rank(
            state.items_in(target_stage_id), item_id, target_stage_id, hint, spacing
        )

    # Pure reorder: the item's own slot is free while it moves
    siblings = tuple(
        entry for entry in state.items_in(target_stage_id) if entry.id != item_id
    )
    if hint.kind in (HintKind.BEFORE, HintKind.AFTER) and hint.sibling_id == item_id:
        return Accept(rank=item.rank)
    return resolve_rank(siblings, item_id, target_stage_id, hint, spacing)


def validate_insert(
    state: FlowState,
    registry: StageRegistry,
    item_id: str,
    stage_id: str,
    hint: Optional[PositionHint] = None,
    spacing: float = DEFAULT_RANK_SPACING,
) -> Decision:
    """Decide whether placing a brand-new item is legal.

    Adding an item is an inbound transition from "nowhere", so it runs the
    same WIP check as a stage-changing move.

    Returns:
        Accept with the resolved rank, or Reject with the reason.
    """
    hint = hint or PositionHint.end()

    if item_id in state:
        return Reject(
            reason=RejectReason.DUPLICATE_ITEM,
            item_id=item_id,
            stage_id=stage_id,
            message=f"Item {item_id} is already on the board",
        )

    if stage_id not in registry:
        return _unknown_stage(item_id, stage_id)

    rejection = check_capacity(state, registry, item_id, stage_id)
    if rejection is not None:
        return rejection

    return resolve_rank(state.items_in(stage_id), item_id, stage_id, hint, spacing)


def check_capacity(
    state: FlowState,
    registry: StageRegistry,
    item_id: str,
    stage_id: str,
) -> Optional[Reject]:
    """Check the WIP limit for one item entering a stage.

    The prospective count is the current count plus the entering item.
    Only inbound transitions call this; existing occupants of an
    over-limit stage stay where they are.

    Returns:
        A WIP_LIMIT_EXCEEDED rejection, or None when the item fits.
    """
    limit = registry.wip_limit_of(stage_id)
    if limit is None:
        return None

    count = state.count(stage_id)
    if count + 1 <= limit:
        return None

    title = registry.get(stage_id).title
    return Reject(
        reason=RejectReason.WIP_LIMIT_EXCEEDED,
        item_id=item_id,
        stage_id=stage_id,
        message=(
            f"WIP limit reached in {title} ({count}/{limit}). "
            "Finish something before pulling more work."
        ),
        count=count,
        limit=limit,
    )


def resolve_rank(
    siblings: Sequence[WorkItem],
    item_id: str,
    stage_id: str,
    hint: PositionHint,
    spacing: float = DEFAULT_RANK_SPACING,
) -> Decision:
    """Resolve a position hint to a free numeric rank.

    Args:
        siblings: The other items of the target stage, ordered by rank.
            The moving item must not be included.
        item_id: The item being placed.
        stage_id: The target stage.
        hint: The requested position.
        spacing: Rank gap used beyond the first/last item.

    Returns:
        Accept with the rank, or Reject with ITEM_NOT_FOUND (missing
        sibling) or RANK_COLLISION (no free rank at that position).
    """
    lower: Optional[float]
    upper: Optional[float]

    if hint.kind == HintKind.RANK:
        rank = float(hint.rank)
        if any(sibling.rank == rank for sibling in siblings):
            return _collision(item_id, stage_id)
        return Accept(rank=rank)

    if hint.kind == HintKind.END:
        lower = siblings[-1].rank if siblings else None
        upper = None
    elif hint.kind == HintKind.START:
        lower = None
        upper = siblings[0].rank if siblings else None
    else:
        index = _index_of(siblings, hint.sibling_id)
        if index is None:
            return Reject(
                reason=RejectReason.ITEM_NOT_FOUND,
                item_id=item_id,
                stage_id=stage_id,
                message=f"Item {hint.sibling_id} is not in stage {stage_id}",
            )
        if hint.kind == HintKind.BEFORE:
            lower = siblings[index - 1].rank if index > 0 else None
            upper = siblings[index].rank
        else:
            lower = siblings[index].rank
            upper = siblings[index + 1].rank if index + 1 < len(siblings) else None

    rank = rank_between(lower, upper, spacing)
    if rank is None:
        return _collision(item_id, stage_id)
    return Accept(rank=rank)


def rank_between(
    lower: Optional[float],
    upper: Optional[float],
    spacing: float = DEFAULT_RANK_SPACING,
) -> Optional[float]:
    """Return a rank strictly between two neighbours.

    A missing neighbour means the position is at that end of the stage,
    where the rank is one spacing beyond the existing rank.

    Returns:
        The rank, or None when floating-point precision leaves no value
        strictly between the neighbours.

    Example:
        >>> rank_between(1000.0, 2000.0)
        1500.0
        >>> rank_between(1.0, 1.0) is None
        True
    """
    if lower is None and upper is None:
        return spacing
    if lower is None:
        candidate = upper - spacing
        return candidate if candidate < upper else None
    if upper is None:
        candidate = lower + spacing
        return candidate if candidate > lower else None

    candidate = lower + (upper - lower) / 2
    if lower < candidate < upper:
        return candidate
    return None


def renormalize_ranks(
    items: Sequence[WorkItem],
    spacing: float = DEFAULT_RANK_SPACING,
) -> Tuple[WorkItem, ...]:
    """Reassign evenly spaced ranks to a stage, preserving order.

    Example:
        ranks [1, 1.0000000001, 1.0000000002] become [1000, 2000, 3000]
        with the default spacing.

    Returns:
        New item copies with ranks spacing, 2*spacing, ... in the existing
        (rank, id) order. Stage and aging clock are untouched.
    """
    ordered = sorted(items, key=lambda item: item.sort_key)
    return tuple(
        item.model_copy(update={"rank": float(spacing * (position + 1))})
        for position, item in enumerate(ordered)
    )


def _index_of(siblings: Sequence[WorkItem], sibling_id: Optional[str]) -> Optional[int]:
    for index, sibling in enumerate(siblings):
        if sibling.id == sibling_id:
            return index
    return None


def _unknown_stage(item_id: str, stage_id: str) -> Reject:
    return Reject(
        reason=RejectReason.UNKNOWN_STAGE,
        item_id=item_id,
        stage_id=stage_id,
        message=f"Stage {stage_id} is not part of this board",
    )


def _collision(item_id: str, stage_id: str) -> Reject:
    return Reject(
        reason=RejectReason.RANK_COLLISION,
        item_id=item_id,
        stage_id=stage_id,
        message=(
            f"No free rank at the requested position in {stage_id}; "
            "renormalize the stage and retry"
        ),
    )
