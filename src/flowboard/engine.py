"""Flow engine: the public API of a delivery board.

This module implements the FlowEngine class that owns one board's
FlowState and applies presentation-layer intents to it:

- snapshot(): immutable view of the board
- move_item(): drag-and-drop completion (stage change and/or reorder)
- add_item(): place a brand-new item (inbound transition from nowhere)
- remove_item(): idempotent removal
- renormalize_stage(): re-rank a stage after a RANK_COLLISION
- aging_report(), wip_status(), board_status(), flow_summary(): queries

Every mutation is validated first and applied as a unit; a rejected
intent leaves the board untouched and returns the typed reason. The
engine performs no I/O: the caller persists TransitionResult.changed
through the task storage collaborator (see src/flowboard/storage/).

All operations are synchronous and run to completion, so one engine
instance serves a single logical writer without locks.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from src.flowboard.aging.classifier import AgingEntry, age_of, classify
from src.flowboard.events.emitter import EventEmitter, NullEventEmitter
from src.flowboard.events.models import EventType, FlowEvent
from src.flowboard.stages.models import BoardConfig
from src.flowboard.stages.registry import StageRegistry
from src.flowboard.state.board import FlowState
from src.flowboard.state.models import BoardSnapshot, WorkItem, WorkItemInit, ensure_utc
from src.flowboard.transitions.models import PositionHint, Reject, RejectReason
from src.flowboard.transitions.validator import (
    renormalize_ranks,
    validate,
    validate_insert,
)


logger = logging.getLogger(__name__)


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TransitionResult(BaseModel):
    """Outcome of a mutating engine operation.

    Attributes:
        accepted: Whether the intent was applied.
        snapshot: The board after the change (accepted results only).
        rejection: Why the intent was rejected (rejected results only).
        changed: Items whose stage, rank or aging clock changed and must
            be persisted by the caller.
    """

    model_config = ConfigDict(frozen=True)

    accepted: bool

    snapshot: Optional[BoardSnapshot] = None

    rejection: Optional[Reject] = None

    changed: Tuple[WorkItem, ...] = ()

    @property
    def reason(self) -> Optional[RejectReason]:
        return self.rejection.reason if self.rejection is not None else None

    @classmethod
    def ok(
        cls, snapshot: BoardSnapshot, changed: Iterable[WorkItem] = ()
    ) -> "TransitionResult":
        return cls(accepted=True, snapshot=snapshot, changed=tuple(changed))

    @classmethod
    def rejected(cls, rejection: Reject) -> "TransitionResult":
        return cls(accepted=False, rejection=rejection)


class WipStatus(BaseModel):
    """Occupancy of one stage.

    Attributes:
        stage_id: The stage.
        count: Items currently in the stage.
        limit: The stage's WIP limit, or None when unbounded.
        exceeded: The stage holds more items than its limit (inbound moves
            are blocked; existing occupants stay visible).
        at_limit: The stage holds exactly its limit.
    """

    model_config = ConfigDict(frozen=True)

    stage_id: str

    count: int = Field(..., ge=0)

    limit: Optional[int] = None

    exceeded: bool = False

    at_limit: bool = False


class FlowSummary(BaseModel):
    """Board-wide flow indicators shown in the board header.

    Attributes:
        total_items: All items on the board.
        total_wip: Items in the configured work-in-progress stages.
        aging_items: Items classified as aging.
        blocked_items: Items flagged as blocked.
        over_limit_stages: Stages whose count exceeds their limit.
    """

    model_config = ConfigDict(frozen=True)

    total_items: int = 0

    total_wip: int = 0

    aging_items: int = 0

    blocked_items: int = 0

    over_limit_stages: Tuple[str, ...] = ()


class FlowEngine:
    """Orchestrates validation, aging and notifications over one board.

    The engine exclusively owns its FlowState. Callers read the board
    through snapshot() and the query methods, and change it only through
    the mutating methods, which return a TransitionResult instead of
    raising for expected rejections.

    Example:
        >>> engine = FlowEngine(BoardConfig.default(), board_id="project-1")
        >>> result = engine.add_item(WorkItemInit(id="task-1", stage_id="ready"))
        >>> result.accepted
        True
        >>> engine.move_item("task-1", "in_progress").snapshot.count("in_progress")
        1
    """

    def __init__(
        self,
        config: BoardConfig,
        items: Iterable[WorkItem] = (),
        board_id: str = "board",
        emitter: Optional[EventEmitter] = None,
        clock: Optional[Clock] = None,
    ):
        """Initialize the engine for one board session.

        Args:
            config: Board configuration (stages, limits, aging policy).
            items: Items loaded from storage. Over-limit stages are
                tolerated; they only block further inbound moves.
            board_id: Identifier used in events and logs.
            emitter: Change notification sink. Defaults to discarding.
            clock: Source of "now" for transitions and reports.

        Raises:
            UnknownStageError: If a loaded item references an unconfigured
                stage.
            ValueError: If two loaded items share an id.
        """
        self.config = config
        self.board_id = board_id
        self.registry = StageRegistry.from_config(config)
        self._emitter = emitter or NullEventEmitter()
        self._clock = clock or utc_now
        self._state = FlowState(self.registry.stage_ids(), items)

        logger.debug(
            "Flow engine initialized",
            extra={
                "board_id": board_id,
                "stages": list(self.registry.stage_ids()),
                "item_count": len(self._state),
            },
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def snapshot(self) -> BoardSnapshot:
        """Return an immutable view of the current board."""
        return self._state.snapshot()

    def get_item(self, item_id: str) -> Optional[WorkItem]:
        return self._state.get(item_id)

    def wip_status(self, stage_id: str) -> WipStatus:
        """Return the occupancy of a stage.

        Raises:
            UnknownStageError: If the stage is not configured.
        """
        limit = self.registry.wip_limit_of(stage_id)
        count = self._state.count(stage_id)
        return WipStatus(
            stage_id=stage_id,
            count=count,
            limit=limit,
            exceeded=limit is not None and count > limit,
            at_limit=limit is not None and count == limit,
        )

    def board_status(self) -> List[WipStatus]:
        """Return the occupancy of every stage, in pipeline order."""
        return [self.wip_status(stage_id) for stage_id in self.registry.stage_ids()]

    def aging_report(
        self,
        now: Optional[datetime] = None,
        threshold: Optional[timedelta] = None,
    ) -> List[AgingEntry]:
        """Classify every item on the board.

        Args:
            now: Reference time. Defaults to the engine clock.
            threshold: Staleness threshold. Defaults to the board's.

        Returns:
            One entry per item, in pipeline then rank order. The list is
            computed eagerly and can be iterated any number of times.
        """
        now = ensure_utc(now) if now is not None else self._now()
        threshold = threshold if threshold is not None else self.config.aging_threshold
        excluded = self.config.aging_excluded_stages

        return [
            AgingEntry(
                item=item,
                status=classify(item, now, threshold, excluded),
                age=age_of(item, now),
            )
            for item in self._state.items()
        ]

    def flow_summary(self, now: Optional[datetime] = None) -> FlowSummary:
        """Return board-wide flow indicators."""
        wip_stages = self.config.effective_wip_stages()
        items = list(self._state.items())
        return FlowSummary(
            total_items=len(items),
            total_wip=sum(1 for item in items if item.stage_id in wip_stages),
            aging_items=sum(1 for entry in self.aging_report(now) if entry.aging),
            blocked_items=sum(1 for item in items if item.blocked),
            over_limit_stages=tuple(
                status.stage_id for status in self.board_status() if status.exceeded
            ),
        )

    def publish_board_status(self) -> None:
        """Emit BOARD_LOADED with the current item count of every stage.

        Sessions call this after (re)loading so that sinks tracking
        absolute stage counts match storage before the first mutation.
        """
        self._emit(
            EventType.BOARD_LOADED,
            details={
                "stage_counts": {
                    stage_id: self._state.count(stage_id)
                    for stage_id in self.registry.stage_ids()
                },
                "item_count": len(self._state),
            },
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def move_item(
        self,
        item_id: str,
        target_stage_id: str,
        hint: Optional[PositionHint] = None,
    ) -> TransitionResult:
        """Move an item to a stage and position.

        A stage change resets the item's aging clock; a reorder within the
        same stage keeps it. WIP limits are checked only for stage changes.

        Args:
            item_id: The item being dragged.
            target_stage_id: The stage it was dropped in.
            hint: Where in the stage it was dropped. Defaults to the end.

        Returns:
            TransitionResult with the new snapshot, or the rejection.
        """
        decision = validate(
            self._state,
            self.registry,
            item_id,
            target_stage_id,
            hint,
            self.config.rank_spacing,
        )
        if isinstance(decision, Reject):
            return self._reject(decision)

        current = self._state.get(item_id)
        from_stage = current.stage_id
        stage_changed = from_stage != target_stage_id

        update = {"stage_id": target_stage_id, "rank": decision.rank}
        if stage_changed:
            update["entered_stage_at"] = self._now()
        moved = current.model_copy(update=update)

        self._state.remove(item_id)
        self._state.insert(moved)
        self._state.revision += 1

        if stage_changed:
            logger.info(
                "Moved work item",
                extra={
                    "board_id": self.board_id,
                    "item_id": item_id,
                    "from_stage": from_stage,
                    "to_stage": target_stage_id,
                    "revision": self._state.revision,
                },
            )
            self._emit(
                EventType.ITEM_MOVED,
                item_id=item_id,
                stage_id=target_stage_id,
                details={
                    "from_stage": from_stage,
                    "to_stage": target_stage_id,
                    "rank": decision.rank,
                    "stage_count": self._state.count(target_stage_id),
                    "from_stage_count": self._state.count(from_stage),
                },
            )
        else:
            self._emit(
                EventType.ITEM_REORDERED,
                item_id=item_id,
                stage_id=target_stage_id,
                details={
                    "rank": decision.rank,
                    "stage_count": self._state.count(target_stage_id),
                },
            )

        return TransitionResult.ok(self._state.snapshot(), changed=[moved])

    def add_item(
        self,
        init: WorkItemInit,
        hint: Optional[PositionHint] = None,
    ) -> TransitionResult:
        """Place a brand-new item on the board.

        Args:
            init: The item to place; its stage_id is the target stage.
            hint: Position within the stage. Defaults to the end.

        Returns:
            TransitionResult with the new snapshot, or the rejection.
        """
        decision = validate_insert(
            self._state,
            self.registry,
            init.id,
            init.stage_id,
            hint,
            self.config.rank_spacing,
        )
        if isinstance(decision, Reject):
            return self._reject(decision)

        item = init.to_work_item(decision.rank, self._now())
        self._state.insert(item)
        self._state.revision += 1

        logger.info(
            "Added work item",
            extra={
                "board_id": self.board_id,
                "item_id": item.id,
                "stage_id": item.stage_id,
                "revision": self._state.revision,
            },
        )
        self._emit(
            EventType.ITEM_ADDED,
            item_id=item.id,
            stage_id=item.stage_id,
            details={
                "rank": item.rank,
                "stage_count": self._state.count(item.stage_id),
            },
        )

        return TransitionResult.ok(self._state.snapshot(), changed=[item])

    def remove_item(self, item_id: str) -> None:
        """Remove an item from whichever stage holds it.

        Removing an id that is not on the board is a no-op, so retried
        client requests are harmless.
        """
        removed = self._state.remove(item_id)
        if removed is None:
            logger.debug(
                "Ignoring removal of unknown work item",
                extra={"board_id": self.board_id, "item_id": item_id},
            )
            return

        self._state.revision += 1
        logger.info(
            "Removed work item",
            extra={
                "board_id": self.board_id,
                "item_id": item_id,
                "stage_id": removed.stage_id,
                "revision": self._state.revision,
            },
        )
        self._emit(
            EventType.ITEM_REMOVED,
            item_id=item_id,
            stage_id=removed.stage_id,
            details={"stage_count": self._state.count(removed.stage_id)},
        )

    def renormalize_stage(self, stage_id: str) -> TransitionResult:
        """Reassign evenly spaced ranks to every item of a stage.

        This is the remedy for RANK_COLLISION. It preserves the existing
        order, never changes stage membership or aging clocks, and is
        always accepted for a configured stage.

        Returns:
            TransitionResult whose changed items are the whole stage, or
            an UNKNOWN_STAGE rejection.
        """
        if stage_id not in self.registry:
            return self._reject(
                Reject(
                    reason=RejectReason.UNKNOWN_STAGE,
                    item_id="",
                    stage_id=stage_id,
                    message=f"Stage {stage_id} is not part of this board",
                )
            )

        renormalized = renormalize_ranks(
            self._state.items_in(stage_id), self.config.rank_spacing
        )
        self._state.replace_stage(stage_id, renormalized)
        self._state.revision += 1

        logger.info(
            "Renormalized stage ranks",
            extra={
                "board_id": self.board_id,
                "stage_id": stage_id,
                "item_count": len(renormalized),
                "revision": self._state.revision,
            },
        )
        self._emit(
            EventType.STAGE_RENORMALIZED,
            stage_id=stage_id,
            details={
                "item_count": len(renormalized),
                "stage_count": len(renormalized),
            },
        )

        return TransitionResult.ok(self._state.snapshot(), changed=renormalized)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _now(self) -> datetime:
        return ensure_utc(self._clock())

    def _reject(self, rejection: Reject) -> TransitionResult:
        details = {
            "reason": rejection.reason.value,
            "detail": rejection.message,
        }
        if rejection.count is not None:
            details["count"] = rejection.count
        if rejection.limit is not None:
            details["limit"] = rejection.limit

        self._emit(
            EventType.TRANSITION_REJECTED,
            item_id=rejection.item_id or None,
            stage_id=rejection.stage_id,
            details=details,
        )
        return TransitionResult.rejected(rejection)

    def _emit(
        self,
        event_type: EventType,
        item_id: Optional[str] = None,
        stage_id: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        """Emit an event, swallowing exceptions so state is never affected."""
        try:
            self._emitter.emit(
                FlowEvent(
                    event_type=event_type,
                    board_id=self.board_id,
                    item_id=item_id,
                    stage_id=stage_id,
                    revision=self._state.revision,
                    timestamp=self._now(),
                    details=details or {},
                )
            )
        except Exception:
            logger.exception(
                "Failed to emit flow event",
                extra={
                    "event_type": event_type.value,
                    "board_id": self.board_id,
                },
            )
