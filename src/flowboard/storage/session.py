"""Board session: engine plus storage with retry-on-conflict.

A BoardSession owns one FlowEngine for a board and keeps it in step with
the task storage collaborator:

1. open() loads the board's rows, maps statuses to stages, and builds a
   fresh engine at the stored version
2. move()/add()/remove() apply the intent to the engine, then commit the
   changed rows with the loaded version
3. If storage reports a concurrent write, the local snapshot is discarded,
   the board is reloaded, and the intent is replayed against the fresh
   state (bounded by max_conflict_retries). The board is reloaded even
   when the budget is exhausted, so the engine never keeps an unsaved
   change

When auto_renormalize is enabled, a RANK_COLLISION on an end, start or
sibling hint triggers one renormalization of the target stage followed
by a single retry. Explicit rank hints are never retried: their rank is
meaningless once the stage has been re-ranked.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from src.flowboard.config import FlowSettings
from src.flowboard.engine import Clock, FlowEngine, TransitionResult, utc_now
from src.flowboard.events.emitter import EventEmitter, EventSinkType, create_event_emitter
from src.flowboard.exceptions import VersionConflictError
from src.flowboard.stages.models import BoardConfig
from src.flowboard.state.models import BoardSnapshot, WorkItem, WorkItemInit
from src.flowboard.storage.mapping import StatusMapping, TaskRecord, load_items
from src.flowboard.storage.repository import BoardRepository
from src.flowboard.transitions.models import HintKind, PositionHint, RejectReason


logger = logging.getLogger(__name__)


Intent = Callable[[FlowEngine], TransitionResult]


class BoardSession:
    """One board session backed by a BoardRepository.

    Attributes:
        board_id: The board identifier.
        config: Board configuration.
        version: Storage version the local engine was built from.

    Example:
        >>> session = BoardSession(repository, "project-1", BoardConfig.default())
        >>> await session.open()
        >>> result = await session.move("task-4", "review")
        >>> result.accepted
        True
    """

    def __init__(
        self,
        repository: BoardRepository,
        board_id: str,
        config: BoardConfig,
        mapping: Optional[StatusMapping] = None,
        emitter: Optional[EventEmitter] = None,
        clock: Optional[Clock] = None,
        settings: Optional[FlowSettings] = None,
    ):
        settings = settings or FlowSettings()
        self.repository = repository
        self.board_id = board_id
        self.config = config
        self.mapping = mapping or StatusMapping(stage.id for stage in config.stages)
        self.max_conflict_retries = settings.max_conflict_retries
        self.auto_renormalize = settings.auto_renormalize
        self.version = 0
        self._emitter = emitter or create_event_emitter(
            [EventSinkType(sink) for sink in settings.event_sinks]
        )
        self._clock = clock or utc_now
        self._engine: Optional[FlowEngine] = None

    @property
    def engine(self) -> FlowEngine:
        """The engine for the current snapshot.

        Raises:
            RuntimeError: If the session has not been opened.
        """
        if self._engine is None:
            raise RuntimeError(f"Board session {self.board_id} is not open")
        return self._engine

    async def open(self) -> BoardSnapshot:
        """Load the board from storage and build a fresh engine.

        Returns:
            The snapshot of the loaded board.
        """
        stored = await self.repository.load(self.board_id)
        items = load_items(
            stored.records,
            self.mapping,
            spacing=self.config.rank_spacing,
            now=self._clock(),
        )
        self._engine = FlowEngine(
            self.config,
            items,
            board_id=self.board_id,
            emitter=self._emitter,
            clock=self._clock,
        )
        self.version = stored.version
        self._engine.publish_board_status()

        logger.info(
            "Opened board session",
            extra={
                "board_id": self.board_id,
                "version": stored.version,
                "item_count": len(items),
            },
        )
        return self._engine.snapshot()

    async def close(self) -> None:
        """Drop the engine and close the session's event emitter."""
        self._engine = None
        self._emitter.close()
        logger.info("Closed board session", extra={"board_id": self.board_id})

    async def move(
        self,
        item_id: str,
        target_stage_id: str,
        hint: Optional[PositionHint] = None,
    ) -> TransitionResult:
        """Move an item and persist the change."""
        return await self._apply(
            lambda engine: engine.move_item(item_id, target_stage_id, hint), hint
        )

    async def add(
        self,
        init: WorkItemInit,
        hint: Optional[PositionHint] = None,
    ) -> TransitionResult:
        """Add an item and persist it."""
        return await self._apply(lambda engine: engine.add_item(init, hint), hint)

    async def remove(self, item_id: str) -> None:
        """Remove an item and delete its row.

        Removing an item that is not on the board is a no-op.

        Raises:
            VersionConflictError: If the retry budget is exhausted.
        """
        attempts = 0
        while True:
            if self.engine.get_item(item_id) is None:
                return
            self.engine.remove_item(item_id)
            if await self._commit([], [item_id]):
                return
            attempts = await self._recover_from_conflict(attempts)

    async def _apply(
        self, intent: Intent, hint: Optional[PositionHint] = None
    ) -> TransitionResult:
        """Run an intent, persist its changes, replay on conflicts.

        Raises:
            VersionConflictError: If the retry budget is exhausted.
        """
        attempts = 0
        while True:
            result, changed = self._run(intent, hint)
            if not changed:
                return result
            if await self._commit(changed, []):
                return result
            attempts = await self._recover_from_conflict(attempts)

    def _run(
        self, intent: Intent, hint: Optional[PositionHint] = None
    ) -> Tuple[TransitionResult, List[WorkItem]]:
        """Run an intent against the local engine.

        Returns:
            The result, and every item that must be persisted (including
            items re-ranked by an automatic renormalization).
        """
        result = intent(self.engine)
        if result.accepted:
            return result, list(result.changed)

        collided = result.reason == RejectReason.RANK_COLLISION
        explicit_rank = hint is not None and hint.kind == HintKind.RANK
        if not (self.auto_renormalize and collided) or explicit_rank:
            return result, []

        stage_id = result.rejection.stage_id
        logger.info(
            "Renormalizing stage after rank collision",
            extra={"board_id": self.board_id, "stage_id": stage_id},
        )
        renormalized = self.engine.renormalize_stage(stage_id)
        retried = intent(self.engine)

        changed: Dict[str, WorkItem] = {
            item.id: item for item in renormalized.changed
        }
        for item in retried.changed:
            changed[item.id] = item
        return retried, list(changed.values())

    async def _commit(
        self, changed: Sequence[WorkItem], deletions: Sequence[str]
    ) -> bool:
        now: datetime = self._clock()
        upserts = [TaskRecord.from_work_item(item, updated_at=now) for item in changed]
        committed = await self.repository.commit(
            self.board_id,
            upserts,
            deletions,
            self.version,
        )
        if committed:
            self.version += 1
        return committed

    async def _recover_from_conflict(self, attempts: int) -> int:
        """Discard the local snapshot and reload after a conflict.

        The reload happens before the budget check, so a session that gives
        up still mirrors storage rather than its own unsaved change.

        Returns:
            The updated attempt count.

        Raises:
            VersionConflictError: If the retry budget is exhausted.
        """
        attempts += 1
        expected_version = self.version
        logger.warning(
            "Version conflict, reloading board",
            extra={
                "board_id": self.board_id,
                "expected_version": expected_version,
                "attempt": attempts,
            },
        )
        await self.open()
        if attempts > self.max_conflict_retries:
            raise VersionConflictError(self.board_id, expected_version, attempts)
        return attempts
