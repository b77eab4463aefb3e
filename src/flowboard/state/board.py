"""In-memory aggregate of all work items on one board.

FlowState groups items by stage and keeps each stage's sequence ordered
by (rank, id). It is owned by exactly one FlowEngine for the lifetime of
a board session; nothing else writes to it.

Invariants maintained here:
- Every item appears in exactly one stage sequence
- Each stage sequence is sorted by (rank, id)

WIP ceilings are enforced by the validator before the engine mutates
the aggregate, not by FlowState itself, so that over-limit boards loaded
from storage remain readable.
"""

import bisect
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from src.flowboard.exceptions import UnknownStageError
from src.flowboard.state.models import BoardSnapshot, WorkItem


class FlowState:
    """Items of one board, grouped by stage and ordered by rank.

    Attributes:
        revision: Number of accepted mutations, bumped by the engine.
    """

    def __init__(self, stage_ids: Iterable[str], items: Iterable[WorkItem] = ()):
        """Initialize the aggregate.

        Args:
            stage_ids: Configured stage ids in pipeline order.
            items: Initial items, typically loaded from storage.

        Raises:
            UnknownStageError: If an item references an unconfigured stage.
            ValueError: If two items share an id.
        """
        self._stage_ids: Tuple[str, ...] = tuple(stage_ids)
        self._sequences: Dict[str, List[WorkItem]] = {
            stage_id: [] for stage_id in self._stage_ids
        }
        self._locations: Dict[str, str] = {}
        self.revision = 0
        for item in items:
            self.insert(item)

    @property
    def stage_ids(self) -> Tuple[str, ...]:
        return self._stage_ids

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._locations

    def __len__(self) -> int:
        return len(self._locations)

    def get(self, item_id: str) -> Optional[WorkItem]:
        """Return the item with the given id, or None."""
        stage_id = self._locations.get(item_id)
        if stage_id is None:
            return None
        for item in self._sequences[stage_id]:
            if item.id == item_id:
                return item
        return None

    def items_in(self, stage_id: str) -> Tuple[WorkItem, ...]:
        """Return the ordered items of a stage.

        Raises:
            UnknownStageError: If the stage is not configured.
        """
        return tuple(self._sequence(stage_id))

    def count(self, stage_id: str) -> int:
        """Return the number of items in a stage.

        Raises:
            UnknownStageError: If the stage is not configured.
        """
        return len(self._sequence(stage_id))

    def items(self) -> Iterator[WorkItem]:
        """Iterate over all items in pipeline order, then rank order."""
        for stage_id in self._stage_ids:
            yield from self._sequences[stage_id]

    def insert(self, item: WorkItem) -> None:
        """Insert an item at its rank position in its stage.

        Raises:
            UnknownStageError: If the item's stage is not configured.
            ValueError: If an item with the same id is already present.
        """
        if item.id in self._locations:
            raise ValueError(f"Duplicate work item id: {item.id}")
        sequence = self._sequence(item.stage_id)
        bisect.insort(sequence, item, key=lambda entry: entry.sort_key)
        self._locations[item.id] = item.stage_id

    def remove(self, item_id: str) -> Optional[WorkItem]:
        """Remove an item from whichever stage holds it.

        Returns:
            The removed item, or None if it was not present.
        """
        stage_id = self._locations.pop(item_id, None)
        if stage_id is None:
            return None
        sequence = self._sequences[stage_id]
        for index, item in enumerate(sequence):
            if item.id == item_id:
                return sequence.pop(index)
        return None

    def replace_stage(self, stage_id: str, items: Iterable[WorkItem]) -> None:
        """Replace the whole sequence of a stage.

        Used for renormalization, where every item of the stage receives a
        new rank. The replacement must hold exactly the same item ids.

        Raises:
            UnknownStageError: If the stage is not configured.
            ValueError: If the replacement changes stage membership.
        """
        current = self._sequence(stage_id)
        replacement = sorted(items, key=lambda entry: entry.sort_key)
        if {item.id for item in replacement} != {item.id for item in current}:
            raise ValueError(f"Replacement changes membership of stage {stage_id}")
        if any(item.stage_id != stage_id for item in replacement):
            raise ValueError(f"Replacement items must stay in stage {stage_id}")
        self._sequences[stage_id] = replacement

    def snapshot(self) -> BoardSnapshot:
        """Return an immutable copy of the current board."""
        return BoardSnapshot(
            revision=self.revision,
            stage_ids=self._stage_ids,
            items_by_stage={
                stage_id: tuple(self._sequences[stage_id])
                for stage_id in self._stage_ids
            },
        )

    def _sequence(self, stage_id: str) -> List[WorkItem]:
        try:
            return self._sequences[stage_id]
        except KeyError:
            raise UnknownStageError(stage_id) from None
