"""Task storage boundary with optimistic locking.

The engine performs no I/O. Sessions load a board's task rows through a
BoardRepository and commit changed rows back, guarded by a board-level
version marker:

- load() returns the rows together with the current version
- commit() applies upserts and deletions only if the stored version still
  equals the version the caller loaded, then increments it

A False commit means another writer got there first; the caller discards
its snapshot, reloads, and replays its intent (see session.py).
"""

import logging
from typing import Dict, List, Optional, Protocol, Sequence, runtime_checkable

from pydantic import BaseModel, Field

from src.flowboard.storage.mapping import TaskRecord


logger = logging.getLogger(__name__)


class StoredBoard(BaseModel):
    """A board's task rows and version as read from storage.

    Attributes:
        board_id: The board identifier.
        records: Task rows on the board.
        version: Optimistic locking version (0 for a board never written).
    """

    board_id: str = Field(..., min_length=1)

    records: List[TaskRecord] = Field(default_factory=list)

    version: int = Field(default=0, ge=0)


@runtime_checkable
class BoardRepository(Protocol):
    """Protocol defining the interface for board persistence.

    The repository is responsible for:
    - Loading a board's task rows with the current version
    - Committing row changes atomically with optimistic locking
    """

    async def load(self, board_id: str) -> StoredBoard:
        """Load all task rows of a board.

        Args:
            board_id: The board identifier.

        Returns:
            The stored board. Unknown boards load empty at version 0.
        """
        ...

    async def commit(
        self,
        board_id: str,
        upserts: Sequence[TaskRecord],
        deletions: Sequence[str],
        expected_version: int,
    ) -> bool:
        """Write row changes if the board is still at expected_version.

        Args:
            board_id: The board identifier.
            upserts: Rows to insert or replace.
            deletions: Ids of rows to delete (missing ids are ignored).
            expected_version: The version the changes were computed from.

        Returns:
            True if the changes were written, False on version conflict.
        """
        ...


class InMemoryBoardRepository:
    """BoardRepository backed by dicts. For tests and demos."""

    def __init__(self) -> None:
        self._rows: Dict[str, Dict[str, TaskRecord]] = {}
        self._versions: Dict[str, int] = {}

    def seed(
        self, board_id: str, records: Sequence[TaskRecord], version: int = 1
    ) -> None:
        """Replace a board's rows without version checks."""
        self._rows[board_id] = {record.id: record for record in records}
        self._versions[board_id] = version

    def version_of(self, board_id: str) -> int:
        return self._versions.get(board_id, 0)

    def record(self, board_id: str, item_id: str) -> Optional[TaskRecord]:
        return self._rows.get(board_id, {}).get(item_id)

    async def load(self, board_id: str) -> StoredBoard:
        rows = self._rows.get(board_id, {})
        return StoredBoard(
            board_id=board_id,
            records=list(rows.values()),
            version=self.version_of(board_id),
        )

    async def commit(
        self,
        board_id: str,
        upserts: Sequence[TaskRecord],
        deletions: Sequence[str],
        expected_version: int,
    ) -> bool:
        current = self.version_of(board_id)
        if current != expected_version:
            logger.debug(
                "Rejecting stale commit",
                extra={
                    "board_id": board_id,
                    "expected_version": expected_version,
                    "actual_version": current,
                },
            )
            return False

        rows = self._rows.setdefault(board_id, {})
        for record in upserts:
            rows[record.id] = record
        for item_id in deletions:
            rows.pop(item_id, None)
        self._versions[board_id] = current + 1
        return True
