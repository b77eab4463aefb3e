"""Task storage boundary.

The engine never performs I/O. This package maps stored task rows to
work items, defines the repository protocol with optimistic locking, and
provides BoardSession, which persists engine changes and replays intents
after concurrent writes.
"""

from src.flowboard.storage.mapping import StatusMapping, TaskRecord, load_items
from src.flowboard.storage.repository import (
    BoardRepository,
    InMemoryBoardRepository,
    StoredBoard,
)
from src.flowboard.storage.session import BoardSession

__all__ = [
    # Mapping
    "StatusMapping",
    "TaskRecord",
    "load_items",
    # Repository
    "BoardRepository",
    "InMemoryBoardRepository",
    "StoredBoard",
    # Session
    "BoardSession",
]
