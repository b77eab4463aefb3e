"""Flow engine exception types.

Transition outcomes (WIP limit exceeded, missing item, rank collision) are
returned as values by the validator and engine. The exceptions below cover
configuration errors, queries against unknown stages, and the storage
boundary.
"""

from typing import Optional


class FlowError(Exception):
    """Base class for flow engine errors."""


class UnknownStageError(FlowError, KeyError):
    """Raised when a stage id is not part of the configured pipeline.

    Attributes:
        stage_id: The stage id that was not found.
    """

    def __init__(self, stage_id: str):
        self.stage_id = stage_id
        self.message = f"Unknown stage: {stage_id}"
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class UnmappedStatusError(FlowError):
    """Raised when a stored task status has no configured stage.

    Attributes:
        status: The stored status value.
        item_id: The id of the record carrying the status, if known.
    """

    def __init__(self, status: str, item_id: Optional[str] = None):
        self.status = status
        self.item_id = item_id
        message = f"No stage mapped for status '{status}'"
        if item_id is not None:
            message += f" (item {item_id})"
        super().__init__(message)


class VersionConflictError(FlowError):
    """Raised when storage reports a concurrent write to a board.

    Attributes:
        board_id: The board with the conflict.
        expected_version: The version the commit was based on.
        attempts: How many commits were attempted before giving up.
    """

    def __init__(self, board_id: str, expected_version: int, attempts: int = 1):
        self.board_id = board_id
        self.expected_version = expected_version
        self.attempts = attempts
        super().__init__(
            f"Version conflict for board {board_id}: expected {expected_version} "
            f"after {attempts} attempt(s)"
        )
