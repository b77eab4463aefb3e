"""Mapping between stored task records and board work items.

The task storage collaborator keeps a status column on each task row.
Boards have historically mixed several status vocabularies (todo/done
alongside ready/released/measuring); the engine itself only knows the
board's configured stage ids. StatusMapping is the single place where a
stored status is translated to a stage id:

- Every configured stage id maps to itself
- Any additional vocabulary must be supplied explicitly as aliases
- An unmapped status is an error; no vocabulary is guessed
"""

from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.flowboard.exceptions import UnknownStageError, UnmappedStatusError
from src.flowboard.stages.models import DEFAULT_RANK_SPACING
from src.flowboard.state.models import WorkItem, ensure_utc


class TaskRecord(BaseModel):
    """A task row as stored by the task storage collaborator.

    Timestamps arrive as ISO-8601 strings or datetimes and are parsed by
    Pydantic. The rank and entered_stage_at columns may be missing on rows
    created before the board tracked them.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    status: str = Field(..., min_length=1)
    rank: Optional[float] = Field(default=None, allow_inf_nan=False)
    entered_stage_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    blocked: bool = False
    blocked_reason: Optional[str] = None
    title: str = ""
    priority: Optional[str] = None
    assignee: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    phase_id: Optional[str] = None

    @field_validator("entered_stage_at", "created_at", "updated_at")
    @classmethod
    def validate_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None

    @classmethod
    def from_work_item(
        cls, item: WorkItem, updated_at: Optional[datetime] = None
    ) -> "TaskRecord":
        """Build the row to persist for an item.

        The canonical stage id is written as the status.
        """
        return cls(
            id=item.id,
            status=item.stage_id,
            rank=item.rank,
            entered_stage_at=item.entered_stage_at,
            created_at=item.created_at,
            updated_at=updated_at,
            blocked=item.blocked,
            blocked_reason=item.blocked_reason,
            title=item.title,
            priority=item.priority,
            assignee=item.assignee,
            tags=list(item.tags),
            phase_id=item.phase_id,
        )


class StatusMapping:
    """Explicit translation from stored statuses to stage ids.

    Example:
        >>> mapping = StatusMapping(["ready", "in_progress"], aliases={"todo": "ready"})
        >>> mapping.stage_for("todo")
        'ready'
        >>> mapping.stage_for("done")
        Traceback (most recent call last):
        ...
        UnmappedStatusError: No stage mapped for status 'done'
    """

    def __init__(
        self,
        stage_ids: Iterable[str],
        aliases: Optional[Mapping[str, str]] = None,
    ):
        """Initialize the mapping.

        Args:
            stage_ids: The board's configured stage ids.
            aliases: Additional stored statuses and the stage each maps to.

        Raises:
            UnknownStageError: If an alias targets an unconfigured stage.
        """
        self._stage_ids = tuple(stage_ids)
        self._table: Dict[str, str] = {
            stage_id: stage_id for stage_id in self._stage_ids
        }
        for status, stage_id in (aliases or {}).items():
            if stage_id not in self._table:
                raise UnknownStageError(stage_id)
            self._table[status] = stage_id

    def stage_for(self, status: str, item_id: Optional[str] = None) -> str:
        """Return the stage id for a stored status.

        Raises:
            UnmappedStatusError: If the status has no configured stage.
        """
        try:
            return self._table[status]
        except KeyError:
            raise UnmappedStatusError(status, item_id) from None

    def status_for(self, stage_id: str) -> str:
        """Return the status written back to storage for a stage."""
        if stage_id not in self._stage_ids:
            raise UnknownStageError(stage_id)
        return stage_id


def load_items(
    records: Sequence[Union[TaskRecord, Mapping]],
    mapping: StatusMapping,
    spacing: float = DEFAULT_RANK_SPACING,
    now: Optional[datetime] = None,
) -> List[WorkItem]:
    """Convert stored task rows into work items.

    Rows without a rank are appended after the highest rank of their
    stage, in record order. Rows without entered_stage_at fall back to
    updated_at, then created_at, then ``now``.

    Raises:
        UnmappedStatusError: If a row's status has no configured stage.
        pydantic.ValidationError: If a row is malformed.
    """
    parsed = [
        record if isinstance(record, TaskRecord) else TaskRecord.model_validate(record)
        for record in records
    ]

    highest: Dict[str, float] = {}
    for record in parsed:
        if record.rank is not None:
            stage_id = mapping.stage_for(record.status, record.id)
            highest[stage_id] = max(highest.get(stage_id, record.rank), record.rank)

    items: List[WorkItem] = []
    for record in parsed:
        stage_id = mapping.stage_for(record.status, record.id)
        rank = record.rank
        if rank is None:
            rank = highest.get(stage_id, 0.0) + spacing
            highest[stage_id] = rank

        fallback = record.updated_at or record.created_at or now
        entered = record.entered_stage_at or fallback
        created = record.created_at or fallback
        if entered is None or created is None:
            raise ValueError(
                f"Task {record.id} has no timestamps and no default was given"
            )

        items.append(
            WorkItem(
                id=record.id,
                stage_id=stage_id,
                rank=rank,
                entered_stage_at=entered,
                created_at=created,
                blocked=record.blocked,
                blocked_reason=record.blocked_reason,
                title=record.title,
                priority=record.priority,
                assignee=record.assignee,
                tags=tuple(record.tags),
                phase_id=record.phase_id,
            )
        )
    return items
