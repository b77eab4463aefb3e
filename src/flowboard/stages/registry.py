"""Stage registry: the ordered, immutable pipeline of a board.

The registry answers two questions for the validator and the engine:
which stages exist (in pipeline order) and what each stage's WIP ceiling
is. It has no mutation surface; configuration is supplied once at
construction from a BoardConfig.
"""

from typing import Dict, Iterable, Optional, Tuple

from src.flowboard.exceptions import UnknownStageError
from src.flowboard.stages.models import BoardConfig, Stage


class StageRegistry:
    """Ordered pipeline stages with per-stage WIP limits.

    Example:
        >>> registry = StageRegistry.from_config(BoardConfig.default())
        >>> [stage.id for stage in registry.stages()][:2]
        ['ready', 'in_progress']
        >>> registry.wip_limit_of("in_progress")
        3
    """

    def __init__(self, stages: Iterable[Stage]):
        """Initialize the registry.

        Args:
            stages: The configured stages, in any order. They are sorted by
                display_order.

        Raises:
            ValueError: If stage ids or display orders are not unique, or
                no stages are given.
        """
        ordered = tuple(sorted(stages, key=lambda stage: stage.display_order))
        if not ordered:
            raise ValueError("A board needs at least one stage")

        by_id: Dict[str, Stage] = {}
        for stage in ordered:
            if stage.id in by_id:
                raise ValueError(f"Duplicate stage id: {stage.id}")
            by_id[stage.id] = stage
        if len({stage.display_order for stage in ordered}) != len(ordered):
            raise ValueError("Stage display_order values must be unique")

        self._stages = ordered
        self._by_id = by_id

    @classmethod
    def from_config(cls, config: BoardConfig) -> "StageRegistry":
        """Build a registry from a board configuration."""
        return cls(config.stages)

    def stages(self) -> Tuple[Stage, ...]:
        """Return the full pipeline in display order."""
        return self._stages

    def stage_ids(self) -> Tuple[str, ...]:
        """Return stage ids in display order."""
        return tuple(stage.id for stage in self._stages)

    def contains(self, stage_id: str) -> bool:
        return stage_id in self._by_id

    def __contains__(self, stage_id: object) -> bool:
        return stage_id in self._by_id

    def __len__(self) -> int:
        return len(self._stages)

    def get(self, stage_id: str) -> Stage:
        """Return the stage with the given id.

        Raises:
            UnknownStageError: If the stage is not configured.
        """
        try:
            return self._by_id[stage_id]
        except KeyError:
            raise UnknownStageError(stage_id) from None

    def wip_limit_of(self, stage_id: str) -> Optional[int]:
        """Return the WIP limit of a stage, or None when unbounded.

        Raises:
            UnknownStageError: If the stage is not configured.
        """
        return self.get(stage_id).wip_limit

    def position_of(self, stage_id: str) -> int:
        """Return the zero-based pipeline position of a stage.

        Raises:
            UnknownStageError: If the stage is not configured.
        """
        stage = self.get(stage_id)
        return self._stages.index(stage)
