"""Board stage configuration.

Stages are the ordered steps of the delivery pipeline, each with an
optional WIP ceiling. They are configured once per board session.
"""

from src.flowboard.stages.models import (
    DEFAULT_AGING_THRESHOLD,
    DEFAULT_RANK_SPACING,
    DEFAULT_STAGES,
    BoardConfig,
    Stage,
)
from src.flowboard.stages.registry import StageRegistry

__all__ = [
    "DEFAULT_AGING_THRESHOLD",
    "DEFAULT_RANK_SPACING",
    "DEFAULT_STAGES",
    "BoardConfig",
    "Stage",
    "StageRegistry",
]
