"""Stage and board configuration models.

This module defines the static description of a delivery board:
- Stage: One ordered step of the pipeline with an optional WIP ceiling
- BoardConfig: The full board configuration supplied at session start
  (stages, aging threshold, stages excluded from aging, WIP stages,
  rank spacing)

Stages are configured once per board and never mutate at runtime. The
models use Pydantic for validation and are frozen.
"""

from datetime import timedelta
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.flowboard.config import FlowSettings


class Stage(BaseModel):
    """One step of the delivery pipeline.

    There is no topology between stages: an item may move from any stage
    to any other stage. Display order only defines how the pipeline is
    presented (left to right) and the order of reports.

    Attributes:
        id: Stable stage identifier (e.g., "ready").
        display_order: Position of the stage in the pipeline.
        wip_limit: Maximum concurrent items, or None for unbounded.
        title: Human-readable label.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Stable stage identifier",
    )

    display_order: int = Field(
        ...,
        description="Position of the stage in the pipeline (unique per board)",
    )

    wip_limit: Optional[int] = Field(
        default=None,
        gt=0,
        description="Maximum concurrent items in the stage; None means unbounded",
    )

    title: str = Field(
        default="",
        description="Human-readable stage label",
    )

    @model_validator(mode="before")
    @classmethod
    def default_title(cls, data: Any) -> Any:
        """Use a title derived from the id when none is given."""
        if isinstance(data, dict) and not data.get("title") and data.get("id"):
            data = {**data, "title": str(data["id"]).replace("_", " ").title()}
        return data

    @property
    def bounded(self) -> bool:
        """Whether the stage has a finite WIP limit."""
        return self.wip_limit is not None


# Delivery Flow board as configured by the product
DEFAULT_STAGES: Tuple[Tuple[str, Optional[int]], ...] = (
    ("ready", 10),
    ("in_progress", 3),
    ("review", 3),
    ("released", 10),
    ("measuring", 3),
)

DEFAULT_AGING_THRESHOLD = timedelta(days=3)
DEFAULT_RANK_SPACING = 1000.0


class BoardConfig(BaseModel):
    """Configuration for one board session.

    Supplied by the board configuration collaborator when a session
    starts and treated as immutable for the lifetime of the session.

    Attributes:
        stages: The pipeline stages. Ids and display orders must be unique.
        aging_threshold: Items older than this in a non-excluded stage age.
        aging_excluded_stages: Stages where items may legitimately wait.
        wip_stages: Stages counted as active work in flow summaries. When
            empty, every bounded stage outside the aging exclusions counts.
        rank_spacing: Gap between ranks at the stage ends and after
            renormalization.
    """

    model_config = ConfigDict(frozen=True)

    stages: Tuple[Stage, ...] = Field(
        ...,
        min_length=1,
        description="Pipeline stages",
    )

    aging_threshold: timedelta = Field(
        default=DEFAULT_AGING_THRESHOLD,
        description="Staleness threshold for items in non-excluded stages",
    )

    aging_excluded_stages: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="Stages whose items never age",
    )

    wip_stages: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="Stages counted as work in progress in flow summaries",
    )

    rank_spacing: float = Field(
        default=DEFAULT_RANK_SPACING,
        gt=0,
        description="Gap between neighbouring ranks on append and renormalization",
    )

    @field_validator("aging_threshold")
    @classmethod
    def validate_aging_threshold(cls, v: timedelta) -> timedelta:
        """Validate that the aging threshold is not negative."""
        if v < timedelta(0):
            raise ValueError("aging_threshold cannot be negative")
        return v

    @model_validator(mode="after")
    def validate_stages(self) -> "BoardConfig":
        """Validate stage uniqueness and stage references."""
        ids = [stage.id for stage in self.stages]
        duplicate_ids = sorted({i for i in ids if ids.count(i) > 1})
        if duplicate_ids:
            raise ValueError(f"Duplicate stage ids: {', '.join(duplicate_ids)}")

        orders = [stage.display_order for stage in self.stages]
        if len(set(orders)) != len(orders):
            raise ValueError("Stage display_order values must be unique")

        known = set(ids)
        for field_name in ("aging_excluded_stages", "wip_stages"):
            unknown = sorted(set(getattr(self, field_name)) - known)
            if unknown:
                raise ValueError(
                    f"{field_name} references unknown stages: {', '.join(unknown)}"
                )
        return self

    @classmethod
    def default(cls) -> "BoardConfig":
        """Return the product's Delivery Flow board configuration.

        Stages ready(10), in_progress(3), review(3), released(10) and
        measuring(3); a three day aging threshold with "ready" excluded;
        in_progress and review counted as active work.
        """
        return cls(
            stages=tuple(
                Stage(id=stage_id, display_order=index, wip_limit=limit)
                for index, (stage_id, limit) in enumerate(DEFAULT_STAGES)
            ),
            aging_threshold=DEFAULT_AGING_THRESHOLD,
            aging_excluded_stages=frozenset({"ready"}),
            wip_stages=frozenset({"in_progress", "review"}),
        )

    @classmethod
    def from_mapping(
        cls,
        data: Mapping[str, Any],
        settings: Optional[FlowSettings] = None,
    ) -> "BoardConfig":
        """Build a configuration from a plain mapping.

        Accepts the shape produced by the project configuration store:
        ``{"stages": [{"id": ..., "wip_limit": ...}, ...],
        "aging_threshold_hours": 72, "aging_excluded_stages": [...]}``.
        Stages without an explicit display_order take their list position.
        The aging threshold and rank spacing fall back to the process
        settings when the mapping omits them.

        Args:
            data: The raw configuration mapping.
            settings: Process-level defaults.

        Returns:
            The validated board configuration.

        Raises:
            pydantic.ValidationError: If the configuration is invalid.
        """
        raw_stages: List[Dict[str, Any]] = []
        for index, raw in enumerate(data.get("stages", [])):
            stage = dict(raw)
            stage.setdefault("display_order", index)
            raw_stages.append(stage)

        values: Dict[str, Any] = {"stages": raw_stages}
        if "aging_threshold_hours" in data:
            values["aging_threshold"] = timedelta(
                hours=float(data["aging_threshold_hours"])
            )
        elif "aging_threshold" in data:
            values["aging_threshold"] = data["aging_threshold"]
        elif settings is not None:
            values["aging_threshold"] = timedelta(hours=settings.aging_threshold_hours)
        if settings is not None:
            values["rank_spacing"] = settings.rank_spacing
        for key in ("aging_excluded_stages", "wip_stages", "rank_spacing"):
            if key in data:
                values[key] = data[key]
        return cls.model_validate(values)

    def effective_wip_stages(self) -> FrozenSet[str]:
        """Stages counted as active work in flow summaries."""
        if self.wip_stages:
            return self.wip_stages
        return frozenset(
            stage.id
            for stage in self.stages
            if stage.bounded and stage.id not in self.aging_excluded_stages
        )
