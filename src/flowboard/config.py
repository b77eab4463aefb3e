"""Flow engine configuration using pydantic-settings.

This module defines the FlowSettings class that reads process-level
defaults from environment variables with the FLOWBOARD_ prefix. Board
specific configuration (stages, WIP limits, aging exclusions) lives in
src/flowboard/stages/models.py (BoardConfig) and is supplied per board.

Settings:
- aging_threshold_hours: Default staleness threshold for boards that do
  not configure one
- rank_spacing: Gap between neighbouring ranks after renormalization
- max_conflict_retries: How many times a session replays an intent after
  a storage version conflict
- auto_renormalize: Whether sessions renormalize a stage and retry once
  on rank collisions
- event_sinks: Event sinks to enable (logging, metrics)
- log_level: Level applied by configure_logging()
"""

import logging
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlowSettings(BaseSettings):
    """Flow engine configuration from environment variables.

    All environment variables are prefixed with FLOWBOARD_ (e.g.,
    FLOWBOARD_RANK_SPACING). Every field has a default, so the engine
    starts without any environment configured.
    """

    model_config = SettingsConfigDict(
        env_prefix="FLOWBOARD_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Aging
    # -------------------------------------------------------------------------
    # Items older than this in a non-excluded stage are reported as aging
    aging_threshold_hours: float = 72.0

    # -------------------------------------------------------------------------
    # Ranking
    # -------------------------------------------------------------------------
    # Distance between ranks assigned at the ends of a stage and on
    # renormalization
    rank_spacing: float = 1000.0

    # -------------------------------------------------------------------------
    # Storage session
    # -------------------------------------------------------------------------
    max_conflict_retries: int = 3

    auto_renormalize: bool = True

    # -------------------------------------------------------------------------
    # Observability
    # -------------------------------------------------------------------------
    event_sinks: List[str] = ["logging"]

    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("aging_threshold_hours")
    @classmethod
    def validate_aging_threshold(cls, v: float) -> float:
        """Validate that the aging threshold is positive."""
        if v <= 0:
            raise ValueError("aging_threshold_hours must be positive")
        return v

    @field_validator("rank_spacing")
    @classmethod
    def validate_rank_spacing(cls, v: float) -> float:
        """Validate that rank spacing is positive."""
        if v <= 0:
            raise ValueError("rank_spacing must be positive")
        return v

    @field_validator("max_conflict_retries")
    @classmethod
    def validate_max_conflict_retries(cls, v: int) -> int:
        """Validate that the retry budget is not negative."""
        if v < 0:
            raise ValueError("max_conflict_retries cannot be negative")
        return v

    @field_validator("event_sinks")
    @classmethod
    def validate_event_sinks(cls, v: List[str]) -> List[str]:
        """Validate that every configured sink is a known sink type."""
        allowed = {"logging", "metrics"}
        normalized = [sink.strip().lower() for sink in v if sink.strip()]
        unknown = [sink for sink in normalized if sink not in allowed]
        if unknown:
            raise ValueError(f"Unknown event sinks: {', '.join(unknown)}")
        return normalized

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that the log level is a standard logging level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level


def get_settings() -> FlowSettings:
    """Create and return a FlowSettings instance.

    Returns:
        FlowSettings: Settings read from the environment.

    Raises:
        pydantic.ValidationError: If a configured value is invalid.
    """
    return FlowSettings()


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Optional[FlowSettings] = None) -> FlowSettings:
    """Configure root logging from settings and log the effective values.

    Intended for process entry points; library code only uses module
    loggers.

    Returns:
        The settings that were applied.
    """
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    logging.getLogger("src.flowboard").setLevel(settings.log_level)

    logger = logging.getLogger(__name__)
    logger.info("Flowboard configuration:")
    logger.info(f"  Aging Threshold Hours: {settings.aging_threshold_hours}")
    logger.info(f"  Rank Spacing: {settings.rank_spacing}")
    logger.info(f"  Max Conflict Retries: {settings.max_conflict_retries}")
    logger.info(f"  Auto Renormalize: {settings.auto_renormalize}")
    logger.info(f"  Event Sinks: {', '.join(settings.event_sinks)}")
    return settings
