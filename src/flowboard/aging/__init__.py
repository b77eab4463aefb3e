"""Aging (staleness) detection for work items."""

from src.flowboard.aging.classifier import AgingEntry, AgingStatus, age_of, classify

__all__ = [
    "AgingEntry",
    "AgingStatus",
    "age_of",
    "classify",
]
