"""Board state: work items and the per-board aggregate."""

from src.flowboard.state.board import FlowState
from src.flowboard.state.models import BoardSnapshot, WorkItem, WorkItemInit

__all__ = [
    "BoardSnapshot",
    "FlowState",
    "WorkItem",
    "WorkItemInit",
]
