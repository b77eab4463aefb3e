"""Transition validation: WIP guard, rank allocation, renormalization."""

from src.flowboard.transitions.models import (
    Accept,
    Decision,
    HintKind,
    PositionHint,
    Reject,
    RejectReason,
)
from src.flowboard.transitions.validator import (
    check_capacity,
    rank_between,
    renormalize_ranks,
    resolve_rank,
    validate,
    validate_insert,
)

__all__ = [
    # Models
    "Accept",
    "Decision",
    "HintKind",
    "PositionHint",
    "Reject",
    "RejectReason",
    # Validator
    "check_capacity",
    "rank_between",
    "renormalize_ranks",
    "resolve_rank",
    "validate",
    "validate_insert",
]
