"""Unit tests for transition validation and rank allocation."""

import math

import pytest
from pydantic import ValidationError

from src.flowboard.stages import StageRegistry
from src.flowboard.state.board import FlowState
from src.flowboard.transitions import (
    Accept,
    HintKind,
    PositionHint,
    Reject,
    RejectReason,
    rank_between,
    renormalize_ranks,
    validate,
    validate_insert,
)


@pytest.fixture
def registry(board_config):
    return StageRegistry.from_config(board_config)


@pytest.fixture
def state(board_config, make_item):
    """Board with a full in_progress stage and one item in review."""
    return FlowState(
        [stage.id for stage in board_config.stages],
        [
            make_item("task-1", "in_progress", 1000),
            make_item("task-2", "in_progress", 2000),
            make_item("task-3", "in_progress", 3000),
            make_item("task-4", "review", 1000),
            make_item("task-5", "ready", 1000),
            make_item("task-6", "ready", 2000),
        ],
    )


class TestPositionHint:
    """Tests for PositionHint construction."""

    def test_constructors(self):
        assert PositionHint.end().kind == HintKind.END
        assert PositionHint.start().kind == HintKind.START
        assert PositionHint.before("task-1").sibling_id == "task-1"
        assert PositionHint.after("task-1").kind == HintKind.AFTER
        assert PositionHint.at_rank(1500).rank == 1500

    def test_before_requires_sibling(self):
        with pytest.raises(ValidationError):
            PositionHint(kind=HintKind.BEFORE)

    def test_rank_requires_value(self):
        with pytest.raises(ValidationError):
            PositionHint(kind=HintKind.RANK)

    def test_end_rejects_sibling(self):
        with pytest.raises(ValidationError):
            PositionHint(kind=HintKind.END, sibling_id="task-1")


class TestValidate:
    """Tests for validate() on moves between and within stages."""

    def test_unknown_item(self, state, registry):
        decision = validate(state, registry, "task-99", "review")

        assert isinstance(decision, Reject)
        assert decision.reason == RejectReason.ITEM_NOT_FOUND

    def test_unknown_stage(self, state, registry):
        decision = validate(state, registry, "task-4", "archived")

        assert decision.reason == RejectReason.UNKNOWN_STAGE
        assert decision.stage_id == "archived"

    def test_item_check_runs_before_stage_check(self, state, registry):
        decision = validate(state, registry, "task-99", "archived")

        assert decision.reason == RejectReason.ITEM_NOT_FOUND

    def test_full_stage_rejects_inbound_move(self, state, registry):
        """Test that a fourth item cannot enter in_progress (limit 3)."""
        decision = validate(state, registry, "task-4", "in_progress")

        assert decision.reason == RejectReason.WIP_LIMIT_EXCEEDED
        assert decision.count == 3
        assert decision.limit == 3
        assert "(3/3)" in decision.message
        assert decision.message.startswith("WIP limit reached in In Progress")

    def test_move_appends_after_last_item(self, state, registry):
        """Test that the default hint ranks the item after every sibling."""
        decision = validate(state, registry, "task-1", "review")

        assert isinstance(decision, Accept)
        assert decision.rank > 1000

    def test_move_before_sibling_takes_midpoint(self, state, registry):
        decision = validate(
            state, registry, "task-5", "review", PositionHint.before("task-4")
        )

        assert decision.rank < 1000

    def test_move_between_siblings(self, state, registry):
        decision = validate(
            state, registry, "task-4", "ready", PositionHint.after("task-5")
        )

        assert decision.rank == 1500.0

    def test_missing_sibling_rejected(self, state, registry):
        decision = validate(
            state, registry, "task-5", "review", PositionHint.after("task-1")
        )

        assert decision.reason == RejectReason.ITEM_NOT_FOUND
        assert "task-1" in decision.message

    def test_reorder_in_full_stage_skips_wip_check(self, state, registry):
        """Test that reordering inside a full stage is always allowed."""
        decision = validate(
            state, registry, "task-3", "in_progress", PositionHint.start()
        )

        assert isinstance(decision, Accept)
        assert decision.rank < 1000

    def test_reorder_excludes_own_slot(self, state, registry):
        """Test that an item can move between its neighbours' ranks."""
        decision = validate(
            state, registry, "task-1", "in_progress", PositionHint.after("task-2")
        )

        assert decision.rank == 2500.0

    def test_reorder_relative_to_itself_keeps_rank(self, state, registry):
        decision = validate(
            state, registry, "task-2", "in_progress", PositionHint.before("task-2")
        )

        assert decision == Accept(rank=2000)

    def test_explicit_rank_collision(self, state, registry):
        decision = validate(
            state, registry, "task-5", "review", PositionHint.at_rank(1000)
        )

        assert decision.reason == RejectReason.RANK_COLLISION
        assert decision.needs_renormalization

    def test_explicit_free_rank_accepted(self, state, registry):
        decision = validate(
            state, registry, "task-5", "review", PositionHint.at_rank(1234.5)
        )

        assert decision == Accept(rank=1234.5)

    def test_exhausted_midpoint_collides(self, board_config, registry, make_item):
        """Test that adjacent floats leave no room for a midpoint."""
        low = 1.0
        high = math.nextafter(low, math.inf)
        state = FlowState(
            [stage.id for stage in board_config.stages],
            [
                make_item("task-1", "ready", low),
                make_item("task-2", "ready", high),
                make_item("task-3", "review", 1000),
            ],
        )

        decision = validate(
            state, registry, "task-3", "ready", PositionHint.after("task-1")
        )

        assert decision.reason == RejectReason.RANK_COLLISION


class TestValidateInsert:
    """Tests for validate_insert() on brand-new items."""

    def test_duplicate_id_rejected(self, state, registry):
        decision = validate_insert(state, registry, "task-1", "ready")

        assert decision.reason == RejectReason.DUPLICATE_ITEM

    def test_full_stage_rejects_new_item(self, state, registry):
        decision = validate_insert(state, registry, "task-7", "in_progress")

        assert decision.reason == RejectReason.WIP_LIMIT_EXCEEDED

    def test_empty_stage_gets_first_spacing(self, state, registry):
        decision = validate_insert(state, registry, "task-7", "measuring")

        assert decision == Accept(rank=1000.0)

    def test_unknown_stage(self, state, registry):
        decision = validate_insert(state, registry, "task-7", "icebox")

        assert decision.reason == RejectReason.UNKNOWN_STAGE


class TestRankBetween:
    """Tests for midpoint rank allocation."""

    def test_empty_stage(self):
        assert rank_between(None, None) == 1000.0

    def test_before_first(self):
        assert rank_between(None, 1000.0) == 0.0

    def test_after_last(self):
        assert rank_between(3000.0, None) == 4000.0

    def test_midpoint(self):
        assert rank_between(1000.0, 2000.0) == 1500.0

    def test_equal_neighbours_have_no_room(self):
        assert rank_between(1.0, 1.0) is None

    def test_custom_spacing(self):
        assert rank_between(None, None, spacing=10) == 10
        assert rank_between(5.0, None, spacing=10) == 15.0


class TestRenormalizeRanks:
    """Tests for stage renormalization."""

    def test_dense_ranks_become_evenly_spaced(self, make_item):
        """Test that crowded ranks are rewritten to spacing multiples."""
        items = [
            make_item("task-c", "ready", 1.0000000002),
            make_item("task-a", "ready", 1.0),
            make_item("task-b", "ready", 1.0000000001),
        ]

        renormalized = renormalize_ranks(items)

        assert [(item.id, item.rank) for item in renormalized] == [
            ("task-a", 1000.0),
            ("task-b", 2000.0),
            ("task-c", 3000.0),
        ]

    def test_ties_broken_by_id(self, make_item):
        items = [make_item("task-b", "ready", 5.0), make_item("task-a", "ready", 5.0)]

        renormalized = renormalize_ranks(items, spacing=1)

        assert [item.id for item in renormalized] == ["task-a", "task-b"]

    def test_aging_clock_untouched(self, make_item):
        item = make_item("task-a", "review", 7.0)

        (renormalized,) = renormalize_ranks([item])

        assert renormalized.entered_stage_at == item.entered_stage_at
        assert renormalized.stage_id == "review"
