"""Unit tests for the FlowEngine."""

from datetime import timedelta

import pytest

from src.flowboard.engine import FlowEngine
from src.flowboard.events import CallbackEventEmitter, EventType
from src.flowboard.exceptions import UnknownStageError
from src.flowboard.state.models import WorkItemInit
from src.flowboard.transitions import PositionHint, RejectReason


@pytest.fixture
def events():
    return []


@pytest.fixture
def engine(board_config, make_item, clock, events):
    """Engine over the Delivery Flow board with a full in_progress stage."""
    emitter = CallbackEventEmitter()
    emitter.subscribe(events.append)
    return FlowEngine(
        board_config,
        [
            make_item("task-1", "in_progress", 1000),
            make_item("task-2", "in_progress", 2000),
            make_item("task-3", "in_progress", 3000),
            make_item(
                "task-4", "review", 1000, entered_stage_at=clock.now - timedelta(days=5)
            ),
            make_item(
                "task-5", "ready", 1000, entered_stage_at=clock.now - timedelta(days=9)
            ),
        ],
        board_id="project-1",
        emitter=emitter,
        clock=clock,
    )


class TestMoveItem:
    """Tests for FlowEngine.move_item()."""

    def test_move_into_full_stage_rejected(self, engine, events):
        """Test that a rejected move leaves the board untouched."""
        before = engine.snapshot()

        result = engine.move_item("task-4", "in_progress")

        assert result.accepted is False
        assert result.reason == RejectReason.WIP_LIMIT_EXCEEDED
        assert result.snapshot is None
        assert engine.snapshot() == before
        assert events[-1].event_type == EventType.TRANSITION_REJECTED
        assert events[-1].details["reason"] == "wip_limit_exceeded"
        assert events[-1].details["count"] == 3

    def test_move_to_other_stage(self, engine, clock):
        """Test that a stage change resets the aging clock to now."""
        clock.advance(timedelta(minutes=5))

        result = engine.move_item("task-1", "review")

        assert result.accepted
        moved = result.snapshot.get("task-1")
        assert moved.stage_id == "review"
        assert moved.rank > 1000
        assert moved.entered_stage_at == clock.now
        assert result.changed == (moved,)
        assert result.snapshot.count("in_progress") == 2
        assert result.snapshot.revision == 1

    def test_reorder_keeps_aging_clock(self, engine):
        original = engine.get_item("task-3")

        result = engine.move_item("task-3", "in_progress", PositionHint.start())

        moved = result.snapshot.get("task-3")
        assert [item.id for item in result.snapshot.stage("in_progress")] == [
            "task-3",
            "task-1",
            "task-2",
        ]
        assert moved.entered_stage_at == original.entered_stage_at

    def test_move_emits_counts(self, engine, events):
        engine.move_item("task-1", "review")

        event = events[-1]
        assert event.event_type == EventType.ITEM_MOVED
        assert event.details["from_stage"] == "in_progress"
        assert event.details["stage_count"] == 2
        assert event.details["from_stage_count"] == 2
        assert event.revision == 1

    def test_reorder_emits_reordered(self, engine, events):
        engine.move_item("task-2", "in_progress", PositionHint.end())

        assert events[-1].event_type == EventType.ITEM_REORDERED

    def test_freed_slot_can_be_taken(self, engine):
        """Test that moving an item out makes room for another."""
        assert engine.move_item("task-1", "review").accepted

        result = engine.move_item("task-5", "in_progress")

        assert result.accepted
        assert engine.wip_status("in_progress").at_limit


class TestAddAndRemove:
    """Tests for add_item() and remove_item()."""

    def test_add_item_at_end(self, engine, clock):
        init = WorkItemInit(id="task-9", stage_id="ready", title="New")

        result = engine.add_item(init)

        added = result.snapshot.get("task-9")
        assert added.rank == 2000.0
        assert added.created_at == clock.now
        assert added.entered_stage_at == clock.now
        assert added.title == "New"

    def test_add_duplicate_rejected(self, engine):
        result = engine.add_item(WorkItemInit(id="task-1", stage_id="ready"))

        assert result.reason == RejectReason.DUPLICATE_ITEM

    def test_add_into_full_stage_rejected(self, engine):
        result = engine.add_item(WorkItemInit(id="task-9", stage_id="in_progress"))

        assert result.reason == RejectReason.WIP_LIMIT_EXCEEDED
        assert engine.get_item("task-9") is None

    def test_remove_is_idempotent(self, engine, events):
        """Test that removing twice changes the board only once."""
        engine.remove_item("task-4")
        revision = engine.snapshot().revision
        emitted = len(events)

        engine.remove_item("task-4")

        assert engine.get_item("task-4") is None
        assert engine.snapshot().revision == revision
        assert len(events) == emitted


class TestRenormalizeStage:
    """Tests for renormalize_stage()."""

    def test_renormalize_keeps_order(self, board_config, make_item):
        engine = FlowEngine(
            board_config,
            [
                make_item("task-1", "review", 1.0),
                make_item("task-2", "review", 1.0000000001),
                make_item("task-3", "review", 1.0000000002),
            ],
        )

        result = engine.renormalize_stage("review")

        assert [(item.id, item.rank) for item in result.snapshot.stage("review")] == [
            ("task-1", 1000.0),
            ("task-2", 2000.0),
            ("task-3", 3000.0),
        ]
        assert len(result.changed) == 3

    def test_renormalize_unknown_stage(self, engine):
        result = engine.renormalize_stage("icebox")

        assert result.reason == RejectReason.UNKNOWN_STAGE


class TestQueries:
    """Tests for the read-only engine queries."""

    def test_wip_status(self, engine):
        status = engine.wip_status("in_progress")

        assert (status.count, status.limit) == (3, 3)
        assert status.at_limit
        assert not status.exceeded

    def test_wip_status_unknown_stage(self, engine):
        with pytest.raises(UnknownStageError):
            engine.wip_status("icebox")

    def test_over_limit_board_loads(self, board_config, make_item, clock):
        """Test that a stage loaded above its limit is reported, not rejected."""
        engine = FlowEngine(
            board_config,
            [make_item(f"task-{i}", "review", i * 1000) for i in range(1, 5)],
        )

        status = engine.wip_status("review")

        assert status.exceeded
        assert engine.flow_summary(clock.now).over_limit_stages == ("review",)

    def test_aging_report(self, engine, clock):
        """Test that only stale items outside the backlog are aging."""
        report = engine.aging_report(clock.now)

        aging = {entry.item.id for entry in report if entry.aging}
        assert aging == {"task-4"}
        assert [entry.item.id for entry in report][0] == "task-5"
        assert len(report) == 5

    def test_aging_report_threshold_override(self, engine, clock):
        report = engine.aging_report(clock.now, threshold=timedelta(minutes=30))

        assert sum(1 for entry in report if entry.aging) == 4

    def test_flow_summary(self, engine, clock):
        summary = engine.flow_summary(clock.now)

        assert summary.total_items == 5
        assert summary.total_wip == 4
        assert summary.aging_items == 1
        assert summary.blocked_items == 0
        assert summary.over_limit_stages == ()

    def test_board_status_in_pipeline_order(self, engine):
        assert [status.stage_id for status in engine.board_status()] == [
            "ready",
            "in_progress",
            "review",
            "released",
            "measuring",
        ]
