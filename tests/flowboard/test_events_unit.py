"""Unit tests for flow events, emitters and metrics."""

import logging

import pytest
from prometheus_client import CollectorRegistry

from src.flowboard.engine import FlowEngine
from src.flowboard.events import (
    CallbackEventEmitter,
    CompositeEventEmitter,
    EventSinkType,
    EventType,
    FlowEvent,
    FlowMetrics,
    LoggingEventEmitter,
    MetricsEventEmitter,
    NullEventEmitter,
    create_event_emitter,
    generate_metrics_output,
)
from src.flowboard.state.models import WorkItemInit


def _make_event(event_type=EventType.ITEM_MOVED, **details) -> FlowEvent:
    return FlowEvent(
        event_type=event_type,
        board_id="project-1",
        item_id="task-1",
        stage_id="review",
        revision=4,
        details=details,
    )


class FailingEmitter(NullEventEmitter):
    def emit(self, event: FlowEvent) -> None:
        raise RuntimeError("sink down")


@pytest.fixture
def registry():
    return CollectorRegistry()


class TestFlowEvent:
    """Tests for the FlowEvent model."""

    def test_log_dict_is_flat(self):
        event = _make_event(from_stage="in_progress", to_stage="review")

        log_dict = event.to_log_dict()

        assert log_dict["event_type"] == "item_moved"
        assert log_dict["board_id"] == "project-1"
        assert log_dict["from_stage"] == "in_progress"
        assert log_dict["revision"] == 4

    def test_board_id_required(self):
        with pytest.raises(ValueError):
            FlowEvent(event_type=EventType.ITEM_ADDED, board_id="")


class TestEmitters:
    """Tests for the event emitter implementations."""

    def test_logging_emitter_levels(self, caplog):
        """Test that moves log at INFO and reorders at DEBUG."""
        emitter = LoggingEventEmitter(logger_name="flowboard.test")

        with caplog.at_level(logging.DEBUG, logger="flowboard.test"):
            emitter.emit(_make_event(EventType.ITEM_MOVED))
            emitter.emit(_make_event(EventType.ITEM_REORDERED))

        assert [record.levelno for record in caplog.records] == [
            logging.INFO,
            logging.DEBUG,
        ]
        assert caplog.records[0].board_id == "project-1"

    def test_callback_emitter_dispatch_order(self):
        """Test that typed subscribers run before global subscribers."""
        calls = []
        emitter = CallbackEventEmitter()
        emitter.subscribe(lambda event: calls.append("global"))
        emitter.subscribe(lambda event: calls.append("moved"), EventType.ITEM_MOVED)
        emitter.subscribe(lambda event: calls.append("removed"), EventType.ITEM_REMOVED)

        emitter.emit(_make_event(EventType.ITEM_MOVED))

        assert calls == ["moved", "global"]

    def test_callback_failure_does_not_stop_others(self):
        calls = []
        emitter = CallbackEventEmitter()

        def broken(event):
            raise RuntimeError("render failed")

        emitter.subscribe(broken)
        emitter.subscribe(calls.append)

        emitter.emit(_make_event())

        assert len(calls) == 1

    def test_unsubscribe(self):
        calls = []
        emitter = CallbackEventEmitter()
        emitter.subscribe(calls.append)

        assert emitter.unsubscribe(calls.append) is True
        assert emitter.unsubscribe(calls.append) is False
        emitter.emit(_make_event())
        assert calls == []

    def test_composite_isolates_failures(self):
        calls = []
        collector = CallbackEventEmitter()
        collector.subscribe(calls.append)
        composite = CompositeEventEmitter([FailingEmitter(), collector])

        composite.emit(_make_event())

        assert len(calls) == 1

    def test_engine_survives_failing_emitter(self, board_config):
        """Test that a broken sink never affects board state."""
        engine = FlowEngine(board_config, emitter=FailingEmitter())

        result = engine.add_item(WorkItemInit(id="task-1", stage_id="ready"))

        assert result.accepted
        assert engine.get_item("task-1") is not None


class TestCreateEventEmitter:
    """Tests for the emitter factory."""

    def test_default_is_logging(self):
        assert isinstance(create_event_emitter(), LoggingEventEmitter)

    def test_single_sink(self):
        emitter = create_event_emitter([EventSinkType.LOGGING])

        assert isinstance(emitter, LoggingEventEmitter)

    def test_multiple_sinks_compose(self):
        emitter = create_event_emitter([EventSinkType.LOGGING, EventSinkType.METRICS])

        assert isinstance(emitter, CompositeEventEmitter)
        assert len(emitter.emitters) == 2


class TestMetricsEventEmitter:
    """Tests for Prometheus metrics updates."""

    def test_transition_updates_counter_and_gauges(self, registry):
        emitter = MetricsEventEmitter(registry=registry)

        emitter.emit(
            _make_event(
                EventType.ITEM_MOVED,
                from_stage="in_progress",
                stage_count=2,
                from_stage_count=1,
            )
        )

        assert registry.get_sample_value(
            "flowboard_transitions_total",
            {"board_id": "project-1", "event_type": "item_moved"},
        ) == 1.0
        assert registry.get_sample_value(
            "flowboard_stage_items", {"board_id": "project-1", "stage": "review"}
        ) == 2.0
        assert registry.get_sample_value(
            "flowboard_stage_items", {"board_id": "project-1", "stage": "in_progress"}
        ) == 1.0

    def test_rejection_counted_by_reason(self, registry):
        emitter = MetricsEventEmitter(metrics=FlowMetrics(registry))

        emitter.emit(
            _make_event(EventType.TRANSITION_REJECTED, reason="wip_limit_exceeded")
        )

        assert registry.get_sample_value(
            "flowboard_rejections_total",
            {"board_id": "project-1", "reason": "wip_limit_exceeded"},
        ) == 1.0
        assert registry.get_sample_value(
            "flowboard_transitions_total",
            {"board_id": "project-1", "event_type": "transition_rejected"},
        ) is None

    def test_engine_drives_metrics(self, registry, board_config):
        """Test end to end that engine events reach the gauges."""
        engine = FlowEngine(
            board_config,
            board_id="project-1",
            emitter=MetricsEventEmitter(registry=registry),
        )

        engine.add_item(WorkItemInit(id="task-1", stage_id="ready"))
        engine.move_item("task-1", "in_progress")

        labels = {"board_id": "project-1"}
        assert registry.get_sample_value(
            "flowboard_stage_items", {**labels, "stage": "ready"}
        ) == 0.0
        assert registry.get_sample_value(
            "flowboard_stage_items", {**labels, "stage": "in_progress"}
        ) == 1.0

    def test_generate_output(self, registry):
        FlowMetrics(registry).record_transition("project-1", "item_added")

        output = generate_metrics_output(registry)

        assert b"flowboard_transitions_total" in output

    def test_board_loaded_sets_every_stage(self, registry):
        emitter = MetricsEventEmitter(registry=registry)

        emitter.emit(
            FlowEvent(
                event_type=EventType.BOARD_LOADED,
                board_id="project-1",
                details={"stage_counts": {"ready": 3, "review": 0}},
            )
        )

        labels = {"board_id": "project-1"}
        assert registry.get_sample_value(
            "flowboard_stage_items", {**labels, "stage": "ready"}
        ) == 3.0
        assert registry.get_sample_value(
            "flowboard_stage_items", {**labels, "stage": "review"}
        ) == 0.0
        assert registry.get_sample_value(
            "flowboard_transitions_total",
            {**labels, "event_type": "board_loaded"},
        ) is None

    def test_publish_board_status(self, board_config):
        events = []
        callbacks = CallbackEventEmitter()
        callbacks.subscribe(events.append, EventType.BOARD_LOADED)
        engine = FlowEngine(board_config, board_id="project-1", emitter=callbacks)
        engine.add_item(WorkItemInit(id="task-1", stage_id="ready"))

        engine.publish_board_status()

        (event,) = events
        assert event.details["stage_counts"]["ready"] == 1
        assert event.details["stage_counts"]["measuring"] == 0
        assert event.details["item_count"] == 1
