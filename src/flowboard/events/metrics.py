"""Prometheus metrics for board observability.

This module provides Prometheus metrics for the flow engine, enabling
dashboards of board occupancy and transition activity.

Metrics Defined:
- flowboard_transitions_total: Counter of accepted transitions by type
- flowboard_rejections_total: Counter of rejected transitions by reason
- flowboard_stage_items: Gauge of current items per stage

The MetricsEventEmitter integrates with the event emission system to
update metrics from engine events. Accepted events carry the resulting
stage counts, so gauges are set to absolute values rather than adjusted
by deltas and stay correct for boards loaded from storage.
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)

from src.flowboard.events.emitter import EventEmitter
from src.flowboard.events.models import EventType, FlowEvent


logger = logging.getLogger(__name__)


class FlowMetrics:
    """Container for all flow engine Prometheus metrics.

    Metrics:
        transitions_total: Counter of accepted transitions.
            Labels: board_id, event_type

        rejections_total: Counter of rejected transitions.
            Labels: board_id, reason

        stage_items: Gauge of current item count per stage.
            Labels: board_id, stage

    Example:
        >>> metrics = FlowMetrics(registry=CollectorRegistry())
        >>> metrics.record_rejection("project-1", "wip_limit_exceeded")
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize flow metrics.

        Args:
            registry: Optional Prometheus registry. If None, uses the
                      default REGISTRY. Pass a custom registry for testing.
        """
        self.registry = registry or REGISTRY

        self.transitions_total = Counter(
            "flowboard_transitions_total",
            "Total number of accepted board transitions",
            labelnames=["board_id", "event_type"],
            registry=self.registry,
        )

        self.rejections_total = Counter(
            "flowboard_rejections_total",
            "Total number of rejected board transitions",
            labelnames=["board_id", "reason"],
            registry=self.registry,
        )

        self.stage_items = Gauge(
            "flowboard_stage_items",
            "Current number of work items in each stage",
            labelnames=["board_id", "stage"],
            registry=self.registry,
        )

    def record_transition(self, board_id: str, event_type: str) -> None:
        """Record an accepted transition."""
        self.transitions_total.labels(
            board_id=board_id,
            event_type=event_type,
        ).inc()

    def record_rejection(self, board_id: str, reason: str) -> None:
        """Record a rejected transition."""
        self.rejections_total.labels(
            board_id=board_id,
            reason=reason,
        ).inc()

    def set_stage_count(self, board_id: str, stage: str, count: int) -> None:
        """Set the absolute item count of a stage."""
        self.stage_items.labels(board_id=board_id, stage=stage).set(max(0, count))


# Global metrics instance for the default registry
_default_metrics: Optional[FlowMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> FlowMetrics:
    """Get or create the flow metrics instance.

    Args:
        registry: Optional Prometheus registry. If None, returns the
                  global metrics instance for the default registry.

    Returns:
        FlowMetrics: The metrics instance.
    """
    global _default_metrics

    if registry is not None:
        return FlowMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = FlowMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Generate Prometheus metrics output in text format.

    Args:
        registry: Optional Prometheus registry. If None, uses the
                  default REGISTRY.

    Returns:
        bytes: Prometheus metrics in text format.
    """
    target_registry = registry or REGISTRY
    return generate_latest(target_registry)


class MetricsEventEmitter(EventEmitter):
    """Event emitter that updates Prometheus metrics.

    - Accepted transitions: increment transitions_total and set the
      stage_items gauge from the "stage_count" / "from_stage_count" details
    - TRANSITION_REJECTED: increment rejections_total by reason
    - BOARD_LOADED: set the stage_items gauge of every stage

    Attributes:
        metrics: The FlowMetrics instance to update.
    """

    def __init__(
        self,
        metrics: Optional[FlowMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        """Initialize the metrics event emitter.

        Args:
            metrics: Optional FlowMetrics instance. If None, uses the
                     global metrics instance.
            registry: Optional Prometheus registry. Only used if metrics
                      is None.
        """
        if metrics is not None:
            self._metrics = metrics
        else:
            self._metrics = get_metrics(registry)

    @property
    def metrics(self) -> FlowMetrics:
        return self._metrics

    def emit(self, event: FlowEvent) -> None:
        """Update metrics based on the flow event.

        Args:
            event: The flow event to process.
        """
        try:
            if event.event_type == EventType.TRANSITION_REJECTED:
                self._metrics.record_rejection(
                    event.board_id,
                    str(event.details.get("reason", "unknown")),
                )
                return

            if event.event_type == EventType.BOARD_LOADED:
                for stage, count in event.details.get("stage_counts", {}).items():
                    self._metrics.set_stage_count(event.board_id, stage, int(count))
                return

            self._metrics.record_transition(event.board_id, event.event_type.value)
            self._update_stage_counts(event)
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.event_type.value,
                str(e),
                extra={
                    "event_type": event.event_type.value,
                    "board_id": event.board_id,
                    "error": str(e),
                },
            )

    def _update_stage_counts(self, event: FlowEvent) -> None:
        """Set stage gauges from the counts carried by the event."""
        stage_count = event.details.get("stage_count")
        if event.stage_id is not None and stage_count is not None:
            self._metrics.set_stage_count(event.board_id, event.stage_id, int(stage_count))

        from_stage = event.details.get("from_stage")
        from_stage_count = event.details.get("from_stage_count")
        if from_stage is not None and from_stage_count is not None:
            self._metrics.set_stage_count(event.board_id, from_stage, int(from_stage_count))
