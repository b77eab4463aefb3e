"""Board change notifications and metrics.

Event Emitters:
- EventEmitter: Abstract base class for event emission
- LoggingEventEmitter: Emits events as structured log entries
- CallbackEventEmitter: Dispatches events to subscribed callbacks
- CompositeEventEmitter: Emits to multiple sinks simultaneously
- MetricsEventEmitter: Emits events as Prometheus metrics
- NullEventEmitter: Discards events

Metrics:
- FlowMetrics: Container for all Prometheus metrics
- get_metrics: Get or create the metrics instance
- generate_metrics_output: Generate Prometheus text output
"""

from src.flowboard.events.emitter import (
    CallbackEventEmitter,
    CompositeEventEmitter,
    EventEmitter,
    EventSinkType,
    LoggingEventEmitter,
    NullEventEmitter,
    create_event_emitter,
)
from src.flowboard.events.metrics import (
    FlowMetrics,
    MetricsEventEmitter,
    generate_metrics_output,
    get_metrics,
)
from src.flowboard.events.models import EventType, FlowEvent

__all__ = [
    # Event models
    "EventType",
    "FlowEvent",
    # Event emitters
    "EventEmitter",
    "LoggingEventEmitter",
    "CallbackEventEmitter",
    "CompositeEventEmitter",
    "MetricsEventEmitter",
    "NullEventEmitter",
    # Metrics
    "FlowMetrics",
    "get_metrics",
    "generate_metrics_output",
    # Factory and configuration
    "EventSinkType",
    "create_event_emitter",
]
