"""Event emitter implementations for board change notifications.

This module provides the notification infrastructure for the flow engine.
It defines an abstract EventEmitter interface and concrete implementations
for different event sinks:

- LoggingEventEmitter: Emits events as structured log entries
- CallbackEventEmitter: Calls subscribed functions (presentation layer)
- CompositeEventEmitter: Emits to multiple sinks simultaneously
- NullEventEmitter: Discards events

Emission is synchronous: engine operations run to completion without
suspension points, and notifications are delivered before the operation
returns.
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from enum import Enum
from typing import Callable, Dict, List, Optional

from src.flowboard.events.models import EventType, FlowEvent


logger = logging.getLogger(__name__)


EventCallback = Callable[[FlowEvent], None]


class EventSinkType(str, Enum):
    """Types of event sinks supported by the engine.

    Attributes:
        LOGGING: Emit events as structured log entries.
        METRICS: Emit events as Prometheus metrics (counters, gauges).
    """

    LOGGING = "logging"
    METRICS = "metrics"


class EventEmitter(ABC):
    """Abstract base class for flow event emitters.

    Implementations should be fast and fault-tolerant: the engine calls
    emit() after a mutation has been applied, and a failing sink must not
    change the outcome of that mutation.
    """

    @abstractmethod
    def emit(self, event: FlowEvent) -> None:
        """Emit a flow event.

        Args:
            event: The flow event to emit.
        """
        pass

    def close(self) -> None:
        """Close the emitter and release resources.

        The default implementation does nothing.
        """
        pass


class LoggingEventEmitter(EventEmitter):
    """Event emitter that logs events using structured logging.

    Events are logged at different levels based on event type:

    - ITEM_ADDED / ITEM_MOVED / ITEM_REMOVED: INFO level
    - ITEM_REORDERED / STAGE_RENORMALIZED / BOARD_LOADED: DEBUG level
    - TRANSITION_REJECTED: INFO level (rejections are expected outcomes)

    Example:
        >>> emitter = LoggingEventEmitter()
        >>> emitter.emit(event)
        # Logs: INFO - Flow event: item_moved for task-4
    """

    def __init__(self, logger_name: Optional[str] = None):
        """Initialize the logging event emitter.

        Args:
            logger_name: Optional logger name. If not provided, uses
                         the module logger.
        """
        self._logger = (
            logging.getLogger(logger_name)
            if logger_name
            else logger
        )
        self._log_level_map = {
            EventType.ITEM_ADDED: logging.INFO,
            EventType.ITEM_MOVED: logging.INFO,
            EventType.ITEM_REMOVED: logging.INFO,
            EventType.ITEM_REORDERED: logging.DEBUG,
            EventType.STAGE_RENORMALIZED: logging.DEBUG,
            EventType.BOARD_LOADED: logging.DEBUG,
            EventType.TRANSITION_REJECTED: logging.INFO,
        }

    def emit(self, event: FlowEvent) -> None:
        """Emit event as a structured log entry.

        Args:
            event: The flow event to log.
        """
        log_level = self._log_level_map.get(event.event_type, logging.INFO)

        self._logger.log(
            log_level,
            "Flow event: %s for %s",
            event.event_type.value,
            event.item_id or event.stage_id or event.board_id,
            extra=event.to_log_dict(),
        )


class CallbackEventEmitter(EventEmitter):
    """Event emitter that dispatches events to subscribed callbacks.

    The presentation layer subscribes here to re-render after changes.
    Callbacks registered for a specific event type run before callbacks
    registered for all events. A failing callback is logged and does not
    prevent the others from running.

    Example:
        >>> emitter = CallbackEventEmitter()
        >>> emitter.subscribe(render_board, EventType.ITEM_MOVED)
    """

    def __init__(self) -> None:
        self._subscribers: Dict[Optional[EventType], List[EventCallback]] = (
            defaultdict(list)
        )

    def subscribe(
        self,
        callback: EventCallback,
        event_type: Optional[EventType] = None,
    ) -> None:
        """Register a callback for one event type, or for all events."""
        self._subscribers[event_type].append(callback)

    def unsubscribe(
        self,
        callback: EventCallback,
        event_type: Optional[EventType] = None,
    ) -> bool:
        """Remove a callback.

        Returns:
            True if the callback was registered and removed.
        """
        try:
            self._subscribers[event_type].remove(callback)
            return True
        except ValueError:
            return False

    def emit(self, event: FlowEvent) -> None:
        callbacks = list(self._subscribers.get(event.event_type, []))
        callbacks.extend(self._subscribers.get(None, []))
        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(
                    "Flow event callback failed: %s",
                    str(e),
                    extra={
                        "event_type": event.event_type.value,
                        "board_id": event.board_id,
                        "error": str(e),
                    },
                )


class CompositeEventEmitter(EventEmitter):
    """Event emitter that delegates to multiple child emitters.

    Failures in one emitter do not affect others: each emitter is called
    independently and errors are logged but not propagated.

    Example:
        >>> composite = CompositeEventEmitter([LoggingEventEmitter(), MetricsEventEmitter()])
        >>> composite.emit(event)  # Emits to both sinks
    """

    def __init__(self, emitters: Optional[List[EventEmitter]] = None):
        """Initialize the composite emitter with child emitters.

        Args:
            emitters: List of child emitters. If None, creates an empty list.
        """
        self._emitters: List[EventEmitter] = emitters or []

    @property
    def emitters(self) -> List[EventEmitter]:
        """Get the list of child emitters (read-only copy)."""
        return list(self._emitters)

    def emit(self, event: FlowEvent) -> None:
        """Emit event to all child emitters.

        Args:
            event: The flow event to emit.
        """
        for emitter in self._emitters:
            try:
                emitter.emit(event)
            except Exception as e:
                logger.error(
                    "Failed to emit event to %s: %s",
                    type(emitter).__name__,
                    str(e),
                    extra={
                        "emitter_type": type(emitter).__name__,
                        "event_type": event.event_type.value,
                        "board_id": event.board_id,
                        "error": str(e),
                    },
                )

    def close(self) -> None:
        """Close all child emitters, logging failures."""
        for emitter in self._emitters:
            try:
                emitter.close()
            except Exception as e:
                logger.error(
                    "Failed to close emitter %s: %s",
                    type(emitter).__name__,
                    str(e),
                )


class NullEventEmitter(EventEmitter):
    """Event emitter that discards all events."""

    def emit(self, event: FlowEvent) -> None:
        pass


def create_event_emitter(
    sink_types: Optional[List[EventSinkType]] = None,
    logger_name: Optional[str] = None,
) -> EventEmitter:
    """Factory function to create event emitters based on configuration.

    If multiple sink types are requested, a CompositeEventEmitter is
    returned that delegates to all of them.

    Args:
        sink_types: List of event sink types to enable. If None or empty,
                    returns a LoggingEventEmitter as the default.
        logger_name: Optional logger name for the LoggingEventEmitter.

    Returns:
        An EventEmitter configured for the requested sinks.

    Example:
        >>> emitter = create_event_emitter([EventSinkType.LOGGING, EventSinkType.METRICS])
        >>> isinstance(emitter, CompositeEventEmitter)
        True
    """
    if not sink_types:
        return LoggingEventEmitter(logger_name=logger_name)

    emitters: List[EventEmitter] = []

    for sink_type in sink_types:
        if sink_type == EventSinkType.LOGGING:
            emitters.append(LoggingEventEmitter(logger_name=logger_name))
        elif sink_type == EventSinkType.METRICS:
            # Imported here because metrics.py imports this module
            from src.flowboard.events.metrics import MetricsEventEmitter

            emitters.append(MetricsEventEmitter())
        else:
            logger.warning(
                "Unknown event sink type: %s, skipping",
                sink_type,
            )

    if not emitters:
        return LoggingEventEmitter(logger_name=logger_name)

    if len(emitters) == 1:
        return emitters[0]

    return CompositeEventEmitter(emitters)
