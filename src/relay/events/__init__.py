"""Relay events and Prometheus metrics."""

from src.relay.events.emitter import (
    CompositeEventEmitter,
    EventEmitter,
    EventSinkType,
    LoggingEventEmitter,
    NullEventEmitter,
    create_event_emitter,
)
from src.relay.events.metrics import (
    MetricsEventEmitter,
    RelayMetrics,
    generate_metrics_output,
    get_metrics,
)
from src.relay.events.models import EventType, ReviewEvent

__all__ = [
    "CompositeEventEmitter",
    "EventEmitter",
    "EventSinkType",
    "EventType",
    "LoggingEventEmitter",
    "MetricsEventEmitter",
    "NullEventEmitter",
    "RelayMetrics",
    "ReviewEvent",
    "create_event_emitter",
    "generate_metrics_output",
    "get_metrics",
]
