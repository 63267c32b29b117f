"""Sinks for relay events.

The orchestrator reports every stage change and outcome to one
EventEmitter. Which sinks sit behind it (log records, Prometheus, both)
is decided once at startup by create_event_emitter().
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from src.relay.events.models import EventType, ReviewEvent


logger = logging.getLogger(__name__)


class EventSinkType(str, Enum):
    """Where relay events can be sent."""

    LOGGING = "logging"
    METRICS = "metrics"


class EventEmitter(ABC):
    """Receives relay events.

    emit() must not raise: a broken sink is logged and the delivery
    carries on.
    """

    @abstractmethod
    async def emit(self, event: ReviewEvent) -> None:
        ...

    async def close(self) -> None:
        pass


# Transitions are chatty (eight per published review), so they stay at DEBUG
_EVENT_LEVELS: Dict[EventType, int] = {
    EventType.STATE_TRANSITION: logging.DEBUG,
    EventType.COMPLETION: logging.INFO,
    EventType.REJECTION: logging.WARNING,
    EventType.ERROR: logging.ERROR,
}


class LoggingEventEmitter(EventEmitter):
    """Writes each event as one log record with the event fields in ``extra``."""

    def __init__(self, logger_name: Optional[str] = None):
        self._logger = logging.getLogger(logger_name) if logger_name else logger

    async def emit(self, event: ReviewEvent) -> None:
        self._logger.log(
            _EVENT_LEVELS.get(event.event_type, logging.INFO),
            "Relay event: %s for %s",
            event.event_type.value,
            event.subject,
            extra=event.to_log_dict(),
        )


class CompositeEventEmitter(EventEmitter):
    """Fans each event out to several sinks.

    Sinks are isolated from each other: an exception from one is logged
    and the remaining sinks still receive the event.
    """

    def __init__(self, emitters: Optional[Iterable[EventEmitter]] = None):
        self._sinks: List[EventEmitter] = list(emitters or [])

    def add_emitter(self, emitter: EventEmitter) -> None:
        self._sinks.append(emitter)

    @property
    def emitters(self) -> List[EventEmitter]:
        return list(self._sinks)

    async def emit(self, event: ReviewEvent) -> None:
        for sink in self._sinks:
            try:
                await sink.emit(event)
            except Exception:
                logger.exception(
                    "Event sink %s failed",
                    type(sink).__name__,
                    extra={"event_type": event.event_type.value, "subject": event.subject},
                )

    async def close(self) -> None:
        for sink in self._sinks:
            try:
                await sink.close()
            except Exception:
                logger.exception("Closing event sink %s failed", type(sink).__name__)


class NullEventEmitter(EventEmitter):
    """Drops every event."""

    async def emit(self, event: ReviewEvent) -> None:
        pass


def _metrics_sink(logger_name: Optional[str]) -> EventEmitter:
    # metrics.py imports this module
    from src.relay.events.metrics import MetricsEventEmitter

    return MetricsEventEmitter()


_SINK_BUILDERS: Dict[EventSinkType, Callable[[Optional[str]], EventEmitter]] = {
    EventSinkType.LOGGING: lambda logger_name: LoggingEventEmitter(logger_name=logger_name),
    EventSinkType.METRICS: _metrics_sink,
}


def create_event_emitter(
    sink_types: Optional[List[EventSinkType]] = None,
    logger_name: Optional[str] = None,
) -> EventEmitter:
    """Build the emitter for ``sink_types``.

    Logging alone is the default. A single sink is returned as is, several
    are wrapped in a CompositeEventEmitter.
    """
    sinks: List[EventEmitter] = []
    for sink_type in sink_types or [EventSinkType.LOGGING]:
        builder = _SINK_BUILDERS.get(sink_type)
        if builder is None:
            logger.warning("Unknown event sink type: %s, skipping", sink_type)
            continue
        sinks.append(builder(logger_name))

    if not sinks:
        return LoggingEventEmitter(logger_name=logger_name)
    if len(sinks) == 1:
        return sinks[0]
    return CompositeEventEmitter(sinks)
