"""Event emitter implementations for pipeline observability.

This module defines the EventEmitter interface and its implementations:

- LoggingEventEmitter: Emits events as structured log entries
- CompositeEventEmitter: Emits to multiple sinks simultaneously
- NullEventEmitter: Discards events

Pipeline runs are synchronous and hold the global lock while they emit,
so ``emit()`` must be quick and must never raise into the caller.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional, Sequence

from bikeshare.events.models import EventType, PipelineEvent


logger = logging.getLogger(__name__)


class EventSinkType(str, Enum):
    """Types of event sinks supported by the pipeline.

    Attributes:
        LOGGING: Emit events as structured log entries.
        METRICS: Emit events as Prometheus metrics (counters, histograms).
    """

    LOGGING = "logging"
    METRICS = "metrics"


class EventEmitter(ABC):
    """Abstract base class for pipeline event emitters.

    Example:
        >>> class MyEmitter(EventEmitter):
        ...     def emit(self, event: PipelineEvent) -> None:
        ...         print(event.event_type.value)
    """

    @abstractmethod
    def emit(self, event: PipelineEvent) -> None:
        """Emit a pipeline event.

        Args:
            event: The pipeline event to emit.
        """
        pass

    def close(self) -> None:
        """Release resources held by the emitter. Default does nothing."""
        pass


class LoggingEventEmitter(EventEmitter):
    """Event emitter that logs events using structured logging.

    Events are logged at different levels based on event type:

    - STATE_TRANSITION: DEBUG level
    - COMPLETION: INFO level
    - ERROR: WARNING level
    - TIMEOUT: ERROR level

    Validation failures are an expected outcome, so ERROR events log at
    WARNING; a lock timeout means an event was dropped and logs at ERROR.
    """

    def __init__(self, logger_name: Optional[str] = None):
        """Initialize the logging event emitter.

        Args:
            logger_name: Optional logger name. If not provided, uses
                         the module logger.
        """
        self._logger = logging.getLogger(logger_name) if logger_name else logger
        self._log_level_map = {
            EventType.STATE_TRANSITION: logging.DEBUG,
            EventType.COMPLETION: logging.INFO,
            EventType.ERROR: logging.WARNING,
            EventType.TIMEOUT: logging.ERROR,
        }

    def emit(self, event: PipelineEvent) -> None:
        log_level = self._log_level_map.get(event.event_type, logging.INFO)
        self._logger.log(
            log_level,
            "Pipeline event: %s for run %s",
            event.event_type.value,
            event.run_id,
            extra=event.to_log_dict(),
        )


class CompositeEventEmitter(EventEmitter):
    """Event emitter that delegates to multiple child emitters.

    Failures in one emitter do not affect others; each error is logged and
    the remaining emitters still receive the event.
    """

    def __init__(self, emitters: Optional[List[EventEmitter]] = None):
        self._emitters: List[EventEmitter] = emitters or []

    @property
    def emitters(self) -> List[EventEmitter]:
        """Get the list of child emitters (read-only copy)."""
        return list(self._emitters)

    def emit(self, event: PipelineEvent) -> None:
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
                        "run_id": event.run_id,
                    },
                )

    def close(self) -> None:
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
    """Event emitter that discards all events (tests, disabled observability)."""

    def emit(self, event: PipelineEvent) -> None:
        pass


def create_event_emitter(
    sink_types: Optional[Sequence[str]] = None,
    logger_name: Optional[str] = None,
) -> EventEmitter:
    """Create an event emitter for the requested sinks.

    Args:
        sink_types: Sink names or EventSinkType values. If None or empty,
                    a LoggingEventEmitter is returned.
        logger_name: Optional logger name for the LoggingEventEmitter.

    Returns:
        A single emitter, or a CompositeEventEmitter for several sinks.

    Example:
        >>> emitter = create_event_emitter(["logging", "metrics"])
        >>> isinstance(emitter, CompositeEventEmitter)
        True
    """
    if not sink_types:
        return LoggingEventEmitter(logger_name=logger_name)

    emitters: List[EventEmitter] = []

    for sink in sink_types:
        try:
            sink_type = EventSinkType(sink)
        except ValueError:
            logger.warning("Unknown event sink type: %s, skipping", sink)
            continue

        if sink_type == EventSinkType.LOGGING:
            emitters.append(LoggingEventEmitter(logger_name=logger_name))
        elif sink_type == EventSinkType.METRICS:
            # Imported here because metrics.py imports this module
            from bikeshare.events.metrics import MetricsEventEmitter

            emitters.append(MetricsEventEmitter())

    if not emitters:
        return LoggingEventEmitter(logger_name=logger_name)

    if len(emitters) == 1:
        return emitters[0]

    return CompositeEventEmitter(emitters)
