"""Pipeline events, metrics and notification intents.

This module provides observability for pipeline runs (structured log
entries and Prometheus metrics driven by PipelineEvent) and the hand-off
of NotificationIntent records to the notification collaborator.
"""

from bikeshare.events.emitter import (
    CompositeEventEmitter,
    EventEmitter,
    EventSinkType,
    LoggingEventEmitter,
    NullEventEmitter,
    create_event_emitter,
)
from bikeshare.events.metrics import (
    MetricsEventEmitter,
    PipelineMetrics,
    generate_metrics_output,
    get_metrics,
)
from bikeshare.events.models import (
    EventType,
    NotificationChannel,
    NotificationIntent,
    PipelineEvent,
)
from bikeshare.events.notifications import (
    LoggingNotificationSink,
    NotificationDispatcher,
    NotificationSink,
    render_template,
    source_mark,
)

__all__ = [
    # Models
    "EventType",
    "NotificationChannel",
    "NotificationIntent",
    "PipelineEvent",
    # Emitters
    "CompositeEventEmitter",
    "EventEmitter",
    "EventSinkType",
    "LoggingEventEmitter",
    "NullEventEmitter",
    "create_event_emitter",
    # Metrics
    "MetricsEventEmitter",
    "PipelineMetrics",
    "generate_metrics_output",
    "get_metrics",
    # Notifications
    "LoggingNotificationSink",
    "NotificationDispatcher",
    "NotificationSink",
    "render_template",
    "source_mark",
]
