"""Pipeline event and notification intent models.

Two kinds of records leave a pipeline run:

- PipelineEvent: observability. Emitted on every stage transition, error,
  timeout and completion, and routed to logs and Prometheus metrics.
- NotificationIntent: the run's outcome as a message request for the
  notification collaborator. Exactly one intent is produced per terminal
  outcome; rendering and delivery happen elsewhere.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class EventType(str, Enum):
    """Types of events emitted by the pipeline.

    Attributes:
        STATE_TRANSITION: A run moved from one stage to another.
        ERROR: A run failed (validation, system or configuration error).
        COMPLETION: A run committed its writes and released the lock.
        TIMEOUT: A run could not acquire the global lock in time.
    """

    STATE_TRANSITION = "state_transition"
    ERROR = "error"
    COMPLETION = "completion"
    TIMEOUT = "timeout"


class PipelineEvent(BaseModel):
    """Structured event emitted by the pipeline.

    Attributes:
        event_type: The category of event.
        run_id: Identifier of the pipeline run.
        operation: The run's operation (checkout, return, timer, manual_edit).
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.

    Details Field Conventions:
        For STATE_TRANSITION events:
            - from_stage / to_stage: Run stages

        For ERROR events:
            - stage: Stage where the run failed
            - code: Notification code of the failure
            - error_type: Exception class name

        For COMPLETION events:
            - duration_seconds: Time from lock request to release
            - writes: Number of committed writes

        For TIMEOUT events:
            - timeout_seconds: Configured lock wait
    """

    event_type: EventType = Field(
        ...,
        description="The category of event being emitted",
    )

    run_id: str = Field(
        ...,
        min_length=1,
        description="Identifier of the pipeline run",
    )

    operation: str = Field(
        ...,
        min_length=1,
        description="Operation the run is processing",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context specific to the event type",
    )

    @field_serializer("timestamp")
    def serialize_timestamp(self, value: datetime) -> str:
        return value.isoformat()

    def to_log_dict(self) -> Dict[str, Any]:
        """Convert event to a flat dictionary for structured logging.

        Example:
            >>> event = PipelineEvent(
            ...     event_type=EventType.ERROR,
            ...     run_id="run-1",
            ...     operation="checkout",
            ...     details={"code": "ERR_USR_COT_003"}
            ... )
            >>> event.to_log_dict()["event_type"]
            'error'
        """
        return {
            "event_type": self.event_type.value,
            "run_id": self.run_id,
            "operation": self.operation,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }


class NotificationChannel(str, Enum):
    """Audience of a notification intent.

    Attributes:
        USER: The submitter (confirmations and validation errors).
        ADMIN: Operators (lock timeouts, store and config failures).
        DEVELOPER: Maintainers (unexpected exceptions in steps).
        SHEET_NOTE: A note on the submission's row in the intake store.
    """

    USER = "user"
    ADMIN = "admin"
    DEVELOPER = "developer"
    SHEET_NOTE = "sheetNote"


class NotificationIntent(BaseModel):
    """A message request for the notification collaborator.

    Attributes:
        code: Stable code selecting the message template.
        channel: Who the message is for.
        fields: Values for template interpolation.
    """

    model_config = ConfigDict(frozen=True)

    code: str = Field(..., min_length=1)
    channel: NotificationChannel
    fields: Dict[str, Any] = Field(default_factory=dict)
