"""Pipeline run state models.

This module defines the data models for the per-event run state machine:
- RunStage: Enum of all run stages
- StageTransition: Record of a stage transition with timestamp and details
- RunRecord: Complete state of one pipeline run
- VALID_TRANSITIONS: Map defining allowed stage transitions
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class RunStage(str, Enum):
    """Stages a pipeline run progresses through.

    Stage Flow:
        idle → lock_acquiring → loading → validating → mutating
        → committing → notifying → released

    ``lock_acquiring`` can end in ``lock_timeout``. ``loading``,
    ``validating``, ``mutating`` and ``committing`` can end in ``failed``.
    ``released``, ``failed`` and ``lock_timeout`` are terminal for the run;
    the lock itself is free again for the next event.

    Attributes:
        IDLE: Run created, lock not yet requested.
        LOCK_ACQUIRING: Waiting (bounded) for the global lock.
        LOADING: Loading settings and the bikes/users tables.
        VALIDATING: Running the operation's validation chain.
        MUTATING: Running the operation's business-logic chain.
        COMMITTING: Writing accumulated row writes to the store.
        NOTIFYING: Handing notification intents to the collaborator.
        RELEASED: Lock released after a successful run.
        FAILED: Run ended with a validation, system or configuration error.
        LOCK_TIMEOUT: Lock not acquired in time; nothing was read or written.
    """

    IDLE = "idle"
    LOCK_ACQUIRING = "lock_acquiring"
    LOADING = "loading"
    VALIDATING = "validating"
    MUTATING = "mutating"
    COMMITTING = "committing"
    NOTIFYING = "notifying"
    RELEASED = "released"
    FAILED = "failed"
    LOCK_TIMEOUT = "lock_timeout"


class StageTransition(BaseModel):
    """Record of a stage transition within a run.

    Attributes:
        from_stage: The stage before the transition.
        to_stage: The stage after the transition.
        timestamp: When the transition occurred (UTC).
        details: Optional metadata (error code, write counts).
    """

    from_stage: RunStage = Field(
        ...,
        description="The run stage before this transition",
    )

    to_stage: RunStage = Field(
        ...,
        description="The run stage after this transition",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the transition occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Optional metadata about the transition",
    )


class RunRecord(BaseModel):
    """Complete state of one pipeline run.

    Attributes:
        run_id: Unique identifier of the run.
        operation: The operation being processed.
        current_stage: The current run stage.
        history: Ordered list of all stage transitions.
        error_code: Notification code of the failure, if the run failed.
        error: Log message of the failure, if the run failed.
        lock_released: Whether the global lock was given back.
        created_at: When the run was created (UTC).
    """

    run_id: str = Field(..., min_length=1)
    operation: str = Field(..., min_length=1)
    current_stage: RunStage = RunStage.IDLE
    history: List[StageTransition] = Field(default_factory=list)
    error_code: Optional[str] = None
    error: Optional[str] = None
    lock_released: bool = False
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    @property
    def stages(self) -> List[RunStage]:
        """Every stage visited, starting with idle."""
        return [RunStage.IDLE] + [t.to_stage for t in self.history]


# Valid stage transitions map
#
# - LOCK_TIMEOUT is only reachable while waiting for the lock, so a timed
#   out run never read or wrote anything
# - FAILED is reachable once the lock is held and before notifications
# - NOTIFYING always ends in RELEASED
VALID_TRANSITIONS: Dict[RunStage, List[RunStage]] = {
    RunStage.IDLE: [RunStage.LOCK_ACQUIRING],
    RunStage.LOCK_ACQUIRING: [RunStage.LOADING, RunStage.LOCK_TIMEOUT],
    RunStage.LOADING: [RunStage.VALIDATING, RunStage.FAILED],
    RunStage.VALIDATING: [RunStage.MUTATING, RunStage.FAILED],
    RunStage.MUTATING: [RunStage.COMMITTING, RunStage.FAILED],
    RunStage.COMMITTING: [RunStage.NOTIFYING, RunStage.FAILED],
    RunStage.NOTIFYING: [RunStage.RELEASED],
    RunStage.RELEASED: [],
    RunStage.FAILED: [],
    RunStage.LOCK_TIMEOUT: [],
}


def is_valid_transition(from_stage: RunStage, to_stage: RunStage) -> bool:
    """Check if a stage transition is allowed.

    Example:
        >>> is_valid_transition(RunStage.VALIDATING, RunStage.FAILED)
        True
        >>> is_valid_transition(RunStage.VALIDATING, RunStage.COMMITTING)
        False
    """
    return to_stage in VALID_TRANSITIONS.get(from_stage, [])


def is_terminal_stage(stage: RunStage) -> bool:
    """Check if a stage is terminal (has no outgoing transitions)."""
    return len(VALID_TRANSITIONS.get(stage, [])) == 0
