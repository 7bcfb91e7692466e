"""Per-event run state machine.

Every pipeline run moves through:
- idle → lock_acquiring → loading → validating → mutating
- → committing → notifying → released

with failed and lock_timeout as the unsuccessful terminal stages.
"""

from bikeshare.runs.machine import InvalidTransitionError, RunStateMachine
from bikeshare.runs.models import (
    VALID_TRANSITIONS,
    RunRecord,
    RunStage,
    StageTransition,
    is_terminal_stage,
    is_valid_transition,
)

__all__ = [
    # Models
    "RunRecord",
    "RunStage",
    "StageTransition",
    "VALID_TRANSITIONS",
    "is_terminal_stage",
    "is_valid_transition",
    # State machine
    "InvalidTransitionError",
    "RunStateMachine",
]
