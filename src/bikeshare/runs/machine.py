"""Run state machine implementation.

The RunStateMachine tracks one pipeline run through its stages. It
validates every transition against VALID_TRANSITIONS, records each one
with a UTC timestamp and stores error details when the run fails.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bikeshare.runs.models import (
    RunRecord,
    RunStage,
    StageTransition,
    is_terminal_stage,
    is_valid_transition,
)


logger = logging.getLogger(__name__)


class InvalidTransitionError(Exception):
    """Raised when an invalid stage transition is attempted.

    Attributes:
        from_stage: The current stage.
        to_stage: The attempted target stage.
        message: Human-readable error message.
    """

    def __init__(
        self,
        from_stage: RunStage,
        to_stage: RunStage,
        message: Optional[str] = None,
    ):
        self.from_stage = from_stage
        self.to_stage = to_stage
        self.message = message or (
            f"Invalid transition from {from_stage.value} to {to_stage.value}"
        )
        super().__init__(self.message)


class RunStateMachine:
    """State machine for a single pipeline run.

    The machine enforces the following invariants:
    - Only valid transitions (as defined in VALID_TRANSITIONS) are allowed
    - Every transition is recorded with a timestamp in the run history
    - Transitions to FAILED store an error code and message

    Example:
        >>> machine = RunStateMachine("checkout")
        >>> machine.transition(RunStage.LOCK_ACQUIRING)
        >>> machine.transition(RunStage.LOCK_TIMEOUT, details={"timeout_seconds": 30})
        >>> machine.is_finished
        True
    """

    def __init__(self, operation: str, run_id: Optional[str] = None):
        self._record = RunRecord(
            run_id=run_id or uuid.uuid4().hex,
            operation=operation,
        )

    @property
    def record(self) -> RunRecord:
        return self._record

    @property
    def run_id(self) -> str:
        return self._record.run_id

    @property
    def stage(self) -> RunStage:
        return self._record.current_stage

    @property
    def is_finished(self) -> bool:
        return is_terminal_stage(self._record.current_stage)

    def transition(
        self,
        to_stage: RunStage,
        details: Optional[Dict[str, Any]] = None,
    ) -> StageTransition:
        """Move the run to ``to_stage``.

        Args:
            to_stage: The target stage.
            details: Optional metadata. For FAILED transitions, should
                     include "code" and "error" keys.

        Returns:
            The recorded transition.

        Raises:
            InvalidTransitionError: If the transition is not valid.
        """
        details = details or {}
        from_stage = self._record.current_stage

        if not is_valid_transition(from_stage, to_stage):
            logger.warning(
                "Invalid stage transition attempted",
                extra={
                    "run_id": self.run_id,
                    "from_stage": from_stage.value,
                    "to_stage": to_stage.value,
                },
            )
            raise InvalidTransitionError(from_stage, to_stage)

        transition = StageTransition(
            from_stage=from_stage,
            to_stage=to_stage,
            timestamp=datetime.now(timezone.utc),
            details=details,
        )

        update: Dict[str, Any] = {
            "current_stage": to_stage,
            "history": self._record.history + [transition],
        }
        if to_stage == RunStage.FAILED:
            update["error_code"] = details.get("code")
            update["error"] = details.get("error") or "Unknown error (no details provided)"

        self._record = self._record.model_copy(update=update)

        logger.debug(
            "Run stage transition",
            extra={
                "run_id": self.run_id,
                "from_stage": from_stage.value,
                "to_stage": to_stage.value,
            },
        )
        return transition

    def mark_lock_released(self) -> None:
        self._record = self._record.model_copy(update={"lock_released": True})
