"""Pipeline orchestrator driving one form submission through a run.

Each submission is processed under the global lock:
lock_acquiring → loading → validating → mutating → committing → notifying
→ released. Validation, state-load, commit and unexpected step failures end
the run in ``failed``; a lock that is not acquired in time ends it in
``lock_timeout`` without reading or writing anything.

The orchestrator delegates all work to injected collaborators and uses the
run state machine for transitions and the event emitter for observability.
Exactly one notification intent is dispatched per terminal outcome: the
confirmation queued by the business steps on success, or one failure
intent routed by error family otherwise. When settings are loaded, the
submission's source row is colored and annotated for that intent's code.
"""

import logging
import time
from typing import List, Optional

from pydantic import BaseModel, Field

from bikeshare.errors import (
    BikeShareError,
    ConfigLoadError,
    DuplicateSubmissionError,
    LockTimeoutError,
    StepExecutionError,
    StoreWriteError,
    ValidationError,
)
from bikeshare.events.emitter import EventEmitter, NullEventEmitter
from bikeshare.events.models import (
    EventType,
    NotificationChannel,
    NotificationIntent,
    PipelineEvent,
)
from bikeshare.events.notifications import (
    LoggingNotificationSink,
    NotificationDispatcher,
    source_mark,
)
from bikeshare.intake.handler import IntakeHandler
from bikeshare.intake.models import FormData, RawSubmission
from bikeshare.ledger import SubmissionLedger, submission_key
from bikeshare.lock import GlobalLock
from bikeshare.runs.machine import RunStateMachine
from bikeshare.runs.models import RunRecord, RunStage
from bikeshare.settings.cache import SettingsCache
from bikeshare.settings.models import SettingsSnapshot
from bikeshare.state.loader import StateLoader
from bikeshare.steps.base import EventContext, PipelineContext
from bikeshare.steps.business import mutation_chain
from bikeshare.steps.validation import validation_chain
from bikeshare.store.models import CellMark, CommitResult
from bikeshare.store.persistence import BatchCommitter
from bikeshare.store.protocol import RowStore

logger = logging.getLogger(__name__)


class RunResult(BaseModel):
    """Outcome of one processed submission.

    Attributes:
        record: Final run record with the full transition history.
        context: Last pipeline context, if the run got past loading.
        commit_results: Per-write results, if the run reached commit.
        notifications: Intents produced for the terminal outcome.
        delivered: Intents the notification sink accepted.
        error_code: Code of the failure, None on success.
        error_message: Log message of the failure, None on success.
    """

    record: RunRecord
    context: Optional[PipelineContext] = None
    commit_results: List[CommitResult] = Field(default_factory=list)
    notifications: List[NotificationIntent] = Field(default_factory=list)
    delivered: List[NotificationIntent] = Field(default_factory=list)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.record.current_stage == RunStage.RELEASED

    @property
    def stage(self) -> RunStage:
        return self.record.current_stage


class _RunOutcome:
    """Mutable accumulator for the parts of a RunResult built along the way."""

    def __init__(self, source_range_ref: Optional[str] = None):
        self.source_range_ref = source_range_ref
        self.settings: Optional[SettingsSnapshot] = None
        self.context: Optional[PipelineContext] = None
        self.commit_results: List[CommitResult] = []
        self.notifications: List[NotificationIntent] = []
        self.delivered: List[NotificationIntent] = []
        self.error: Optional[BikeShareError] = None


def channel_for(error: BikeShareError) -> NotificationChannel:
    """Route a failure to its audience by error family."""
    if isinstance(error, ValidationError):
        return NotificationChannel.USER
    if isinstance(error, StepExecutionError):
        return NotificationChannel.DEVELOPER
    return NotificationChannel.ADMIN


class PipelineOrchestrator:
    """Processes form submissions one at a time under the global lock.

    Attributes:
        store: Row store holding the bikes, users and log tables.
        settings_cache: Process-wide settings cache.
        lock: Global lock shared with timer and manual-edit runs.
        committer: Batch persistence of pending writes.
        dispatcher: Hand-off of notification intents.
        event_emitter: Emits pipeline events for observability.
        ledger: Keys of committed submissions, for duplicate detection.
        intake: Parser from raw submissions to forms.
        lock_timeout_seconds: Bounded lock wait; the lock's default if None.
    """

    def __init__(
        self,
        store: RowStore,
        settings_cache: SettingsCache,
        lock: GlobalLock,
        committer: Optional[BatchCommitter] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        event_emitter: Optional[EventEmitter] = None,
        ledger: Optional[SubmissionLedger] = None,
        intake: Optional[IntakeHandler] = None,
        lock_timeout_seconds: Optional[float] = None,
    ):
        self.store = store
        self.settings_cache = settings_cache
        self.lock = lock
        self.committer = committer or BatchCommitter(store)
        self.dispatcher = dispatcher or NotificationDispatcher(LoggingNotificationSink())
        self.event_emitter = event_emitter or NullEventEmitter()
        self.ledger = ledger or SubmissionLedger()
        self.intake = intake or IntakeHandler()
        self.lock_timeout_seconds = lock_timeout_seconds

    def process_submission(self, raw: RawSubmission) -> RunResult:
        """Run one submission end to end.

        Args:
            raw: The raw intake event.

        Returns:
            RunResult describing the terminal stage, writes and intents.

        Raises:
            ConfigLoadError: If configuration cannot be loaded. The run is
                marked failed, its admin intent dispatched and the lock
                released before the error propagates.
        """
        form = self.intake.parse_form(raw)
        machine = RunStateMachine(raw.operation.value)
        event = EventContext(
            run_id=machine.run_id,
            operation=raw.operation,
            source_range_ref=raw.source_range_ref,
            received_at=raw.received_at,
            timestamp=form.timestamp or raw.received_at,
        )
        outcome = _RunOutcome(raw.source_range_ref)
        started = time.monotonic()

        logger.info(
            "Processing submission",
            extra={
                "run_id": machine.run_id,
                "operation": raw.operation.value,
                "source_range_ref": raw.source_range_ref,
            },
        )

        self._transition(machine, RunStage.LOCK_ACQUIRING)
        try:
            with self.lock.hold(self.lock_timeout_seconds, owner=machine.run_id):
                self._run_locked(machine, form, event, outcome, started)
        except LockTimeoutError as exc:
            self._handle_lock_timeout(machine, form, exc, outcome, started)
            return self._result(machine, outcome)
        except ConfigLoadError:
            machine.mark_lock_released()
            raise

        machine.mark_lock_released()
        if machine.stage == RunStage.NOTIFYING:
            self._transition(machine, RunStage.RELEASED)
            self._emit(
                machine,
                EventType.COMPLETION,
                {
                    "duration_seconds": time.monotonic() - started,
                    "writes": len(outcome.commit_results),
                },
            )
            logger.info(
                "Submission processed",
                extra={
                    "run_id": machine.run_id,
                    "operation": raw.operation.value,
                    "writes": len(outcome.commit_results),
                },
            )
        return self._result(machine, outcome)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _run_locked(
        self,
        machine: RunStateMachine,
        form: FormData,
        event: EventContext,
        outcome: _RunOutcome,
        started: float,
    ) -> None:
        self._transition(machine, RunStage.LOADING)
        key = submission_key(form, event.received_at)
        try:
            if self.ledger.seen(key):
                raise DuplicateSubmissionError(key)
            outcome.settings = self.settings_cache.get_snapshot()
            state = StateLoader(
                self.store,
                outcome.settings.bikes_table,
                outcome.settings.users_table,
            ).load_state()
        except ConfigLoadError as exc:
            self._fail(machine, form, exc, outcome, started)
            raise
        except BikeShareError as exc:
            self._fail(machine, form, exc, outcome, started)
            return
        except Exception as exc:
            logger.exception("State load raised unexpectedly", extra={"run_id": machine.run_id})
            self._fail(machine, form, StepExecutionError("load_state", exc), outcome, started)
            return

        context = PipelineContext(
            form=form, event=event, settings=outcome.settings, state=state
        )
        outcome.context = context

        self._transition(machine, RunStage.VALIDATING)
        result = validation_chain(event.operation).run(context)
        outcome.context = result.context
        if not result.ok:
            self._fail(machine, form, result.error, outcome, started)
            return

        self._transition(machine, RunStage.MUTATING)
        result = mutation_chain(event.operation).run(result.context)
        outcome.context = context = result.context
        if not result.ok:
            self._fail(machine, form, result.error, outcome, started)
            return

        self._transition(machine, RunStage.COMMITTING)
        outcome.commit_results = self._commit(machine, context)
        failed = [r for r in outcome.commit_results if not r.success]
        if failed:
            error = StoreWriteError([r.descriptor.to_log_dict() for r in failed])
            self._fail(machine, form, error, outcome, started)
            return
        self.committer.apply_marks(
            list(context.marks) + self._source_marks(outcome, context.notifications)
        )
        self.ledger.record(key)

        self._transition(machine, RunStage.NOTIFYING)
        outcome.notifications = list(context.notifications)
        outcome.delivered = self.dispatcher.dispatch(outcome.notifications, outcome.settings)

    def _commit(self, machine: RunStateMachine, context: PipelineContext) -> List[CommitResult]:
        try:
            return self.committer.commit(context.writes)
        except Exception as exc:
            logger.exception("Commit raised unexpectedly", extra={"run_id": machine.run_id})
            return [
                CommitResult(descriptor=d, success=False, batched=False, error=str(exc))
                for d in context.writes
            ]

    def _handle_lock_timeout(
        self,
        machine: RunStateMachine,
        form: FormData,
        exc: LockTimeoutError,
        outcome: _RunOutcome,
        started: float,
    ) -> None:
        self._transition(
            machine, RunStage.LOCK_TIMEOUT, {"timeout_seconds": exc.timeout_seconds}
        )
        self._emit(
            machine,
            EventType.TIMEOUT,
            {
                "timeout_seconds": exc.timeout_seconds,
                "duration_seconds": time.monotonic() - started,
            },
        )
        outcome.error = exc
        intent = self._failure_intent(machine, form, exc, RunStage.LOCK_ACQUIRING)
        outcome.notifications = [intent]
        outcome.delivered = self.dispatcher.dispatch([intent])

    def _fail(
        self,
        machine: RunStateMachine,
        form: FormData,
        error: BikeShareError,
        outcome: _RunOutcome,
        started: float,
    ) -> None:
        """Transition to FAILED, emit an error event and dispatch one intent."""
        stage = machine.stage
        log = logger.info if isinstance(error, ValidationError) else logger.error
        log(
            "Run failed",
            extra={
                "run_id": machine.run_id,
                "stage": stage.value,
                "code": error.code,
                "error_type": type(error).__name__,
            },
        )

        self._transition(
            machine, RunStage.FAILED, {"code": error.code, "error": error.message}
        )
        self._emit(
            machine,
            EventType.ERROR,
            {
                "stage": stage.value,
                "code": error.code,
                "error_type": type(error).__name__,
                "duration_seconds": time.monotonic() - started,
            },
        )

        outcome.error = error
        intent = self._failure_intent(machine, form, error, stage)
        outcome.notifications = [intent]
        self.committer.apply_marks(self._source_marks(outcome, [intent]))
        outcome.delivered = self.dispatcher.dispatch([intent], outcome.settings)

    @staticmethod
    def _source_marks(
        outcome: _RunOutcome, intents: List[NotificationIntent]
    ) -> List[CellMark]:
        """Marks for the submission's source row, one per intent with a configured mark."""
        if outcome.settings is None:
            return []
        marks = [source_mark(outcome.source_range_ref, i, outcome.settings) for i in intents]
        return [m for m in marks if m is not None]

    @staticmethod
    def _failure_intent(
        machine: RunStateMachine,
        form: FormData,
        error: BikeShareError,
        stage: RunStage,
    ) -> NotificationIntent:
        channel = channel_for(error)
        fields = {**error.fields, "userEmail": form.email}
        if channel != NotificationChannel.USER:
            fields.update(
                {
                    "runId": machine.run_id,
                    "operation": form.operation.value,
                    "stage": stage.value,
                    "message": error.message,
                }
            )
        return NotificationIntent(code=error.code, channel=channel, fields=fields)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _transition(self, machine: RunStateMachine, to_stage: RunStage, details=None) -> None:
        from_stage = machine.stage
        machine.transition(to_stage, details)
        self._emit(
            machine,
            EventType.STATE_TRANSITION,
            {"from_stage": from_stage.value, "to_stage": to_stage.value},
        )

    def _emit(self, machine: RunStateMachine, event_type: EventType, details) -> None:
        self._safe_emit(
            PipelineEvent(
                event_type=event_type,
                run_id=machine.run_id,
                operation=machine.record.operation,
                details=details,
            )
        )

    def _safe_emit(self, event: PipelineEvent) -> None:
        """Emit an event, swallowing exceptions to avoid disrupting the run."""
        try:
            self.event_emitter.emit(event)
        except Exception:
            logger.exception(
                "Failed to emit pipeline event",
                extra={"event_type": event.event_type.value, "run_id": event.run_id},
            )

    @staticmethod
    def _result(machine: RunStateMachine, outcome: _RunOutcome) -> RunResult:
        return RunResult(
            record=machine.record,
            context=outcome.context,
            commit_results=outcome.commit_results,
            notifications=outcome.notifications,
            delivered=outcome.delivered,
            error_code=outcome.error.code if outcome.error else None,
            error_message=outcome.error.message if outcome.error else None,
        )
