"""Pipeline context and step composition.

A pipeline run threads one PipelineContext through an ordered chain of
steps. Each step takes the context and returns a new one (contexts are
frozen, so steps cannot mutate what an earlier step saw) or raises a
BikeShareError to stop the chain. StepChain.run is an explicit loop with
early exit: the first failing step ends the run and no later step executes.
"""

import logging
from datetime import datetime
from typing import Callable, NamedTuple, Optional, Protocol, Sequence, Tuple, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from bikeshare.errors import BikeShareError, StepExecutionError
from bikeshare.events.models import NotificationIntent
from bikeshare.intake.models import FormData, Operation
from bikeshare.settings.models import SettingsSnapshot
from bikeshare.state.models import Bike, SystemState, User
from bikeshare.store.models import CellMark, WriteDescriptor

logger = logging.getLogger(__name__)


class EventContext(BaseModel):
    """Identity and timing of the event being processed.

    Attributes:
        run_id: Identifier of the pipeline run.
        operation: Requested operation.
        source_range_ref: Reference to the response row in the intake store.
        received_at: When the service received the event.
        timestamp: The event's own time (submission timestamp, or
            ``received_at`` when the form carried none). Every date and
            duration a step computes uses this value, never the clock.
    """

    model_config = ConfigDict(frozen=True)

    run_id: str
    operation: Operation
    source_range_ref: Optional[str] = None
    received_at: datetime
    timestamp: datetime


class PipelineContext(BaseModel):
    """Unit of work threaded through the step chain of one run.

    Attributes:
        form: The parsed form submission.
        event: Identity and timing of the event.
        settings: Settings snapshot fixed for the whole run.
        state: Bikes and users as loaded at the start of the run.
        bike: The resolved target bike (an updated copy after mutation).
        user: The user whose record the run changes. On a friend return
            this is the bike's holder, not the submitter.
        submitter: The submitter's record, if they have one.
        is_friend_return: The submitter returns the holder's bike.
        is_mismatch: The returned bike differs from the user's checkout.
        issue_reported: The return carried an actionable issue report.
        usage_hours: Elapsed hours of the closed checkout (returns only).
        writes: Pending row writes.
        marks: Pending cell marks.
        notifications: Notification intents produced by the steps.
        errors: Codes of errors recorded against this context.
    """

    model_config = ConfigDict(frozen=True)

    form: FormData
    event: EventContext
    settings: SettingsSnapshot
    state: SystemState
    bike: Optional[Bike] = None
    user: Optional[User] = None
    submitter: Optional[User] = None
    is_friend_return: bool = False
    is_mismatch: bool = False
    issue_reported: bool = False
    usage_hours: Optional[float] = None
    writes: Tuple[WriteDescriptor, ...] = ()
    marks: Tuple[CellMark, ...] = ()
    notifications: Tuple[NotificationIntent, ...] = Field(default=())
    errors: Tuple[str, ...] = ()

    @property
    def timestamp(self) -> datetime:
        return self.event.timestamp

    @property
    def threshold(self) -> float:
        return self.settings.get_fuzzy_threshold()

    def with_write(self, descriptor: WriteDescriptor) -> "PipelineContext":
        """Add a pending write, replacing an earlier one for the same record."""
        kept = tuple(
            w
            for w in self.writes
            if not (w.table == descriptor.table and w.key == descriptor.key)
        )
        return self.model_copy(update={"writes": kept + (descriptor,)})

    def with_mark(self, mark: CellMark) -> "PipelineContext":
        return self.model_copy(update={"marks": self.marks + (mark,)})

    def with_notification(self, intent: NotificationIntent) -> "PipelineContext":
        return self.model_copy(update={"notifications": self.notifications + (intent,)})

    def with_error(self, code: str) -> "PipelineContext":
        return self.model_copy(update={"errors": self.errors + (code,)})


@runtime_checkable
class Step(Protocol):
    """A single transformation of the pipeline context."""

    name: str

    def apply(self, context: PipelineContext) -> PipelineContext:
        """Return the next context or raise a BikeShareError."""
        ...


class FunctionStep:
    """Adapts a plain ``context -> context`` function to the Step protocol."""

    def __init__(
        self,
        fn: Callable[[PipelineContext], PipelineContext],
        name: Optional[str] = None,
    ):
        self.fn = fn
        self.name = name or fn.__name__

    def apply(self, context: PipelineContext) -> PipelineContext:
        return self.fn(context)

    __call__ = apply

    def __repr__(self) -> str:
        return f"FunctionStep({self.name})"


def step(fn: Callable[[PipelineContext], PipelineContext]) -> FunctionStep:
    """Decorator turning a module-level function into a Step."""
    return FunctionStep(fn)


class StepResult(NamedTuple):
    """Outcome of running a chain.

    Attributes:
        context: Last context produced. On failure, the context as it was
            before the failing step, with the error's code recorded.
        error: The error that stopped the chain, if any.
        failed_step: Name of the step that raised.
        executed: Names of the steps that ran, the failing one included.
    """

    context: PipelineContext
    error: Optional[BikeShareError] = None
    failed_step: Optional[str] = None
    executed: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None


class StepChain:
    """Ordered list of steps run with early exit on the first error.

    Attributes:
        name: Chain name for logs ("checkout validation", ...).
        steps: The steps in execution order.
    """

    def __init__(self, name: str, steps: Sequence[Step]):
        self.name = name
        self.steps = tuple(steps)

    @property
    def step_names(self) -> Tuple[str, ...]:
        return tuple(s.name for s in self.steps)

    def run(self, context: PipelineContext) -> StepResult:
        """Apply every step in order, stopping at the first failure.

        BikeShareErrors raised by a step are returned as-is. Any other
        exception is a bug in the step; it is logged with its traceback and
        returned wrapped in a StepExecutionError.
        """
        executed = []
        for current in self.steps:
            executed.append(current.name)
            try:
                context = current.apply(context)
            except BikeShareError as exc:
                logger.info(
                    "Step chain stopped",
                    extra={
                        "chain": self.name,
                        "step": current.name,
                        "code": exc.code,
                        "run_id": context.event.run_id,
                    },
                )
                return StepResult(
                    context.with_error(exc.code), exc, current.name, tuple(executed)
                )
            except Exception as exc:
                logger.exception(
                    "Step raised unexpectedly",
                    extra={
                        "chain": self.name,
                        "step": current.name,
                        "run_id": context.event.run_id,
                    },
                )
                error = StepExecutionError(current.name, exc)
                return StepResult(
                    context.with_error(error.code), error, current.name, tuple(executed)
                )
        return StepResult(context, None, None, tuple(executed))
