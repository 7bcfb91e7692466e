"""Business-logic steps.

These steps run only after validation passed. They derive updated copies of
the target bike and user, and queue the row writes, cell marks and the
confirmation intent the orchestrator commits and dispatches afterwards.
Every date and duration comes from the event timestamp.
"""

import logging
from datetime import datetime
from typing import Optional

from bikeshare import errors
from bikeshare.events.models import NotificationChannel, NotificationIntent
from bikeshare.intake.models import Operation
from bikeshare.matching import normalize_text
from bikeshare.state.loader import (
    MAINTENANCE_STATUS_COLUMN,
    bike_to_row,
    cell_ref,
    user_to_row,
)
from bikeshare.state.models import Availability, MaintenanceStatus, User
from bikeshare.steps.base import PipelineContext, StepChain, step
from bikeshare.store.models import CellMark, WriteDescriptor, WriteKind

logger = logging.getLogger(__name__)

LOG_COLUMNS = (
    "timestamp",
    "run_id",
    "operation",
    "submitter_email",
    "user_email",
    "bike_name",
    "bike_hash",
    "usage_hours",
    "friend_return",
    "mismatch",
    "issues",
)


def elapsed_hours(start: Optional[datetime], end: datetime) -> float:
    """Hours between two instants, rounded to 2 places and never negative."""
    if start is None:
        return 0.0
    return round(max(0.0, (end - start).total_seconds() / 3600.0), 2)


def is_actionable_issue(text: str, ignored) -> bool:
    """An issue report counts unless it is empty or a known filler answer."""
    normalized = normalize_text(text)
    return bool(normalized) and normalized not in ignored


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


@step
def process_checkout_transaction(context: PipelineContext) -> PipelineContext:
    bike = context.bike
    recent_users, evicted = bike.recent_users.push(context.user.email)
    updated = bike.model_copy(
        update={
            "availability": Availability.CHECKED_OUT.value,
            "last_checkout_date": context.timestamp,
            "current_usage_timer": 0.0,
            "recent_users": recent_users,
            "last_evicted_user": evicted or bike.last_evicted_user,
        }
    )
    return context.model_copy(update={"bike": updated})


@step
def process_return_transaction(context: PipelineContext) -> PipelineContext:
    bike = context.bike
    hours = elapsed_hours(bike.last_checkout_date, context.timestamp)

    update = {
        "availability": Availability.AVAILABLE.value,
        "last_return_date": context.timestamp,
        "current_usage_timer": 0.0,
        "total_usage_hours": round(bike.total_usage_hours + hours, 2),
    }
    issue_reported = is_actionable_issue(
        context.form.issues_concerns,
        context.settings.get_ignored_issue_statements(),
    )
    if issue_reported:
        update["maintenance_status"] = MaintenanceStatus.HAS_ISSUE.value

    return context.model_copy(
        update={
            "bike": bike.model_copy(update=update),
            "usage_hours": hours,
            "issue_reported": issue_reported,
        }
    )


# ---------------------------------------------------------------------------
# Record updates
# ---------------------------------------------------------------------------


@step
def update_bike_status(context: PipelineContext) -> PipelineContext:
    bike = context.bike
    table = context.settings.bikes_table
    context = context.with_write(
        WriteDescriptor(
            table=table,
            kind=WriteKind.UPDATE,
            row_index=bike.row_index,
            values=tuple(bike_to_row(bike)),
            key=bike.name,
        )
    )
    if context.issue_reported:
        context = context.with_mark(
            CellMark(
                range_ref=cell_ref(table, MAINTENANCE_STATUS_COLUMN, bike.row_index),
                note=context.form.issues_concerns,
            )
        )
    return context


def _user_write(context: PipelineContext, user: User) -> WriteDescriptor:
    return WriteDescriptor(
        table=context.settings.users_table,
        kind=WriteKind.APPEND if user.is_new else WriteKind.UPDATE,
        row_index=user.row_index,
        values=tuple(user_to_row(user)),
        key=user.email,
    )


@step
def update_user_status(context: PipelineContext) -> PipelineContext:
    """Record the checkout or return on the user whose bike this is.

    First-time users have no row yet; their write is an append.
    """
    user = context.user
    bike_name = context.bike.name
    ts = context.timestamp

    if context.event.operation == Operation.CHECKOUT:
        update = {
            "has_unreturned_bike": True,
            "last_checkout_name": bike_name,
            "last_checkout_date": ts,
            "number_of_checkouts": user.number_of_checkouts + 1,
        }
        if user.first_usage_date is None:
            update["first_usage_date"] = ts
    else:
        update = {
            "has_unreturned_bike": False,
            "last_return_name": bike_name,
            "last_return_date": ts,
        }
        if context.is_mismatch:
            update["number_of_mismatches"] = user.number_of_mismatches + 1

    updated = user.model_copy(update=update)
    context = context.model_copy(update={"user": updated})
    return context.with_write(_user_write(context, updated))


@step
def calculate_usage_hours(context: PipelineContext) -> PipelineContext:
    user = context.user
    hours = context.usage_hours or 0.0
    overdue = hours > context.settings.get_max_checkout_hours()

    updated = user.model_copy(
        update={
            "usage_hours": round(user.usage_hours + hours, 2),
            "number_of_returns": user.number_of_returns + 1,
            "overdue_returns": user.overdue_returns + (1 if overdue else 0),
        }
    )
    if overdue:
        logger.info(
            "Overdue return",
            extra={"run_id": context.event.run_id, "bike": context.bike.name, "hours": hours},
        )
    context = context.model_copy(update={"user": updated})
    return context.with_write(_user_write(context, updated))


@step
def create_log_record(context: PipelineContext) -> PipelineContext:
    form = context.form
    is_return = context.event.operation == Operation.RETURN
    values = (
        context.timestamp,
        context.event.run_id,
        context.event.operation.value,
        form.email,
        context.user.email,
        context.bike.name,
        context.bike.bike_hash,
        context.usage_hours if is_return else "",
        "Yes" if context.is_friend_return else "No",
        "Yes" if context.is_mismatch else "No",
        form.issues_concerns if is_return else "",
    )
    return context.with_write(
        WriteDescriptor(
            table=context.settings.log_table,
            kind=WriteKind.APPEND,
            values=values,
            key=f"log:{context.event.run_id}",
        )
    )


@step
def queue_confirmation(context: PipelineContext) -> PipelineContext:
    if context.event.operation == Operation.CHECKOUT:
        code = errors.CFM_CHECKOUT
    elif context.is_friend_return:
        code = errors.CFM_RETURN_FOR_FRIEND
    elif context.is_mismatch:
        code = errors.CFM_RETURN_MISMATCH
    else:
        code = errors.CFM_RETURN

    max_hours = context.settings.get_max_checkout_hours()
    hours = context.usage_hours
    fields = {
        "userEmail": context.user.email,
        "bikeName": context.bike.name,
        "bikeHash": context.bike.bike_hash,
        "timestamp": context.timestamp.isoformat(),
        "maxCheckoutHours": max_hours,
    }
    if hours is not None:
        fields["usageHours"] = hours
        fields["overdue"] = hours > max_hours
    if context.is_friend_return:
        fields["submitterEmail"] = context.form.email

    return context.with_notification(
        NotificationIntent(code=code, channel=NotificationChannel.USER, fields=fields)
    )


CHECKOUT_MUTATION = StepChain(
    "checkout mutation",
    [
        process_checkout_transaction,
        update_bike_status,
        update_user_status,
        create_log_record,
        queue_confirmation,
    ],
)

RETURN_MUTATION = StepChain(
    "return mutation",
    [
        process_return_transaction,
        update_bike_status,
        update_user_status,
        calculate_usage_hours,
        create_log_record,
        queue_confirmation,
    ],
)


def mutation_chain(operation: Operation) -> StepChain:
    return CHECKOUT_MUTATION if operation == Operation.CHECKOUT else RETURN_MUTATION
