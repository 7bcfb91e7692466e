"""Validation steps.

Each validator inspects the form and the loaded state and either returns
the context (possibly with a resolved bike or user attached) or raises a
ValidationError carrying the notification code for the failure. Validators
never produce writes.

Order is fixed per operation:

Checkout: email domain → system active → bike exists → bike available
→ user eligible.

Return: email domain → system active → bike exists → bike checked out
→ return eligible.
"""

import logging
import re

from bikeshare import errors
from bikeshare.errors import ValidationError
from bikeshare.intake.models import Operation
from bikeshare.matching import find_bike, find_user, fuzzy_match
from bikeshare.state.models import User
from bikeshare.steps.base import PipelineContext, StepChain, step

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(email: str, allowed_domain: str) -> bool:
    """Check email shape and that it belongs to the allowed domain."""
    email = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(email):
        return False
    return email.rsplit("@", 1)[1] == allowed_domain.strip().lower()


@step
def validate_email_domain(context: PipelineContext) -> PipelineContext:
    domain = context.settings.get_allowed_email_domain()
    if not is_valid_email(context.form.email, domain):
        raise ValidationError(
            errors.ERR_INVALID_EMAIL,
            "Submitter email is not a valid institutional address",
            {"email": context.form.email, "allowedDomain": domain},
        )
    return context


@step
def validate_system_active(context: PipelineContext) -> PipelineContext:
    if not context.settings.is_system_active():
        raise ValidationError(
            errors.ERR_SYSTEM_INACTIVE,
            "The bike share system is not active",
            {"operation": context.event.operation.value},
        )
    return context


@step
def validate_bike_exists(context: PipelineContext) -> PipelineContext:
    identifier = context.form.bike_identifier
    bike = find_bike(context.state.bikes, identifier, context.threshold)
    if bike is None:
        code = (
            errors.ERR_CHECKOUT_BIKE_NOT_FOUND
            if context.event.operation == Operation.CHECKOUT
            else errors.ERR_RETURN_BIKE_NOT_FOUND
        )
        raise ValidationError(
            code,
            "No bike matches the submitted identifier",
            {"bikeIdentifier": identifier},
        )
    return context.model_copy(update={"bike": bike})


@step
def validate_bike_available(context: PipelineContext) -> PipelineContext:
    bike = context.bike
    if not bike.is_available:
        raise ValidationError(
            errors.ERR_CHECKOUT_BIKE_UNAVAILABLE,
            "Bike is not available for checkout",
            {"bikeName": bike.name, "availability": bike.availability},
        )
    return context


@step
def validate_user_eligible(context: PipelineContext) -> PipelineContext:
    """Resolve the submitter and refuse a second concurrent checkout.

    A submitter without a row in the users table is a first-time user and
    gets a fresh record, appended on commit.
    """
    email = context.form.email
    user = find_user(context.state.users, email) or User(email=email)

    if user.has_unreturned_bike and not context.settings.can_checkout_with_unreturned_bike():
        raise ValidationError(
            errors.ERR_CHECKOUT_UNRETURNED_BIKE,
            "User already has an unreturned bike",
            {
                "unreturnedBikeName": user.last_checkout_name,
                "lastCheckoutDate": user.last_checkout_date,
            },
        )
    return context.model_copy(update={"user": user, "submitter": user})


@step
def validate_bike_checked_out(context: PipelineContext) -> PipelineContext:
    bike = context.bike
    if not bike.is_checked_out:
        raise ValidationError(
            errors.ERR_RETURN_BIKE_NOT_CHECKED_OUT,
            "Bike is not currently checked out",
            {"bikeName": bike.name, "availability": bike.availability},
        )
    return context


@step
def validate_return_eligible(context: PipelineContext) -> PipelineContext:
    """Decide whose checkout this return closes.

    The typed bike name must match its confirmation. Then either:

    - the submitter declares a friend return and is not the holder: the
      friend must be the bike's holder with an open checkout, and the
      friend's record is the one closed; or
    - the submitter closes their own checkout: they must have one and be
      the bike's holder, and the bike must match the one they checked out
      unless mismatched returns are allowed, in which case the return is
      flagged as a mismatch. A bike with no recorded holder falls back to
      the name comparison alone.
    """
    form = context.form
    bike = context.bike
    threshold = context.threshold

    if not fuzzy_match(form.bike_name, form.confirm_bike_name, threshold=threshold):
        raise ValidationError(
            errors.ERR_RETURN_NAME_MISMATCH,
            "Bike name does not match its confirmation",
            {"bikeName": form.bike_name, "confirmBikeName": form.confirm_bike_name},
        )

    holder = bike.recent_users.most_recent
    submitter = find_user(context.state.users, form.email)
    declares_friend = form.returning_for_friend or bool(form.friend_email)

    if declares_friend and holder != form.email:
        return _validate_friend_return(context, holder, submitter)

    if submitter is None or not submitter.has_unreturned_bike:
        raise ValidationError(
            errors.ERR_RETURN_NO_OPEN_CHECKOUT,
            "Submitter has no open checkout",
            {
                "lastCheckoutName": submitter.last_checkout_name if submitter else "",
                "lastReturnDate": submitter.last_return_date if submitter else None,
            },
        )

    # A direct return can only close the holder's own checkout
    if holder and holder != form.email:
        raise ValidationError(
            errors.ERR_RETURN_CHECKOUT_MISMATCH,
            "Submitter is not the bike's current holder",
            {"bikeName": bike.name, "lastCheckoutName": submitter.last_checkout_name},
        )

    mismatch = not fuzzy_match(
        submitter.last_checkout_name, bike.name, threshold=threshold
    )
    if mismatch and not context.settings.can_return_with_mismatched_name():
        raise ValidationError(
            errors.ERR_RETURN_CHECKOUT_MISMATCH,
            "Returned bike differs from the checked out bike",
            {"bikeName": bike.name, "lastCheckoutName": submitter.last_checkout_name},
        )

    return context.model_copy(
        update={"user": submitter, "submitter": submitter, "is_mismatch": mismatch}
    )


def _validate_friend_return(
    context: PipelineContext, holder: str, submitter: "User | None"
) -> PipelineContext:
    friend_email = context.form.friend_email
    if not friend_email:
        raise ValidationError(
            errors.ERR_RETURN_FRIEND_EMAIL_MISSING,
            "Friend return without a friend email",
            {"bikeName": context.bike.name},
        )

    domain = context.settings.get_allowed_email_domain()
    if not is_valid_email(friend_email, domain):
        raise ValidationError(
            errors.ERR_INVALID_FRIEND_EMAIL,
            "Friend email is not a valid institutional address",
            {"friendEmail": friend_email, "allowedDomain": domain},
        )

    if friend_email != holder:
        raise ValidationError(
            errors.ERR_RETURN_FRIEND_NOT_HOLDER,
            "Friend is not the bike's current holder",
            {"friendEmail": friend_email, "bikeName": context.bike.name},
        )

    friend = find_user(context.state.users, friend_email)
    if friend is None:
        raise ValidationError(
            errors.ERR_RETURN_FRIEND_NOT_FOUND,
            "Friend has no user record",
            {"friendEmail": friend_email},
        )
    if not friend.has_unreturned_bike:
        raise ValidationError(
            errors.ERR_RETURN_FRIEND_NOT_HOLDER,
            "Friend has no open checkout",
            {"friendEmail": friend_email, "bikeName": context.bike.name},
        )

    logger.info(
        "Return on behalf of holder",
        extra={"run_id": context.event.run_id, "bike": context.bike.name},
    )
    return context.model_copy(
        update={"user": friend, "submitter": submitter, "is_friend_return": True}
    )


CHECKOUT_VALIDATION = StepChain(
    "checkout validation",
    [
        validate_email_domain,
        validate_system_active,
        validate_bike_exists,
        validate_bike_available,
        validate_user_eligible,
    ],
)

RETURN_VALIDATION = StepChain(
    "return validation",
    [
        validate_email_domain,
        validate_system_active,
        validate_bike_exists,
        validate_bike_checked_out,
        validate_return_eligible,
    ],
)


def validation_chain(operation: Operation) -> StepChain:
    return CHECKOUT_VALIDATION if operation == Operation.CHECKOUT else RETURN_VALIDATION
