"""Form submission models for the bike share pipeline.

This module defines the raw event delivered by the intake collaborator and
the parsed, immutable form snapshots the pipeline works on.

A raw submission carries the form's answers as an ordered list. The field
order per operation is fixed and append-only: new optional questions are
added at the end of a form, so older submissions (with fewer answers)
still parse and newer submissions (with more answers) never shift the
meaning of existing positions.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class Operation(str, Enum):
    """Operations a form submission can request.

    Attributes:
        CHECKOUT: The submitter takes a bike.
        RETURN: The submitter (or a friend on their behalf) brings a bike back.
    """

    CHECKOUT = "checkout"
    RETURN = "return"


class RawSubmission(BaseModel):
    """Raw event as delivered by the intake collaborator.

    Attributes:
        operation: Requested operation.
        responses: Form answers in the form's question order.
        source_range_ref: Reference to the response row in the intake
            store, used to mark the entry after processing.
        received_at: When the event reached the service (UTC).
    """

    operation: Operation = Field(
        ...,
        description="Requested operation (checkout or return)",
    )

    responses: List[Any] = Field(
        default_factory=list,
        description="Form answers in question order",
    )

    source_range_ref: Optional[str] = Field(
        default=None,
        description="Reference to the response row in the intake store",
    )

    received_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event was received (UTC timezone)",
    )


class CheckoutForm(BaseModel):
    """Parsed checkout form response."""

    model_config = ConfigDict(frozen=True)

    FIELDS: ClassVar[Tuple[str, ...]] = (
        "timestamp",
        "email",
        "bike_hash",
        "condition_confirmation",
    )

    operation: Operation = Operation.CHECKOUT
    timestamp: Optional[datetime] = None
    email: str = ""
    bike_hash: str = ""
    condition_confirmation: str = ""

    @property
    def bike_identifier(self) -> str:
        return self.bike_hash


class ReturnForm(BaseModel):
    """Parsed return form response.

    Attributes:
        bike_name: Bike name as typed by the submitter.
        confirm_bike_name: The same name typed a second time.
        assure_rode_bike: Submitter confirms they rode this exact bike.
        mismatch_explanation: Why the returned bike differs from the one
            checked out, when it does.
        returning_for_friend: Submitter is returning someone else's bike.
        friend_email: Email of the holder being returned for.
        issues_concerns: Free-text issue report about the bike.
    """

    model_config = ConfigDict(frozen=True)

    FIELDS: ClassVar[Tuple[str, ...]] = (
        "timestamp",
        "email",
        "bike_name",
        "confirm_bike_name",
        "assure_rode_bike",
        "mismatch_explanation",
        "returning_for_friend",
        "friend_email",
        "issues_concerns",
    )

    operation: Operation = Operation.RETURN
    timestamp: Optional[datetime] = None
    email: str = ""
    bike_name: str = ""
    confirm_bike_name: str = ""
    assure_rode_bike: bool = False
    mismatch_explanation: str = ""
    returning_for_friend: bool = False
    friend_email: str = ""
    issues_concerns: str = ""

    @property
    def bike_identifier(self) -> str:
        return self.bike_name


FormData = Union[CheckoutForm, ReturnForm]
