"""Form intake: raw submissions and their parsed form snapshots."""

from bikeshare.intake.handler import IntakeHandler
from bikeshare.intake.models import (
    CheckoutForm,
    FormData,
    Operation,
    RawSubmission,
    ReturnForm,
)

__all__ = [
    "CheckoutForm",
    "FormData",
    "IntakeHandler",
    "Operation",
    "RawSubmission",
    "ReturnForm",
]
