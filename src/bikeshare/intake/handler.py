"""Intake handler for form submissions.

This module provides the IntakeHandler class, which turns the intake
collaborator's payloads into typed form snapshots.

Payload structure (as posted to ``/submissions``):
{
  "operation": "checkout",
  "responses": ["2024-05-01T10:00:00Z", "a@inst.edu", "BK-42", "I consent"],
  "sourceRangeRef": "Checkout Logs!A17"
}

Answer positions follow the form schemas declared on CheckoutForm and
ReturnForm. Content is only normalized here (trimmed, emails lower-cased,
yes/no answers turned into booleans); whether it is acceptable is decided
by the pipeline's validation steps.
"""

import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from bikeshare.intake.models import (
    CheckoutForm,
    FormData,
    Operation,
    RawSubmission,
    ReturnForm,
)
from bikeshare.state.coercion import is_empty, parse_boolean, parse_datetime

logger = logging.getLogger(__name__)

_BOOLEAN_FIELDS = frozenset({"assure_rode_bike", "returning_for_friend"})
_EMAIL_FIELDS = frozenset({"email", "friend_email"})


class IntakeHandler:
    """Parses raw intake payloads into form snapshots."""

    def parse_payload(self, payload: Dict[str, Any]) -> Optional[RawSubmission]:
        """Parse a raw JSON payload into a RawSubmission.

        Returns:
            RawSubmission if the payload is well formed, None otherwise.
            Returns None for:
            - Non-dict payloads
            - Unknown or missing operation
            - Responses that are not a list
        """
        if not isinstance(payload, dict):
            logger.warning("Invalid payload: expected dict, got %s", type(payload))
            return None

        responses = payload.get("responses", [])
        if not isinstance(responses, list):
            logger.warning(
                "Invalid 'responses' field in payload: %s",
                type(responses),
            )
            return None

        try:
            return RawSubmission(
                operation=payload.get("operation"),
                responses=responses,
                source_range_ref=payload.get("sourceRangeRef"),
            )
        except PydanticValidationError as e:
            logger.warning("Failed to validate submission payload: %s", e)
            return None

    def parse_form(self, submission: RawSubmission) -> FormData:
        """Map positional answers to named form fields.

        Args:
            submission: The raw submission.

        Returns:
            CheckoutForm or ReturnForm depending on the operation.
        """
        form_cls = (
            CheckoutForm if submission.operation == Operation.CHECKOUT else ReturnForm
        )
        schema = form_cls.FIELDS
        answers = submission.responses

        if len(answers) > len(schema):
            logger.debug(
                "Ignoring %d unknown trailing answers",
                len(answers) - len(schema),
                extra={"operation": submission.operation.value},
            )

        values: Dict[str, Any] = {}
        for name, raw in zip(schema, answers):
            values[name] = self._normalize(name, raw)

        return form_cls(**values)

    @staticmethod
    def _normalize(name: str, raw: Any) -> Any:
        if name == "timestamp":
            return parse_datetime(raw)
        if name in _BOOLEAN_FIELDS:
            return parse_boolean(raw)
        if is_empty(raw):
            return ""
        text = str(raw).strip()
        return text.lower() if name in _EMAIL_FIELDS else text
