"""Pipeline steps.

A run threads a frozen PipelineContext through two chains per operation:
validation (read-only checks) and mutation (record updates, pending writes
and the confirmation intent). Chains stop at the first failing step.
"""

from bikeshare.steps.base import (
    EventContext,
    FunctionStep,
    PipelineContext,
    Step,
    StepChain,
    StepResult,
    step,
)
from bikeshare.steps.business import (
    CHECKOUT_MUTATION,
    RETURN_MUTATION,
    calculate_usage_hours,
    create_log_record,
    elapsed_hours,
    mutation_chain,
    process_checkout_transaction,
    process_return_transaction,
    queue_confirmation,
    update_bike_status,
    update_user_status,
)
from bikeshare.steps.validation import (
    CHECKOUT_VALIDATION,
    RETURN_VALIDATION,
    is_valid_email,
    validate_bike_available,
    validate_bike_checked_out,
    validate_bike_exists,
    validate_email_domain,
    validate_return_eligible,
    validate_system_active,
    validate_user_eligible,
    validation_chain,
)

__all__ = [
    # Composition
    "EventContext",
    "FunctionStep",
    "PipelineContext",
    "Step",
    "StepChain",
    "StepResult",
    "step",
    # Validation
    "CHECKOUT_VALIDATION",
    "RETURN_VALIDATION",
    "is_valid_email",
    "validate_bike_available",
    "validate_bike_checked_out",
    "validate_bike_exists",
    "validate_email_domain",
    "validate_return_eligible",
    "validate_system_active",
    "validate_user_eligible",
    "validation_chain",
    # Business logic
    "CHECKOUT_MUTATION",
    "RETURN_MUTATION",
    "calculate_usage_hours",
    "create_log_record",
    "elapsed_hours",
    "mutation_chain",
    "process_checkout_transaction",
    "process_return_transaction",
    "queue_confirmation",
    "update_bike_status",
    "update_user_status",
]
