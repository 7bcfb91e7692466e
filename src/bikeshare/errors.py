"""Error taxonomy and notification codes for the bike share pipeline.

Three families of failure are distinguished:

- ValidationError: user-caused and expected (bike not found, already
  checked out). Always answered with a user-facing notification and never
  escalated.
- PipelineSystemError and its subclasses: lock timeouts, store failures,
  unexpected step exceptions. Escalated to admin or developer channels and
  logged; the run is marked failed.
- ConfigLoadError: fatal for a run. Propagates to the caller instead of
  letting the pipeline run on partial or default configuration.

Every error carries a stable notification ``code`` that the notification
collaborator renders into a message, and a ``fields`` mapping for
interpolation. Internal exception text is never placed into ``fields`` for
user-facing errors.
"""

from typing import Any, Dict, List, Optional


# ---------------------------------------------------------------------------
# Notification codes
# ---------------------------------------------------------------------------

# Confirmations
CFM_CHECKOUT = "CFM_USR_COT_001"
CFM_RETURN = "CFM_USR_RET_001"
CFM_RETURN_FOR_FRIEND = "CFM_USR_RET_003"
CFM_RETURN_MISMATCH = "CFM_USR_RET_004"

# User errors
ERR_INVALID_EMAIL = "ERR_USR_EMAIL_001"
ERR_INVALID_FRIEND_EMAIL = "ERR_USR_EMAIL_002"
ERR_SYSTEM_INACTIVE = "ERR_OPR_COR_001"
ERR_CHECKOUT_UNRETURNED_BIKE = "ERR_USR_COT_002"
ERR_CHECKOUT_BIKE_NOT_FOUND = "ERR_USR_COT_003"
ERR_CHECKOUT_BIKE_UNAVAILABLE = "ERR_USR_COT_004"
ERR_RETURN_NAME_MISMATCH = "ERR_USR_RET_001"
ERR_RETURN_BIKE_NOT_FOUND = "ERR_USR_RET_002"
ERR_RETURN_FRIEND_NOT_HOLDER = "ERR_USR_RET_003"
ERR_RETURN_FRIEND_EMAIL_MISSING = "ERR_USR_RET_004"
ERR_RETURN_NO_OPEN_CHECKOUT = "ERR_USR_RET_006"
ERR_RETURN_CHECKOUT_MISMATCH = "ERR_USR_RET_007"
ERR_RETURN_BIKE_NOT_CHECKED_OUT = "ERR_USR_RET_008"
ERR_RETURN_FRIEND_NOT_FOUND = "ERR_USR_RET_010"

# System errors
ERR_SYSTEM = "ERR_SYS_001"
ERR_LOCK_TIMEOUT = "ERR_SYS_LCK_001"
ERR_STORE_WRITE = "ERR_SYS_STR_001"
ERR_CONFIG_LOAD = "ERR_SYS_CFG_001"
ERR_STATE_LOAD = "ERR_SYS_LOD_001"

# Warnings
WRN_DUPLICATE_SUBMISSION = "WRN_SYS_DUP_001"


class BikeShareError(Exception):
    """Base class for all pipeline errors.

    Attributes:
        code: Stable notification code for this failure.
        message: Human-readable message for logs.
        fields: Structured values for message interpolation.
    """

    default_code = ERR_SYSTEM

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        fields: Optional[Dict[str, Any]] = None,
    ):
        self.code = code or self.default_code
        self.message = message
        self.fields: Dict[str, Any] = dict(fields or {})
        super().__init__(message)


class ValidationError(BikeShareError):
    """Raised by a validation step when a precondition fails.

    The code is required: every user-facing failure maps to a specific
    message template owned by the notification collaborator.
    """

    def __init__(
        self,
        code: str,
        message: str,
        fields: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code=code, fields=fields)


class PipelineSystemError(BikeShareError):
    """Raised for failures that are not the submitter's fault."""


class LockTimeoutError(PipelineSystemError):
    """Raised when the global lock is not acquired within the bounded wait.

    Attributes:
        lock_name: Name of the lock that timed out.
        timeout_seconds: The wait that elapsed.
    """

    default_code = ERR_LOCK_TIMEOUT

    def __init__(self, lock_name: str, timeout_seconds: float):
        self.lock_name = lock_name
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Could not acquire lock '{lock_name}' within {timeout_seconds}s",
            fields={"lockName": lock_name, "timeoutSeconds": timeout_seconds},
        )


class StateLoadError(PipelineSystemError):
    """Raised when the bike or user table cannot be read from the store."""

    default_code = ERR_STATE_LOAD

    def __init__(self, table: str, cause: Exception):
        self.table = table
        self.cause = cause
        super().__init__(
            f"Failed to load table '{table}': {cause}",
            fields={"table": table},
        )


class StoreWriteError(PipelineSystemError):
    """Raised when one or more pending writes could not be committed.

    Attributes:
        failed_writes: Serialized descriptors of the writes that failed, so
            an operator can replay exactly that subset.
    """

    default_code = ERR_STORE_WRITE

    def __init__(self, failed_writes: List[Dict[str, Any]]):
        self.failed_writes = failed_writes
        super().__init__(
            f"{len(failed_writes)} write(s) failed during commit",
            fields={"failedWrites": failed_writes},
        )


class StepExecutionError(PipelineSystemError):
    """Raised when a business-logic step fails unexpectedly.

    Attributes:
        step_name: Name of the step that raised.
        cause: The original exception.
    """

    def __init__(self, step_name: str, cause: Exception):
        self.step_name = step_name
        self.cause = cause
        super().__init__(
            f"Step '{step_name}' failed: {cause}",
            fields={"step": step_name, "errorType": type(cause).__name__},
        )


class DuplicateSubmissionError(BikeShareError):
    """Raised when a submission was already committed by an earlier run."""

    default_code = WRN_DUPLICATE_SUBMISSION

    def __init__(self, submission_key: str):
        self.submission_key = submission_key
        super().__init__(
            "Submission was already processed",
            fields={"submissionKey": submission_key},
        )


class ConfigLoadError(BikeShareError):
    """Raised when configuration cannot be loaded.

    Attributes:
        missing_sections: Required sections absent from the config store.
    """

    default_code = ERR_CONFIG_LOAD

    def __init__(self, message: str, missing_sections: Optional[List[str]] = None):
        self.missing_sections = list(missing_sections or [])
        super().__init__(
            message,
            fields={"missingSections": self.missing_sections},
        )
