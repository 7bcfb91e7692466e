"""Pending write models produced by pipeline steps and consumed on commit."""

from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


class WriteKind(str, Enum):
    """How a pending row write reaches the store."""

    UPDATE = "update"
    APPEND = "append"


class WriteDescriptor(BaseModel):
    """One pending row write.

    Attributes:
        table: Target table name.
        kind: UPDATE rewrites ``row_index``; APPEND adds after the last row.
        row_index: 1-based target row, required for updates.
        values: Full row values in column order.
        key: Identity of the written record within its table (bike name,
            user email, log id). A later write with the same table and key
            replaces an earlier one within a run.
    """

    model_config = ConfigDict(frozen=True)

    table: str = Field(..., min_length=1)
    kind: WriteKind = WriteKind.UPDATE
    row_index: Optional[int] = Field(default=None, ge=2)
    values: Tuple[Any, ...] = ()
    key: str = ""

    @model_validator(mode="after")
    def check_row_index(self) -> "WriteDescriptor":
        if self.kind == WriteKind.UPDATE and self.row_index is None:
            raise ValueError("update writes require a row_index")
        return self

    def to_log_dict(self) -> Dict[str, Any]:
        """Serializable summary used in logs and failure notifications."""
        return {
            "table": self.table,
            "kind": self.kind.value,
            "row_index": self.row_index,
            "key": self.key,
            "values": [v.isoformat() if hasattr(v, "isoformat") else v for v in self.values],
        }


class CellMark(BaseModel):
    """A color and/or note to apply to a single cell after commit."""

    model_config = ConfigDict(frozen=True)

    range_ref: str = Field(..., min_length=1)
    color: Optional[str] = None
    note: Optional[str] = None


class CommitResult(BaseModel):
    """Outcome of committing one WriteDescriptor.

    Attributes:
        descriptor: The write this result describes.
        success: Whether the write reached the store.
        batched: True if it was written by the table's batch call, False if
            by the per-descriptor fallback.
        error: Failure message when ``success`` is False.
    """

    model_config = ConfigDict(frozen=True)

    descriptor: WriteDescriptor
    success: bool
    batched: bool = True
    error: Optional[str] = None
