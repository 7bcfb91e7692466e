"""Bike share record models.

This module defines the typed records the pipeline works on:
- Availability / MaintenanceStatus: well-known status values
- RecentUsers: fixed-size buffer of a bike's most recent holders
- Bike / User: immutable copies of one row of the bikes / users table
- SystemState: point-in-time view of both tables

Records are frozen. Steps derive updated copies with ``model_copy`` and the
store is only written through batch persistence at the end of a run.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Availability(str, Enum):
    """Availability values stored in the bikes table."""

    AVAILABLE = "available"
    CHECKED_OUT = "checked out"
    OUT_OF_SERVICE = "out of service"


class MaintenanceStatus(str, Enum):
    """Maintenance status values the pipeline reads or writes."""

    GOOD = "good"
    HAS_ISSUE = "has issue"
    IN_REPAIR = "in repair"


class RecentUsers(BaseModel):
    """Circular buffer of the three most recent holders of a bike.

    Entries are ordered newest first. Pushing a new holder shifts the
    others down one slot and evicts the oldest, which is handed back to the
    caller so it can be kept in the bike's ``last_evicted_user`` column.

    Example:
        >>> ring = RecentUsers(entries=("c@x.edu", "b@x.edu", "a@x.edu"))
        >>> ring, evicted = ring.push("d@x.edu")
        >>> ring.entries, evicted
        (('d@x.edu', 'c@x.edu', 'b@x.edu'), 'a@x.edu')
    """

    model_config = ConfigDict(frozen=True)

    CAPACITY: ClassVar[int] = 3

    entries: Tuple[str, ...] = Field(
        default=("", "", ""),
        description="Holder emails, newest first; empty string for unused slots",
    )

    @field_validator("entries", mode="before")
    @classmethod
    def pad_entries(cls, v):
        values = tuple("" if e is None else str(e).strip().lower() for e in v)
        values = values[: cls.CAPACITY]
        return values + ("",) * (cls.CAPACITY - len(values))

    @property
    def most_recent(self) -> str:
        return self.entries[0]

    def push(self, email: str) -> Tuple["RecentUsers", str]:
        """Return a new buffer with ``email`` in front, and the evicted entry."""
        evicted = self.entries[-1]
        return RecentUsers(entries=(email,) + self.entries[:-1]), evicted


class Bike(BaseModel):
    """One row of the bikes table."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Display name of the bike")
    size: str = ""
    maintenance_status: str = Field(
        default=MaintenanceStatus.GOOD.value,
        description="Lower-cased maintenance status",
    )
    availability: str = Field(
        default=Availability.AVAILABLE.value,
        description="Lower-cased availability status",
    )
    last_checkout_date: Optional[datetime] = None
    last_return_date: Optional[datetime] = None
    current_usage_timer: float = Field(
        default=0.0,
        ge=0,
        description="Hours accrued since the last checkout",
    )
    total_usage_hours: float = Field(default=0.0, ge=0)
    recent_users: RecentUsers = Field(default_factory=RecentUsers)
    last_evicted_user: str = ""
    bike_hash: str = ""
    row_index: int = Field(
        ...,
        ge=2,
        description="1-based row position in the bikes table (row 1 is the header)",
    )

    @field_validator("maintenance_status", "availability", mode="before")
    @classmethod
    def lower_status(cls, v):
        return "" if v is None else str(v).strip().lower()

    @property
    def is_checked_out(self) -> bool:
        return self.availability == Availability.CHECKED_OUT.value

    @property
    def is_available(self) -> bool:
        return self.availability == Availability.AVAILABLE.value


class User(BaseModel):
    """One row of the users table.

    ``row_index`` is None for a submitter seen for the first time; such a
    user is appended to the table on commit instead of updated in place.
    """

    model_config = ConfigDict(frozen=True)

    email: str = Field(..., min_length=1)
    has_unreturned_bike: bool = False
    last_checkout_name: str = ""
    last_checkout_date: Optional[datetime] = None
    last_return_name: str = ""
    last_return_date: Optional[datetime] = None
    number_of_checkouts: int = Field(default=0, ge=0)
    number_of_returns: int = Field(default=0, ge=0)
    number_of_mismatches: int = Field(default=0, ge=0)
    usage_hours: float = Field(default=0.0, ge=0)
    overdue_returns: int = Field(default=0, ge=0)
    first_usage_date: Optional[datetime] = None
    row_index: Optional[int] = Field(default=None, ge=2)

    @field_validator("email", mode="before")
    @classmethod
    def lower_email(cls, v):
        return "" if v is None else str(v).strip().lower()

    @property
    def is_new(self) -> bool:
        return self.row_index is None


class SystemState(BaseModel):
    """Snapshot of the bikes and users tables taken at the start of a run."""

    model_config = ConfigDict(frozen=True)

    bikes: Tuple[Bike, ...] = ()
    users: Tuple[User, ...] = ()
    loaded_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
