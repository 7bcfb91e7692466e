"""State loader: converts store rows into typed Bike and User records.

Column layouts are declared once here as ordered ``ColumnSpec`` tuples. The
same layouts drive both directions: ``row_to_bike``/``row_to_user`` when
loading and ``bike_to_row``/``user_to_row`` when steps produce pending
writes. Raw row lists never travel past this module.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple

from bikeshare.errors import StateLoadError
from bikeshare.state.coercion import CellType, coerce_cell, is_empty
from bikeshare.state.models import Bike, RecentUsers, SystemState, User
from bikeshare.store.protocol import RowStore

logger = logging.getLogger(__name__)

HEADER_ROWS = 1


class ColumnSpec(NamedTuple):
    field: str
    cell_type: CellType


BIKE_COLUMNS: Tuple[ColumnSpec, ...] = (
    ColumnSpec("name", CellType.STRING),
    ColumnSpec("size", CellType.STRING),
    ColumnSpec("maintenance_status", CellType.STRING),
    ColumnSpec("availability", CellType.STRING),
    ColumnSpec("last_checkout_date", CellType.DATE),
    ColumnSpec("last_return_date", CellType.DATE),
    ColumnSpec("current_usage_timer", CellType.NUMBER),
    ColumnSpec("total_usage_hours", CellType.NUMBER),
    ColumnSpec("most_recent_user", CellType.STRING),
    ColumnSpec("second_recent_user", CellType.STRING),
    ColumnSpec("third_recent_user", CellType.STRING),
    ColumnSpec("last_evicted_user", CellType.STRING),
    ColumnSpec("bike_hash", CellType.STRING),
)

USER_COLUMNS: Tuple[ColumnSpec, ...] = (
    ColumnSpec("email", CellType.STRING),
    ColumnSpec("has_unreturned_bike", CellType.BOOLEAN),
    ColumnSpec("last_checkout_name", CellType.STRING),
    ColumnSpec("last_checkout_date", CellType.DATE),
    ColumnSpec("last_return_name", CellType.STRING),
    ColumnSpec("last_return_date", CellType.DATE),
    ColumnSpec("number_of_checkouts", CellType.NUMBER),
    ColumnSpec("number_of_returns", CellType.NUMBER),
    ColumnSpec("number_of_mismatches", CellType.NUMBER),
    ColumnSpec("usage_hours", CellType.NUMBER),
    ColumnSpec("overdue_returns", CellType.NUMBER),
    ColumnSpec("first_usage_date", CellType.DATE),
)

_RECENT_USER_FIELDS = ("most_recent_user", "second_recent_user", "third_recent_user")
_INTEGER_USER_FIELDS = (
    "number_of_checkouts",
    "number_of_returns",
    "number_of_mismatches",
    "overdue_returns",
)

# 1-based column of the maintenance status in the bikes table
MAINTENANCE_STATUS_COLUMN = 3


def column_letter(column: int) -> str:
    """Convert a 1-based column number to its spreadsheet letter (1 → A)."""
    letters = ""
    while column > 0:
        column, remainder = divmod(column - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


def cell_ref(table: str, column: int, row: int) -> str:
    return f"{table}!{column_letter(column)}{row}"


def _coerce_row(row: Sequence[Any], columns: Sequence[ColumnSpec]) -> Dict[str, Any]:
    padded = list(row) + [None] * (len(columns) - len(row))
    return {
        spec.field: coerce_cell(padded[i], spec.cell_type)
        for i, spec in enumerate(columns)
    }


def _cell(value: Optional[datetime]) -> Any:
    return value if value is not None else ""


def row_to_bike(row: Sequence[Any], row_index: int) -> Bike:
    fields = _coerce_row(row, BIKE_COLUMNS)
    for name in ("current_usage_timer", "total_usage_hours"):
        fields[name] = max(0.0, fields[name])
    recent = tuple(fields.pop(name) for name in _RECENT_USER_FIELDS)
    return Bike(**fields, recent_users=RecentUsers(entries=recent), row_index=row_index)


def bike_to_row(bike: Bike) -> List[Any]:
    most, second, third = bike.recent_users.entries
    return [
        bike.name,
        bike.size,
        bike.maintenance_status,
        bike.availability,
        _cell(bike.last_checkout_date),
        _cell(bike.last_return_date),
        bike.current_usage_timer,
        bike.total_usage_hours,
        most,
        second,
        third,
        bike.last_evicted_user,
        bike.bike_hash,
    ]


def row_to_user(row: Sequence[Any], row_index: Optional[int]) -> User:
    fields = _coerce_row(row, USER_COLUMNS)
    for name in _INTEGER_USER_FIELDS:
        fields[name] = max(0, int(fields[name]))
    fields["usage_hours"] = max(0.0, fields["usage_hours"])
    return User(**fields, row_index=row_index)


def user_to_row(user: User) -> List[Any]:
    return [
        user.email,
        "Yes" if user.has_unreturned_bike else "No",
        user.last_checkout_name,
        _cell(user.last_checkout_date),
        user.last_return_name,
        _cell(user.last_return_date),
        user.number_of_checkouts,
        user.number_of_returns,
        user.number_of_mismatches,
        user.usage_hours,
        user.overdue_returns,
        _cell(user.first_usage_date),
    ]


class StateLoader:
    """Reads the bikes and users tables into a SystemState.

    Attributes:
        store: The row store collaborator.
        bikes_table: Name of the bikes table.
        users_table: Name of the users table.
    """

    def __init__(self, store: RowStore, bikes_table: str, users_table: str):
        self.store = store
        self.bikes_table = bikes_table
        self.users_table = users_table

    def load_state(self) -> SystemState:
        """Load a point-in-time view of both tables.

        Returns:
            SystemState with bikes and users in table order.

        Raises:
            StateLoadError: If either table cannot be read.
        """
        bikes = tuple(
            row_to_bike(row, row_index)
            for row_index, row in self._data_rows(self.bikes_table)
        )
        users = tuple(
            row_to_user(row, row_index)
            for row_index, row in self._data_rows(self.users_table)
        )

        logger.info(
            "Loaded system state",
            extra={"bikes": len(bikes), "users": len(users)},
        )
        return SystemState(bikes=bikes, users=users)

    def _data_rows(self, table: str) -> List[Tuple[int, Sequence[Any]]]:
        try:
            rows = self.store.get_all_rows(table)
        except Exception as exc:
            raise StateLoadError(table, exc) from exc

        data = []
        for offset, row in enumerate(rows[HEADER_ROWS:]):
            # Rows with an empty primary key cell are blank or half-deleted
            if not row or is_empty(row[0]):
                continue
            data.append((offset + HEADER_ROWS + 1, row))
        return data
