"""Bike and user records and the loader that reads them from the store.

Records are immutable copies of one table row each. The loader is the only
place that sees raw store rows; everything downstream works on typed
records stamped with their 1-based row position.
"""

from bikeshare.state.coercion import (
    CellType,
    coerce_cell,
    parse_datetime,
)
from bikeshare.state.loader import (
    BIKE_COLUMNS,
    MAINTENANCE_STATUS_COLUMN,
    USER_COLUMNS,
    StateLoader,
    bike_to_row,
    cell_ref,
    row_to_bike,
    row_to_user,
    user_to_row,
)
from bikeshare.state.models import (
    Availability,
    Bike,
    MaintenanceStatus,
    RecentUsers,
    SystemState,
    User,
)

__all__ = [
    # Models
    "Availability",
    "Bike",
    "MaintenanceStatus",
    "RecentUsers",
    "SystemState",
    "User",
    # Coercion
    "CellType",
    "coerce_cell",
    "parse_datetime",
    # Loader
    "BIKE_COLUMNS",
    "MAINTENANCE_STATUS_COLUMN",
    "USER_COLUMNS",
    "StateLoader",
    "bike_to_row",
    "cell_ref",
    "row_to_bike",
    "row_to_user",
    "user_to_row",
]
