"""Handling of manual edits made on the bikes dashboard.

When an operator moves a bike's maintenance status away from "has issue",
the issue note left on that cell by the return that reported it is cleared.
Edits are handled under the global lock so the note change never races a
pipeline run writing the same row.
"""

import logging
from typing import Any, Optional

from pydantic import BaseModel, Field

from bikeshare.lock import GlobalLock
from bikeshare.settings.cache import SettingsCache
from bikeshare.state.loader import HEADER_ROWS, MAINTENANCE_STATUS_COLUMN, cell_ref
from bikeshare.state.models import MaintenanceStatus
from bikeshare.store.protocol import RowStore

logger = logging.getLogger(__name__)


class ManualEdit(BaseModel):
    """A single-cell edit reported by the dashboard.

    Attributes:
        table: Name of the edited table.
        row: 1-based row of the edited cell.
        column: 1-based column of the edited cell.
        old_value: Cell value before the edit.
        new_value: Cell value after the edit.
    """

    table: str = Field(..., min_length=1)
    row: int = Field(..., ge=1)
    column: int = Field(..., ge=1)
    old_value: Optional[Any] = None
    new_value: Optional[Any] = None


def _status(value: Any) -> str:
    return "" if value is None else str(value).strip().lower()


class ManualEditHandler:
    """Reacts to dashboard edits of the bikes table."""

    def __init__(self, store: RowStore, settings_cache: SettingsCache, lock: GlobalLock):
        self.store = store
        self.settings_cache = settings_cache
        self.lock = lock

    def handle(self, edit: ManualEdit) -> bool:
        """Clear the issue note if the edit resolves a reported issue.

        Returns:
            True if a note was cleared.

        Raises:
            LockTimeoutError: If the global lock is not acquired in time.
        """
        with self.lock.hold(owner="manual-edit"):
            bikes_table = self.settings_cache.get_snapshot().bikes_table
            if edit.table != bikes_table:
                logger.debug("Ignoring edit outside the bikes table", extra={"table": edit.table})
                return False
            if edit.column != MAINTENANCE_STATUS_COLUMN or edit.row <= HEADER_ROWS:
                return False

            old_status = _status(edit.old_value)
            new_status = _status(edit.new_value)
            if old_status != MaintenanceStatus.HAS_ISSUE.value or new_status == old_status:
                return False

            ref = cell_ref(bikes_table, MAINTENANCE_STATUS_COLUMN, edit.row)
            self.store.mark_cell(ref, note="")

        logger.info(
            "Cleared issue note",
            extra={"range_ref": ref, "new_status": new_status},
        )
        return True
