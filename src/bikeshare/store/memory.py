"""In-memory row store for local development and tests.

Implements both the RowStore and ConfigSource protocols on top of plain
lists, guarded by a re-entrant lock so concurrent API workers observe whole
writes. Tables can be seeded from a JSON workbook of the form::

    {"tables": {"Bikes Status": [["Bike Name", ...], ["Trek 100", ...]]}}
"""

import json
import logging
import re
import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

_RANGE_START = re.compile(r"^[A-Za-z]*(\d+)")


class InMemoryRowStore:
    """Dictionary of tables, each a list of rows (row 1 = index 0).

    Attributes:
        calls: Record of ``(method, table_or_range)`` for every write call,
            in order. Useful for asserting how many round-trips a commit
            made.
        notes: Cell notes keyed by range reference.
        colors: Cell background colors keyed by range reference.
    """

    def __init__(self, tables: Optional[Mapping[str, Sequence[Sequence[Any]]]] = None):
        self._lock = threading.RLock()
        self._tables: Dict[str, List[List[Any]]] = {
            name: [list(row) for row in rows] for name, rows in (tables or {}).items()
        }
        self.calls: List[Tuple[str, str]] = []
        self.notes: Dict[str, str] = {}
        self.colors: Dict[str, str] = {}

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "InMemoryRowStore":
        """Build a store from a JSON workbook file."""
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        tables = payload.get("tables", {})
        logger.info(
            "Seeded in-memory store",
            extra={"path": str(path), "tables": sorted(tables)},
        )
        return cls(tables)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_all_rows(self, table: str, range_ref: Optional[str] = None) -> List[List[Any]]:
        with self._lock:
            if table not in self._tables:
                raise KeyError(f"Unknown table: {table}")
            rows = self._tables[table]
            if range_ref:
                # Only the starting row of an A1 range is honored
                match = _RANGE_START.match(range_ref)
                if match:
                    rows = rows[int(match.group(1)) - 1 :]
            return [list(row) for row in rows]

    def table(self, name: str) -> List[List[Any]]:
        """Return a copy of a table, or an empty list if it does not exist."""
        with self._lock:
            return [list(row) for row in self._tables.get(name, [])]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def write_rows(self, table: str, row_index: int, values: Sequence[Any]) -> None:
        with self._lock:
            self.calls.append(("write_rows", table))
            self._write(table, row_index, values)

    def write_row_batch(self, table: str, rows: Mapping[int, Sequence[Any]]) -> None:
        with self._lock:
            self.calls.append(("write_row_batch", table))
            for row_index, values in rows.items():
                self._write(table, row_index, values)

    def append_rows(self, table: str, rows: Sequence[Sequence[Any]]) -> None:
        with self._lock:
            self.calls.append(("append_rows", table))
            target = self._tables.setdefault(table, [])
            target.extend(list(row) for row in rows)

    def mark_cell(
        self,
        range_ref: str,
        color: Optional[str] = None,
        note: Optional[str] = None,
    ) -> None:
        with self._lock:
            self.calls.append(("mark_cell", range_ref))
            if color is not None:
                self.colors[range_ref] = color
            if note is not None:
                if note:
                    self.notes[range_ref] = note
                else:
                    self.notes.pop(range_ref, None)

    def _write(self, table: str, row_index: int, values: Sequence[Any]) -> None:
        if row_index < 1:
            raise IndexError(f"Row index must be 1-based, got {row_index}")
        target = self._tables.setdefault(table, [])
        while len(target) < row_index:
            target.append([])
        row = target[row_index - 1]
        if len(row) < len(values):
            row.extend([""] * (len(values) - len(row)))
        row[: len(values)] = list(values)
