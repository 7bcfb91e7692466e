"""Interfaces of the row-oriented store and config collaborators.

The pipeline never issues queries. It reads whole tables and writes rows by
1-based index or by appending after the last row. Row 1 of every table is
the header row.

Any object with these methods satisfies the protocols; the in-memory
implementation in ``bikeshare.store.memory`` is used for local development
and tests.
"""

from typing import Any, List, Mapping, Optional, Protocol, Sequence, runtime_checkable


@runtime_checkable
class RowStore(Protocol):
    """Protocol for the row-oriented data store.

    Implementations raise on failure; the batch committer decides how to
    recover.
    """

    def get_all_rows(self, table: str) -> List[List[Any]]:
        """Return every row of ``table``, header included."""
        ...

    def write_rows(self, table: str, row_index: int, values: Sequence[Any]) -> None:
        """Overwrite one row starting at the first column."""
        ...

    def write_row_batch(
        self, table: str, rows: Mapping[int, Sequence[Any]]
    ) -> None:
        """Overwrite several rows of one table in a single call."""
        ...

    def append_rows(self, table: str, rows: Sequence[Sequence[Any]]) -> None:
        """Write ``rows`` as one contiguous block after the table's last row."""
        ...

    def mark_cell(
        self,
        range_ref: str,
        color: Optional[str] = None,
        note: Optional[str] = None,
    ) -> None:
        """Set the background color and/or note of a cell.

        ``range_ref`` uses ``"<table>!<column letter><row>"`` notation. An
        empty-string note clears the cell's note.
        """
        ...


@runtime_checkable
class ConfigSource(Protocol):
    """Protocol for the configuration collaborator."""

    def get_all_rows(self, table: str, range_ref: Optional[str] = None) -> List[List[Any]]:
        """Return the rows of a configuration table (optionally a sub-range)."""
        ...
