"""Batch persistence of pending writes.

A pipeline run accumulates WriteDescriptors and hands them to the
BatchCommitter once all steps succeeded. The committer minimizes round
trips to the store:

- Writes are grouped by table, in the order each table was first seen.
- All UPDATE writes of a table go out as one ``write_row_batch`` call
  covering exactly the distinct rows touched.
- All APPEND writes of a table go out as one ``append_rows`` call, which
  the store lays down as a contiguous block after its last row.

If either call fails for a table, every descriptor of that table is
retried with its own call. Other tables are unaffected. The store has no
transactions, so a partially written table is reported rather than rolled
back; CommitResults say exactly which descriptors to replay.
"""

import logging
from typing import Dict, List, Sequence

from bikeshare.store.models import CellMark, CommitResult, WriteDescriptor, WriteKind
from bikeshare.store.protocol import RowStore

logger = logging.getLogger(__name__)


class BatchCommitter:
    """Commits write descriptors to a row store with per-table fallback.

    Attributes:
        store: The row store collaborator.

    Example:
        >>> committer = BatchCommitter(store)
        >>> results = committer.commit(context.writes)
        >>> failed = [r for r in results if not r.success]
    """

    def __init__(self, store: RowStore):
        self.store = store

    def commit(self, writes: Sequence[WriteDescriptor]) -> List[CommitResult]:
        """Write every descriptor, batching per table.

        Args:
            writes: Pending writes in the order they were produced.

        Returns:
            One CommitResult per descriptor, in input order.
        """
        by_table: Dict[str, List[int]] = {}
        for position, descriptor in enumerate(writes):
            by_table.setdefault(descriptor.table, []).append(position)

        results: Dict[int, CommitResult] = {}
        for table, positions in by_table.items():
            group = [writes[p] for p in positions]
            try:
                self._write_batch(table, group)
                table_results = [CommitResult(descriptor=d, success=True) for d in group]
            except Exception as exc:
                logger.warning(
                    "Batch write failed, falling back to per-row writes",
                    extra={"table": table, "writes": len(group), "error": str(exc)},
                )
                table_results = [self._write_single(d) for d in group]
            results.update(zip(positions, table_results))

        ordered = [results[p] for p in range(len(writes))]
        failed = sum(1 for r in ordered if not r.success)
        logger.info(
            "Committed writes",
            extra={
                "writes": len(ordered),
                "tables": list(by_table),
                "failed": failed,
            },
        )
        return ordered

    def apply_marks(self, marks: Sequence[CellMark]) -> int:
        """Apply cell marks; failures are logged and skipped.

        Returns:
            Number of marks applied.
        """
        applied = 0
        for mark in marks:
            try:
                self.store.mark_cell(mark.range_ref, color=mark.color, note=mark.note)
                applied += 1
            except Exception:
                logger.warning(
                    "Failed to mark cell",
                    exc_info=True,
                    extra={"range_ref": mark.range_ref},
                )
        return applied

    def _write_batch(self, table: str, group: Sequence[WriteDescriptor]) -> None:
        updates: Dict[int, List] = {}
        appends: List[List] = []
        for descriptor in group:
            if descriptor.kind == WriteKind.APPEND:
                appends.append(list(descriptor.values))
            else:
                # Same row twice: the later descriptor wins
                updates[descriptor.row_index] = list(descriptor.values)

        if updates:
            self.store.write_row_batch(table, updates)
        if appends:
            self.store.append_rows(table, appends)

    def _write_single(self, descriptor: WriteDescriptor) -> CommitResult:
        try:
            if descriptor.kind == WriteKind.APPEND:
                self.store.append_rows(descriptor.table, [list(descriptor.values)])
            else:
                self.store.write_rows(
                    descriptor.table, descriptor.row_index, list(descriptor.values)
                )
        except Exception as exc:
            logger.error(
                "Row write failed",
                extra={**descriptor.to_log_dict(), "error": str(exc)},
            )
            return CommitResult(
                descriptor=descriptor, success=False, batched=False, error=str(exc)
            )
        return CommitResult(descriptor=descriptor, success=True, batched=False)
