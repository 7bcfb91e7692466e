"""Idempotency ledger for committed submissions.

The intake collaborator may deliver the same form response twice (a retry
after a network error, a manual re-run). A submission is identified by a
SHA-256 over its operation, submission timestamp, normalized email and bike
field. Keys are recorded only after a fully successful commit, so a run that
failed can be retried. The ledger is bounded and evicts the oldest keys.
"""

import hashlib
import threading
from collections import OrderedDict
from datetime import datetime
from typing import Optional

from bikeshare.intake.models import FormData

DEFAULT_LEDGER_SIZE = 1000


def submission_key(form: FormData, timestamp: Optional[datetime] = None) -> str:
    """Stable idempotency key for a parsed form.

    Args:
        form: The parsed submission.
        timestamp: Fallback when the form carried no timestamp.
    """
    ts = form.timestamp or timestamp
    parts = (
        form.operation.value,
        ts.isoformat() if ts is not None else "",
        form.email.strip().lower(),
        form.bike_identifier.strip().lower(),
    )
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


class SubmissionLedger:
    """Bounded LRU set of committed submission keys."""

    def __init__(self, max_size: int = DEFAULT_LEDGER_SIZE):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._keys: "OrderedDict[str, None]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._keys)

    def seen(self, key: str) -> bool:
        with self._lock:
            if key in self._keys:
                self._keys.move_to_end(key)
                return True
            return False

    def record(self, key: str) -> None:
        with self._lock:
            self._keys[key] = None
            self._keys.move_to_end(key)
            while len(self._keys) > self.max_size:
                self._keys.popitem(last=False)
